"""Error taxonomy shared by the loaders, the upstream client and the query surface."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    configuration_missing = "configuration_missing"
    upstream_unreachable = "upstream_unreachable"
    malformed_response = "malformed_response"
    unexpected = "unexpected"


_HTTP_STATUS_BY_KIND = {
    ErrorKind.configuration_missing: 500,
    ErrorKind.upstream_unreachable: 502,
    ErrorKind.malformed_response: 502,
    ErrorKind.unexpected: 500,
}


class TFBPExplorerError(Exception):
    """Base class for failures that the presentation layer can explain."""

    kind: ErrorKind = ErrorKind.unexpected

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail


class ConfigurationError(TFBPExplorerError):
    """A required endpoint, token or source definition is absent."""

    kind = ErrorKind.configuration_missing


class UpstreamError(TFBPExplorerError):
    """The upstream source could not be reached or answered with a non-2xx status."""

    kind = ErrorKind.upstream_unreachable


class DataFileNotFoundError(UpstreamError):
    """A local snapshot file is not present in any of the data directories."""


class MalformedPayloadError(TFBPExplorerError):
    """The upstream answered, but the payload has the wrong shape or encoding."""

    kind = ErrorKind.malformed_response


class ArchiveMemberNotFoundError(MalformedPayloadError):
    """The expected CSV member is missing from a replicate archive."""


class QueryError:
    """
    Serializable description of a failed query.

    The presentation layer renders this instead of an exception so that a user
    sees whether configuration, the network or the data is to blame.

    """

    __slots__ = ("kind", "message", "status_code", "detail")

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.detail = detail

    @classmethod
    def from_exception(cls, exc: BaseException) -> QueryError:
        if isinstance(exc, TFBPExplorerError):
            return cls(exc.kind, exc.message, exc.status_code, exc.detail)
        return cls(ErrorKind.unexpected, str(exc) or type(exc).__name__)

    @property
    def http_status(self) -> int:
        """Status a web host should answer with when relaying this error."""
        if self.kind == ErrorKind.upstream_unreachable and self.status_code:
            return self.status_code
        return _HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "detail": self.detail,
        }

    def __repr__(self) -> str:
        return f"QueryError(kind={self.kind.value!r}, message={self.message!r})"
