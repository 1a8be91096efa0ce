"""
Async HTTP client for the rank response API.

The API exposes two endpoints under a configured base URL:

- ``export/``: gzipped CSV of rank response metadata, optionally scoped to a
  regulator and a set of expression conditions.
- ``record_table_and_files/?id=<id>``: gzipped tar archive holding the per-gene
  CSV for one replicate.

Responses are never cached here; caching happens in :mod:`tfbpexplorer.cache`.

"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from types import TracebackType

import httpx

from ..errors import ConfigurationError, UpstreamError

logger = logging.getLogger("shiny")

EXPRESSION_CONDITIONS = (
    "expression_source=kemmeren_tfko;"
    "expression_source=mcisaac_oe,time=15;"
    "expression_source=hahn_degron"
)

_DETAIL_LIMIT = 500


@dataclass(frozen=True)
class UpstreamPayload:
    content: bytes
    last_modified: str | None = None


class RankResponseClient:
    """
    Authenticated client for the rank response API.

    Use as an async context manager so the underlying connection pool is closed:

    .. code-block:: python

        async with RankResponseClient(url, token) as client:
            payload = await client.fetch_metadata(regulator_id="42")

    :param base_url: API base URL, ending in ``/``.
    :param token: API token sent as ``Authorization: Token <token>``.
    :param timeout: Request timeout in seconds.
    :param transport: Optional ``httpx`` transport, e.g. ``httpx.MockTransport``.
    :raises ConfigurationError: If *base_url* or *token* is missing.

    """

    def __init__(
        self,
        base_url: str | None,
        token: str | None,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ConfigurationError(
                "RANKRESPONSE_URL is not configured. Set RANKRESPONSE_URL or "
                "NEXT_PUBLIC_RANKRESPONSE_URL."
            )
        if not token:
            raise ConfigurationError(
                "TFBP API token is not configured. Set TOKEN or TFBP_API_TOKEN."
            )
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Token {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> RankResponseClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, endpoint: str, params: dict[str, str] | None = None) -> UpstreamPayload:
        url = f"{self.base_url}{endpoint}"
        started = time.perf_counter()
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise UpstreamError(
                "Failed to reach rank response API", detail=str(exc)
            ) from exc

        logger.debug(
            "GET %s -> %d in %.1fms",
            endpoint,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )

        if not response.is_success:
            raise UpstreamError(
                f"Rank response API returned {response.status_code} for {endpoint}",
                status_code=response.status_code,
                detail=response.text[:_DETAIL_LIMIT],
            )

        return UpstreamPayload(
            content=response.content,
            last_modified=response.headers.get("last-modified"),
        )

    async def fetch_metadata(self, regulator_id: str | None = None) -> UpstreamPayload:
        """
        Fetch the metadata export.

        :param regulator_id: When given, scope the export to this regulator and the
            fixed set of expression conditions.

        """
        params = None
        if regulator_id is not None:
            params = {
                "regulator_id": regulator_id,
                "expression_conditions": EXPRESSION_CONDITIONS,
            }
        return await self._get("export/", params)

    async def fetch_replicate_archive(self, record_id: str) -> bytes:
        payload = await self._get("record_table_and_files/", {"id": record_id})
        return payload.content
