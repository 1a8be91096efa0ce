"""In-memory gzip and tar helpers for rank response payloads."""

from __future__ import annotations

import gzip
import io
import logging
import re
import tarfile
import zlib

from ..errors import ArchiveMemberNotFoundError, MalformedPayloadError

logger = logging.getLogger("shiny")

_LEADING_DOT_SLASH = re.compile(r"^(\./)+")


def gunzip_or_passthrough(data: bytes) -> bytes:
    """Decompress gzip *data*; return it unchanged if it is not valid gzip."""
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error):
        return data


def _matches(member_name: str, target: str) -> bool:
    name = _LEADING_DOT_SLASH.sub("", member_name)
    return name == target or name.endswith(f"/{target}")


def extract_replicate_csv(archive: bytes, record_id: str) -> str:
    """
    Pull the CSV for one replicate out of a (usually gzipped) tar archive.

    The member may be named ``<record_id>.csv`` or ``<record_id>.csv.gz``, with or
    without a leading ``./`` or directory. Every other member is ignored.

    :param archive: Archive bytes as returned by ``record_table_and_files/``.
    :param record_id: Replicate id used to build the member name.
    :return: The CSV text.
    :raises ArchiveMemberNotFoundError: If no member matches.
    :raises MalformedPayloadError: If the bytes are not a readable tar archive.

    """
    target = f"{record_id}.csv"
    target_compressed = f"{target}.gz"
    data = gunzip_or_passthrough(archive)

    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                if _matches(member.name, target):
                    compressed = False
                elif _matches(member.name, target_compressed):
                    compressed = True
                else:
                    continue

                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                content = extracted.read()
                if compressed:
                    content = gunzip_or_passthrough(content)
                return content.decode("utf-8", errors="replace")
    except tarfile.TarError as exc:
        raise MalformedPayloadError(
            f"Archive for record {record_id} could not be read", detail=str(exc)
        ) from exc

    raise ArchiveMemberNotFoundError(
        f"CSV for record {record_id} was not found in archive"
    )
