"""
Load correlation matrices for the binding and perturbation response datasets.

Each logical source has a local CSV snapshot, searched for across the configured
data directories, and an optional remote JSON endpoint that serves an already
computed matrix. The local snapshot is tried first; the endpoint is the fallback.

"""

from __future__ import annotations

import asyncio
import errno
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from ..errors import (
    DataFileNotFoundError,
    MalformedPayloadError,
    TFBPExplorerError,
    UpstreamError,
)
from ..utils.tables import read_delimited_file
from .matrix import (
    IDENTIFIER_COLUMN,
    CorrelationMatrixPayload,
    correlation_payload_from_table,
    is_valid_correlation_payload,
    sort_correlation_payload,
)

logger = logging.getLogger("shiny")


@dataclass(frozen=True)
class CorrelationSource:
    """
    Definition of one correlation dataset.

    :param name: Logical name, e.g. ``"binding"``.
    :param filename: Local snapshot file name.
    :param drop_columns: Housekeeping columns excluded besides the identifier.
    :param identifier_column: Column naming the target gene.

    """

    name: str
    filename: str
    drop_columns: frozenset[str] = field(default_factory=frozenset)
    identifier_column: str = IDENTIFIER_COLUMN


CORRELATION_SOURCES: dict[str, CorrelationSource] = {
    "binding": CorrelationSource(
        name="binding",
        filename="cc_predictors_normalized.csv",
        drop_columns=frozenset({"red_median"}),
    ),
    "perturbation": CorrelationSource(
        name="perturbation",
        filename="response_data.csv",
    ),
}


def locate_data_file(filename: str, directories: Sequence[Path]) -> Path:
    """
    Return the first existing ``directory / filename``.

    :raises DataFileNotFoundError: If no directory holds the file.
    :raises OSError: For failures other than the file being absent.

    """
    for directory in directories:
        candidate = Path(directory) / filename
        try:
            candidate.stat()
        except FileNotFoundError:
            continue
        except OSError as exc:
            if exc.errno in (errno.ENOENT, errno.ENOTDIR):
                continue
            raise
        if candidate.is_file():
            return candidate

    searched = ", ".join(str(directory) for directory in directories)
    raise DataFileNotFoundError(
        f'Unable to locate correlation data file "{filename}" in directories: {searched}'
    )


def load_local_correlation(
    source: CorrelationSource, directories: Sequence[Path]
) -> CorrelationMatrixPayload:
    """Read the source's snapshot and compute its correlation matrix (blocking)."""
    path = locate_data_file(source.filename, directories)
    started = time.perf_counter()
    table = read_delimited_file(path)
    payload = correlation_payload_from_table(
        table,
        drop_columns=source.drop_columns,
        identifier_column=source.identifier_column,
    )
    logger.info(
        "Loaded %s correlation data from %s (%d labels, %.1fms)",
        source.name,
        path,
        len(payload["labels"]),
        (time.perf_counter() - started) * 1000,
    )
    return payload


async def fetch_correlation_from_api(
    url: str,
    *,
    timeout: float = 60.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CorrelationMatrixPayload:
    """
    Fetch a precomputed matrix and return it with labels sorted.

    :raises UpstreamError: If the endpoint cannot be reached or answers non-2xx.
    :raises MalformedPayloadError: If the body is not a valid payload.

    """
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamError(
                "Failed to reach correlation API", detail=str(exc)
            ) from exc

    if not response.is_success:
        raise UpstreamError(
            f"Correlation API responded with status {response.status_code}",
            status_code=response.status_code,
            detail=response.text[:500],
        )

    try:
        body = response.json()
    except ValueError as exc:
        raise MalformedPayloadError(
            "Correlation API response was not valid JSON", detail=str(exc)
        ) from exc

    if not is_valid_correlation_payload(body):
        raise MalformedPayloadError(
            "Correlation API response was not in the expected format."
        )
    return sort_correlation_payload(body)


async def load_correlation_payload(
    source: CorrelationSource,
    directories: Sequence[Path],
    api_url: str | None = None,
    *,
    timeout: float = 60.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CorrelationMatrixPayload:
    """
    Load a correlation matrix, local snapshot first, then *api_url*.

    :raises TFBPExplorerError: The error from the last source tried, when every
        source failed.

    """
    try:
        return await asyncio.to_thread(load_local_correlation, source, directories)
    except Exception as exc:
        last_error: Exception = exc
        logger.warning(
            "Failed to load %s correlation data from local files: %s", source.name, exc
        )

    if api_url:
        logger.warning("Falling back to API for %s correlation data", source.name)
        try:
            payload = await fetch_correlation_from_api(
                api_url, timeout=timeout, transport=transport
            )
        except (UpstreamError, MalformedPayloadError) as exc:
            logger.warning(
                "Failed to load %s correlation data from %s: %s", source.name, api_url, exc
            )
            last_error = exc
        else:
            logger.info("Loaded %s correlation data from API %s", source.name, api_url)
            return payload

    if isinstance(last_error, TFBPExplorerError):
        raise last_error
    raise UpstreamError(
        f"Unable to load {source.name} correlation data", detail=str(last_error)
    ) from last_error
