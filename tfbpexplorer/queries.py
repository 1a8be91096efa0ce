"""
Query surface consumed by the Shiny app.

:class:`DashboardQueries` wraps each loader in its own :class:`AsyncTTLCache` and
turns failures into :class:`QueryError` values, so the UI can tell cached data from
fresh data and a configuration problem from an unreachable upstream.

"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypedDict, TypeVar

import httpx

from .cache import AsyncTTLCache, CacheStatus
from .config import Settings
from .correlation.loader import CORRELATION_SOURCES, load_correlation_payload
from .correlation.matrix import CorrelationMatrixPayload
from .errors import ConfigurationError, QueryError
from .rank_response.client import RankResponseClient
from .rank_response.metadata import RankResponseMetadataRow, parse_metadata_export
from .rank_response.orchestrator import (
    RankResponseRegulatorPayload,
    RegulatorRankResponseLoader,
)

logger = logging.getLogger("shiny")

T = TypeVar("T")

_REFRESH_TOKENS = frozenset({"1", "true", "force", "refresh"})


class RankResponseMetadataResponse(TypedDict):
    metadata: list[RankResponseMetadataRow]
    source_timestamp: str | None


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    """
    Outcome of one query.

    ``data`` is ``None`` exactly when ``error`` is set. ``cache_age`` is the age in
    seconds of the returned value (0 when it was just computed).

    """

    data: T | None
    cache_status: CacheStatus | None = None
    cache_age: float | None = None
    error: QueryError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_refresh_flag(value: Any) -> bool:
    """``True`` for the values that request a cache bypass: 1, true, force, refresh."""
    if value is None:
        return False
    return str(value).strip().lower() in _REFRESH_TOKENS


class DashboardQueries:
    """
    Cached, error-classifying access to every dataset the dashboard shows.

    :param settings: Runtime configuration.
    :param cache: Optional cache shared by every query family, mainly for tests.
        By default each family gets its own cache; correlation matrices never
        expire, the rank response families expire after
        ``settings.cache_ttl_seconds``.
    :param transport: Optional ``httpx`` transport used for every upstream call.

    """

    def __init__(
        self,
        settings: Settings,
        *,
        cache: AsyncTTLCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.correlation_cache = cache or AsyncTTLCache(ttl=None, name="correlation")
        self.metadata_cache = cache or AsyncTTLCache(
            ttl=settings.cache_ttl_seconds, name="rankresponse-metadata"
        )
        self.regulator_cache = cache or AsyncTTLCache(
            ttl=settings.cache_ttl_seconds, name="rankresponse-regulator"
        )
        self._regulator_loader = RegulatorRankResponseLoader(
            settings.rankresponse_url,
            settings.api_token,
            concurrency=settings.replicate_concurrency,
            n_bins=settings.rank_bins,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    async def _run(
        self,
        cache: AsyncTTLCache,
        key: Any,
        factory: Callable[[], Awaitable[T]],
        *,
        force_refresh: bool,
        serve_stale: bool = False,
    ) -> QueryResult[T]:
        try:
            value, status = await cache.compute_if_absent(
                key, factory, force_refresh=force_refresh, serve_stale=serve_stale
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = QueryError.from_exception(exc)
            logger.error("Query %s/%r failed: %r", cache.name, key, error)
            return QueryResult(data=None, error=error)

        if status in (CacheStatus.hit, CacheStatus.stale):
            age = cache.age(key)
        else:
            age = 0.0
        return QueryResult(data=value, cache_status=status, cache_age=age)

    async def get_correlation_matrix(
        self, source_name: str, *, force_refresh: bool = False
    ) -> QueryResult[CorrelationMatrixPayload]:
        """Correlation matrix for ``"binding"`` or ``"perturbation"``."""
        source = CORRELATION_SOURCES.get(source_name)
        if source is None:
            return QueryResult(
                data=None,
                error=QueryError.from_exception(
                    ConfigurationError(
                        f"Unknown correlation source {source_name!r}; expected one of "
                        f"{sorted(CORRELATION_SOURCES)}"
                    )
                ),
            )

        api_url = (
            self.settings.binding_correlation_api
            if source.name == "binding"
            else self.settings.perturbation_correlation_api
        )

        async def _load() -> CorrelationMatrixPayload:
            return await load_correlation_payload(
                source,
                self.settings.data_directories,
                api_url,
                timeout=self.settings.request_timeout_seconds,
                transport=self.transport,
            )

        return await self._run(
            self.correlation_cache,
            ("correlation", source.name),
            _load,
            force_refresh=force_refresh,
        )

    async def _load_metadata(self) -> RankResponseMetadataResponse:
        async with RankResponseClient(
            self.settings.rankresponse_url,
            self.settings.api_token,
            timeout=self.settings.request_timeout_seconds,
            transport=self.transport,
        ) as client:
            payload = await client.fetch_metadata()

        metadata = await asyncio.to_thread(parse_metadata_export, payload.content)
        logger.info("Parsed %d rank response metadata rows", len(metadata))
        return {"metadata": metadata, "source_timestamp": payload.last_modified}

    async def get_rank_response_metadata(
        self, *, force_refresh: bool = False
    ) -> QueryResult[RankResponseMetadataResponse]:
        """
        All rank response metadata.

        Once cached, an expired entry is served immediately (status ``stale``) while
        a background refresh replaces it.

        """
        return await self._run(
            self.metadata_cache,
            ("metadata",),
            self._load_metadata,
            force_refresh=force_refresh,
            serve_stale=True,
        )

    async def get_regulator_rank_response(
        self, regulator_id: Any, *, force_refresh: bool = False
    ) -> QueryResult[RankResponseRegulatorPayload]:
        """Metadata and grouped rank response curves for one regulator."""
        key = "" if regulator_id is None else str(regulator_id).strip()
        if not key:
            return QueryResult(
                data=None,
                error=QueryError.from_exception(
                    ConfigurationError("regulator_id is required")
                ),
            )

        return await self._run(
            self.regulator_cache,
            ("regulator", key),
            lambda: self._regulator_loader.load(key),
            force_refresh=force_refresh,
        )
