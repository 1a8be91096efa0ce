"""
In-memory, asyncio-aware TTL cache with request de-duplication.

One :class:`AsyncTTLCache` instance backs each query family (correlation matrices,
rank response metadata, per-regulator rank response). Concurrent callers asking for
the same key share a single in-flight computation, and only a computation that
finishes successfully ever writes an entry.

"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

logger = logging.getLogger("shiny")

V = TypeVar("V")


class CacheStatus(str, Enum):
    """How a value returned by :meth:`AsyncTTLCache.compute_if_absent` was obtained."""

    hit = "hit"  # a fresh entry was returned
    busy = "busy"  # joined a computation another caller started
    miss = "miss"  # an expired entry was recomputed
    warm = "warm"  # first computation for a key never cached
    stale = "stale"  # expired entry served while a background refresh runs
    refresh = "refresh"  # recomputed on request, bypassing the entry


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    stored_at: float


class _InFlight:
    __slots__ = ("key", "task", "waiters", "detached", "abandoned")

    def __init__(self, key: Hashable, task: asyncio.Task, detached: bool) -> None:
        self.key = key
        self.task = task
        self.waiters = 0
        # set once every waiter was cancelled; the task is being torn down
        self.abandoned = False
        # a detached computation refreshes a stale entry and outlives its callers
        self.detached = detached


class AsyncTTLCache(Generic[V]):
    """
    Keyed cache of awaitable computations.

    :param ttl: Seconds an entry stays fresh. ``None`` keeps entries until they are
        invalidated or refreshed.
    :param clock: Monotonic time source, injectable for tests.
    :param name: Used in log messages.

    :examples:

    .. code-block:: python

        cache = AsyncTTLCache(ttl=300)
        payload, status = await cache.compute_if_absent("binding", load_binding)

    """

    def __init__(
        self,
        ttl: float | None = 300.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ) -> None:
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: dict[Hashable, _Entry[V]] = {}
        self._in_flight: dict[Hashable, _InFlight] = {}

    def _is_fresh(self, entry: _Entry[V]) -> bool:
        if self.ttl is None:
            return True
        return self._clock() - entry.stored_at < self.ttl

    def get(self, key: Hashable) -> V | None:
        """Return the fresh value for *key*, or ``None``."""
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            return None
        return entry.value

    def age(self, key: Hashable) -> float | None:
        """Seconds since *key* was last written, fresh or not."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return max(0.0, self._clock() - entry.stored_at)

    def is_in_flight(self, key: Hashable) -> bool:
        return key in self._in_flight

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop the entry for *key*, or every entry when *key* is ``None``."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    async def compute_if_absent(
        self,
        key: Hashable,
        factory: Callable[[], Awaitable[V]],
        *,
        force_refresh: bool = False,
        serve_stale: bool = False,
    ) -> tuple[V, CacheStatus]:
        """
        Return the cached value for *key*, computing it with *factory* if needed.

        :param key: Cache key, e.g. a source name or regulator id.
        :param factory: Zero-argument coroutine function producing the value.
        :param force_refresh: Ignore any entry and start a new computation, even if
            one is already running. Whichever computation finishes last wins.
        :param serve_stale: When the entry has expired, return it immediately with
            :attr:`CacheStatus.stale` and refresh it in the background.
        :return: ``(value, status)``
        :raises Exception: Whatever *factory* raised. Failures are never cached.

        """
        entry = self._entries.get(key)

        if not force_refresh:
            if entry is not None and self._is_fresh(entry):
                return entry.value, CacheStatus.hit

            flight = self._in_flight.get(key)
            if flight is not None and (flight.abandoned or flight.task.done()):
                flight = None
            if flight is not None:
                if serve_stale and entry is not None:
                    return entry.value, CacheStatus.stale
                return await self._wait(flight), CacheStatus.busy

            if serve_stale and entry is not None:
                self._start(key, factory, detached=True)
                logger.debug("%s: serving stale %r while refreshing", self.name, key)
                return entry.value, CacheStatus.stale

        if force_refresh:
            status = CacheStatus.refresh
        elif entry is not None:
            status = CacheStatus.miss
        else:
            status = CacheStatus.warm

        flight = self._start(key, factory, detached=False)
        return await self._wait(flight), status

    def _start(
        self,
        key: Hashable,
        factory: Callable[[], Awaitable[V]],
        *,
        detached: bool,
    ) -> _InFlight:
        task = asyncio.get_running_loop().create_task(self._compute(key, factory))
        flight = _InFlight(key, task, detached)
        self._in_flight[key] = flight
        task.add_done_callback(lambda done: self._release(key, flight, done))
        return flight

    async def _compute(self, key: Hashable, factory: Callable[[], Awaitable[V]]) -> V:
        started = self._clock()
        value = await factory()
        self._entries[key] = _Entry(value, self._clock())
        logger.debug(
            "%s: stored %r after %.3fs", self.name, key, self._clock() - started
        )
        return value

    def _release(self, key: Hashable, flight: _InFlight, task: asyncio.Task) -> None:
        # a forced refresh may have replaced this flight already
        if self._in_flight.get(key) is flight:
            del self._in_flight[key]

        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if flight.detached:
            logger.warning(
                "%s: background refresh for %r failed: %s", self.name, key, exc
            )
        else:
            logger.debug("%s: computation for %r failed: %s", self.name, key, exc)

    async def _wait(self, flight: _InFlight) -> Any:
        flight.waiters += 1
        cancelled = False
        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            flight.waiters -= 1
            if (
                cancelled
                and flight.waiters == 0
                and not flight.detached
                and not flight.task.done()
            ):
                flight.abandoned = True
                if self._in_flight.get(flight.key) is flight:
                    del self._in_flight[flight.key]
                flight.task.cancel()
