"""Semaphore-gated fan-out for upstream fetches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

logger = logging.getLogger("shiny")

T = TypeVar("T")
R = TypeVar("R")


def _log_failure(item: object, exc: Exception) -> None:
    logger.warning("Skipping %s: %s", item, exc)


async def gather_bounded(
    items: Iterable[T],
    func: Callable[[T], Awaitable[R]],
    *,
    limit: int = 4,
    on_error: Callable[[T, Exception], None] | None = None,
) -> list[tuple[T, R]]:
    """
    Run ``func(item)`` for every item with at most *limit* calls running at once.

    :param items: Work items, submitted in order.
    :param func: Coroutine function applied to each item.
    :param limit: Maximum number of concurrent calls.
    :param on_error: Called with ``(item, exc)`` for every item whose call raised an
        :class:`Exception`. Defaults to logging a warning.
    :return: ``(item, result)`` for each success, in submission order.
    :raises ValueError: If *limit* is less than 1.

    Cancelling the caller cancels every pending call.

    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    handle_error = on_error or _log_failure
    work = list(items)
    semaphore = asyncio.Semaphore(limit)

    async def _guarded(item: T) -> R:
        async with semaphore:
            return await func(item)

    outcomes = await asyncio.gather(
        *(_guarded(item) for item in work), return_exceptions=True
    )

    successes: list[tuple[T, R]] = []
    for item, outcome in zip(work, outcomes):
        if isinstance(outcome, Exception):
            handle_error(item, outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            successes.append((item, outcome))
    return successes
