"""Shared concurrency primitives for vibefinder.

Three patterns are exposed:

1. **PollPolicy / poll_until** -- every "sleep and check again" loop in the
   code base (waiting for an in-flight ingestion, waiting for a lock) is a
   bounded retry with an explicit attempt count and interval.  Tests build
   a policy with tiny numbers instead of waiting on production timings.

2. **throttled_gather** -- ``asyncio.gather`` with a semaphore, used by the
   bulk backfill driver and facet grading.

3. **BackgroundTaskRunner** -- fire-and-forget work with an explicit error
   boundary.  The caller does not wait, but every failure is still logged
   and the task keeps a strong reference until it finishes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Bounded polling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PollPolicy:
    """Upper bound for a sleep-and-recheck loop."""

    max_attempts: int
    interval_seconds: float

    @classmethod
    def from_millis(cls, max_attempts: int, interval_ms: int) -> PollPolicy:
        return cls(max_attempts=max_attempts, interval_seconds=interval_ms / 1000.0)

    @property
    def max_wait_seconds(self) -> float:
        return self.max_attempts * self.interval_seconds


async def poll_until(
    check: Callable[[], Awaitable[_T | None]],
    policy: PollPolicy,
) -> _T | None:
    """Call *check* until it returns a non-``None`` value or attempts run out.

    The first check happens after one interval: callers use this when they
    already know the resource is not ready yet.

    Returns
    -------
    The first non-``None`` value, or ``None`` on exhaustion.
    """
    for _ in range(policy.max_attempts):
        await asyncio.sleep(policy.interval_seconds)
        result = await check()
        if result is not None:
            return result
    return None


# ---------------------------------------------------------------------------
# Throttled fan-out
# ---------------------------------------------------------------------------


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` of them at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Concurrency bound.  ``None`` means unbounded (plain gather).
    return_exceptions:
        Mirrors ``asyncio.gather``: failures are returned in place.

    Returns
    -------
    list[_T | BaseException]
        Results in input order.
    """
    if semaphore is None:
        return await asyncio.gather(*coros, return_exceptions=return_exceptions)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *(_wrapped(c) for c in coros), return_exceptions=return_exceptions
    )


# ---------------------------------------------------------------------------
# Detached background work
# ---------------------------------------------------------------------------


class BackgroundTaskRunner:
    """Owns fire-and-forget tasks spawned by request handlers.

    ``asyncio`` only keeps weak references to tasks, so an unawaited task can
    be garbage collected mid-flight and its exception reported nowhere.  The
    runner holds every task until completion and logs the outcome at the
    task boundary.  Exceptions never reach the code that spawned the task.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def spawn(
        self,
        name: str,
        coro: Coroutine[Any, Any, Any],
        **context: Any,
    ) -> asyncio.Task[Any]:
        """Schedule *coro* without awaiting it.

        ``context`` key/values are attached to the completion log events.
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, name, context))
        self._logger.debug("background_task_spawned", task=name, **context)
        return task

    def _on_done(self, task: asyncio.Task[Any], name: str, context: dict[str, Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._logger.warning("background_task_cancelled", task=name, **context)
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "background_task_failed",
                task=name,
                error=str(exc),
                error_type=type(exc).__name__,
                **context,
            )
        else:
            self._logger.info("background_task_completed", task=name, **context)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every running task (used on shutdown and in tests)."""
        while self._tasks:
            pending = list(self._tasks)
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                self._logger.warning("background_drain_timeout", remaining=len(not_done))
                return
