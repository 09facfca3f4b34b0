"""Cross-process rate limiter backed by the shared ``rate_limits`` table.

Guarantees that two accepted acquisitions for the same key are at least
``min_delay_ms`` apart, no matter how many processes are calling.  The
table row is the only state: nothing kept in memory is authoritative,
because the next caller may run in a different process.

Acquisition loop, per attempt:

    no row            -> INSERT; success means first-ever caller, proceed.
                         A lost insert race falls through to the next poll.
    elapsed >= delay  -> UPDATE ... WHERE last_request_at <= now - delay.
                         Exactly one racing caller updates a row and wins.
    elapsed <  delay  -> sleep for the remaining time (+ safety margin).

When the bounded loop runs out the call proceeds anyway and logs
``rate_limit_fallback``: availability is favoured over perfect spacing
under pathological contention.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from typing import Callable

import structlog

from src.models.coordination import RateLimitRecord
from src.providers.store.sqlite_database import SQLiteDatabase
from src.utils.concurrency import PollPolicy
from src.utils.errors import RateLimitTimeout
from src.utils.logging import get_logger

_SELECT_SQL = "SELECT key, last_request_at FROM rate_limits WHERE key = ?;"

_INSERT_SQL = "INSERT INTO rate_limits (key, last_request_at) VALUES (?, ?);"

_CONDITIONAL_UPDATE_SQL = """\
UPDATE rate_limits
SET last_request_at = ?
WHERE key = ? AND last_request_at <= ?;
"""

_DEFAULT_POLICY = PollPolicy(max_attempts=30, interval_seconds=0.1)


class RateLimiter:
    """Minimum-interval limiter shared by every process using the database.

    Parameters
    ----------
    database:
        The shared store.
    policy:
        Bound on the acquisition loop (attempts and base poll interval).
    safety_margin_ms:
        Extra sleep added to the remaining wait so a sleeper wakes up just
        after the slot opens rather than just before.
    clock:
        Wall-clock source in epoch seconds.  Every process must share the
        same notion of time, so this is ``time.time`` outside tests.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        policy: PollPolicy = _DEFAULT_POLICY,
        safety_margin_ms: int = 50,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._database = database
        self._policy = policy
        self._safety_margin = safety_margin_ms / 1000.0
        self._clock = clock
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def acquire(self, key: str, min_delay_ms: int) -> float | None:
        """Block until a slot for *key* is free, then claim it.

        Returns
        -------
        float or None
            The recorded acquisition time (epoch seconds), or ``None`` when
            the bounded wait was exhausted and the caller proceeds unrecorded.
        """
        min_delay = min_delay_ms / 1000.0

        for attempt in range(1, self._policy.max_attempts + 1):
            try:
                record = await self.get_last_request(key)
                now = self._clock()

                if record is None:
                    if await self._try_insert(key, now):
                        self._logger.debug("rate_limit_first_acquire", key=key)
                        return now
                    await asyncio.sleep(self._policy.interval_seconds)
                    continue

                elapsed = now - record.last_request_at
                if elapsed >= min_delay:
                    if await self._try_claim(key, now, now - min_delay):
                        self._logger.debug(
                            "rate_limit_acquired",
                            key=key,
                            attempt=attempt,
                            elapsed_ms=round(elapsed * 1000),
                        )
                        return now
                    # Another caller claimed the slot between our read and update.
                    await asyncio.sleep(self._policy.interval_seconds)
                    continue

                wait = min(min_delay - elapsed + self._safety_margin, min_delay)
                self._logger.debug(
                    "rate_limit_waiting",
                    key=key,
                    attempt=attempt,
                    wait_ms=round(wait * 1000),
                )
                await asyncio.sleep(wait)
            except (sqlite3.Error, OSError) as exc:
                self._logger.warning(
                    "rate_limit_store_error",
                    key=key,
                    attempt=attempt,
                    error=str(exc),
                )
                await asyncio.sleep(self._policy.interval_seconds)

        timeout = RateLimitTimeout(
            message=f"gave up waiting for '{key}' after {self._policy.max_attempts} attempts",
            provider_name="rate_limiter",
        )
        self._logger.warning(
            "rate_limit_fallback",
            key=key,
            attempts=self._policy.max_attempts,
            error=str(timeout),
        )
        return None

    async def get_last_request(self, key: str) -> RateLimitRecord | None:
        """Return the current row for *key*, or ``None`` if it was never used."""
        async with self._database.connect() as db:
            cursor = await db.execute(_SELECT_SQL, (key,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return RateLimitRecord(key=row["key"], last_request_at=row["last_request_at"])

    async def _try_insert(self, key: str, now: float) -> bool:
        async with self._database.connect() as db:
            try:
                await db.execute(_INSERT_SQL, (key, now))
                await db.commit()
            except sqlite3.IntegrityError:
                return False
        return True

    async def _try_claim(self, key: str, now: float, threshold: float) -> bool:
        async with self._database.connect() as db:
            cursor = await db.execute(_CONDITIONAL_UPDATE_SQL, (now, key, threshold))
            await db.commit()
            return cursor.rowcount == 1
