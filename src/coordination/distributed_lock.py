"""Distributed lock backed by the shared ``locks`` table.

Mutual exclusion keyed by ``(resource_type, resource_id)``.  The unique
constraint on ``lock_key`` does all the work: acquiring is a single INSERT
that fails while a live row exists, so there is no read-then-write race.
Rows are only ever inserted or deleted, never updated; holders release by
``lock_id`` so only the row their own acquisition created is removed.

Expiry is lazy.  No sweeper process exists; each acquirer first deletes
the expired row for its own key, so a crashed holder blocks others for at
most ``ttl_seconds``.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
import uuid
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from src.models.coordination import LockOutcome, LockRecord, LockResult
from src.providers.store.sqlite_database import SQLiteDatabase
from src.utils.concurrency import PollPolicy
from src.utils.logging import get_logger

_T = TypeVar("_T")

_DELETE_EXPIRED_SQL = "DELETE FROM locks WHERE lock_key = ? AND expires_at <= ?;"

_INSERT_SQL = """\
INSERT INTO locks (lock_key, lock_id, acquired_at, expires_at)
VALUES (?, ?, ?, ?);
"""

_DELETE_SQL = "DELETE FROM locks WHERE lock_key = ?;"

_DELETE_OWNED_SQL = "DELETE FROM locks WHERE lock_key = ? AND lock_id = ?;"

_SELECT_LIVE_SQL = """\
SELECT lock_key, lock_id, acquired_at, expires_at
FROM locks
WHERE lock_key = ? AND expires_at > ?;
"""

_DEFAULT_WAIT_POLICY = PollPolicy(max_attempts=20, interval_seconds=0.5)


def lock_key(resource_type: str, resource_id: str | int) -> str:
    """Build the lock key, e.g. ``lock_key("ingest", 620) == "ingest:620"``."""
    return f"{resource_type}:{resource_id}"


class DistributedLock:
    """TTL lock shared by every process using the database.

    Parameters
    ----------
    database:
        The shared store.
    ttl_seconds:
        Default lifetime of an acquired lock.
    wait_policy:
        Poll interval (and default bound) used by :meth:`with_lock` when
        asked to wait for a held lock.
    clock:
        Wall-clock source in epoch seconds.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        ttl_seconds: int = 60,
        wait_policy: PollPolicy = _DEFAULT_WAIT_POLICY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._database = database
        self._ttl_seconds = ttl_seconds
        self._wait_policy = wait_policy
        self._clock = clock
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    async def acquire(
        self,
        resource_type: str,
        resource_id: str | int,
        ttl_seconds: int | None = None,
    ) -> LockResult:
        """Try once to take the lock.  Never blocks on a held lock."""
        key = lock_key(resource_type, resource_id)
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl_seconds
        now = self._clock()
        expires_at = now + ttl
        lock_id = uuid.uuid4().hex

        try:
            async with self._database.connect() as db:
                # Delete and insert share one transaction: a concurrent
                # acquirer cannot slip in between them.
                await db.execute(_DELETE_EXPIRED_SQL, (key, now))
                await db.execute(_INSERT_SQL, (key, lock_id, now, expires_at))
                await db.commit()
        except sqlite3.IntegrityError:
            self._logger.debug("lock_contended", lock_key=key)
            return LockResult(acquired=False, lock_key=key)
        except sqlite3.OperationalError as exc:
            # "database is locked" after the busy timeout: report the lock
            # as not acquired and let the caller take its contended path.
            self._logger.warning("lock_store_unavailable", lock_key=key, error=str(exc))
            return LockResult(acquired=False, lock_key=key)

        self._logger.debug("lock_acquired", lock_key=key, lock_id=lock_id, ttl_seconds=ttl)
        return LockResult(acquired=True, lock_key=key, lock_id=lock_id, expires_at=expires_at)

    async def release(
        self,
        resource_type: str,
        resource_id: str | int,
        lock_id: str | None = None,
    ) -> bool:
        """Delete the lock row for the key.

        With *lock_id*, only the row that acquisition created is deleted: a
        holder that outlived its TTL cannot remove the next holder's lock.
        Without it the row is deleted whoever holds it (administrative
        use).  Returns ``True`` if a row was deleted.
        """
        key = lock_key(resource_type, resource_id)
        async with self._database.connect() as db:
            if lock_id is None:
                cursor = await db.execute(_DELETE_SQL, (key,))
            else:
                cursor = await db.execute(_DELETE_OWNED_SQL, (key, lock_id))
            await db.commit()
            released = cursor.rowcount > 0

        if lock_id is not None and not released:
            self._logger.warning("lock_lost_before_release", lock_key=key, lock_id=lock_id)
        else:
            self._logger.debug("lock_released", lock_key=key)
        return released

    async def is_locked(self, resource_type: str, resource_id: str | int) -> bool:
        """Return ``True`` if a non-expired lock row exists for the key."""
        return await self.get_lock(resource_type, resource_id) is not None

    async def get_lock(self, resource_type: str, resource_id: str | int) -> LockRecord | None:
        key = lock_key(resource_type, resource_id)
        async with self._database.connect() as db:
            cursor = await db.execute(_SELECT_LIVE_SQL, (key, self._clock()))
            row = await cursor.fetchone()
        if row is None:
            return None
        return LockRecord(
            lock_key=row["lock_key"],
            lock_id=row["lock_id"],
            acquired_at=row["acquired_at"],
            expires_at=row["expires_at"],
        )

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    async def acquire_with_wait(
        self,
        resource_type: str,
        resource_id: str | int,
        max_wait_ms: int | None = None,
        ttl_seconds: int | None = None,
    ) -> LockResult:
        """Acquire, polling every ``wait_policy`` interval up to *max_wait_ms*."""
        deadline = self._clock() + (
            max_wait_ms / 1000.0 if max_wait_ms is not None else self._wait_policy.max_wait_seconds
        )
        result = await self.acquire(resource_type, resource_id, ttl_seconds)
        while not result.acquired and self._clock() < deadline:
            await asyncio.sleep(self._wait_policy.interval_seconds)
            result = await self.acquire(resource_type, resource_id, ttl_seconds)
        if not result.acquired:
            self._logger.info("lock_wait_gave_up", lock_key=result.lock_key)
        return result

    async def with_lock(
        self,
        resource_type: str,
        resource_id: str | int,
        fn: Callable[[], Awaitable[_T]],
        *,
        wait_for_lock: bool = False,
        max_wait_ms: int | None = None,
        ttl_seconds: int | None = None,
    ) -> LockOutcome[Any]:
        """Run *fn* while holding the lock; always release afterwards.

        Returns ``LockOutcome(ran=False)`` when the lock is held elsewhere
        (after waiting, if asked to).  That means another caller owns the
        work and this one should not duplicate it.
        """
        if wait_for_lock:
            result = await self.acquire_with_wait(resource_type, resource_id, max_wait_ms, ttl_seconds)
        else:
            result = await self.acquire(resource_type, resource_id, ttl_seconds)

        if not result.acquired:
            return LockOutcome(ran=False)

        try:
            value = await fn()
        finally:
            await self.release(resource_type, resource_id, lock_id=result.lock_id)
        return LockOutcome(ran=True, value=value)
