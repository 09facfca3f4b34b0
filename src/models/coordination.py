"""Coordination records stored in the shared relational store."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

_T = TypeVar("_T")


class LockRecord(BaseModel):
    """A row of the ``locks`` table.  At most one live row per ``lock_key``."""

    model_config = ConfigDict(frozen=True)

    lock_key: str
    lock_id: str
    acquired_at: float
    expires_at: float


class LockResult(BaseModel):
    """Outcome of a lock acquisition.

    ``acquired=False`` means another caller owns the work; it is an expected
    result, not an error.
    """

    model_config = ConfigDict(frozen=True)

    acquired: bool
    lock_key: str
    lock_id: str | None = None
    expires_at: float | None = None


class LockOutcome(BaseModel, Generic[_T]):
    """Result of :meth:`DistributedLock.with_lock`.

    ``ran`` is false when the lock could not be obtained; ``value`` then
    stays ``None`` and the caller should not duplicate the work.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ran: bool
    value: _T | None = None


class RateLimitRecord(BaseModel):
    """A row of the ``rate_limits`` table."""

    model_config = ConfigDict(frozen=True)

    key: str
    last_request_at: float
