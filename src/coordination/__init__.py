"""Cross-process coordination primitives built on the shared store."""

from src.coordination.distributed_lock import DistributedLock, lock_key
from src.coordination.rate_limiter import RateLimiter

__all__ = ["DistributedLock", "RateLimiter", "lock_key"]
