"""In-memory cache provider using cachetools.TTLCache.

Single-process cache for catalog search results.  Every process keeps its
own copy, which is fine for lookups that are idempotent on the catalog side.
"""

from __future__ import annotations

import time
from typing import Any

import structlog
from cachetools import TTLCache

from src.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """In-memory TTL cache backed by ``cachetools.TTLCache``.

    The ``TTLCache`` enforces the default TTL and the size bound.  A shorter
    per-item ``ttl`` passed to :meth:`set` is honoured by storing the item's
    own deadline next to the value.
    """

    def __init__(self, max_size: int = 1000, ttl: int = 3600) -> None:
        self._default_ttl = ttl
        self._cache: TTLCache[str, tuple[float | None, Any]] = TTLCache(maxsize=max_size, ttl=ttl)

    async def get(self, key: str) -> Any | None:
        item = self._cache.get(key)
        if item is None:
            logger.debug("cache_miss", key=key)
            return None
        deadline, value = item
        if deadline is not None and time.monotonic() >= deadline:
            self._cache.pop(key, None)
            logger.debug("cache_expired", key=key)
            return None
        logger.debug("cache_hit", key=key)
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        deadline = None
        if ttl is not None and ttl < self._default_ttl:
            deadline = time.monotonic() + ttl
        self._cache[key] = (deadline, value)
        logger.debug("cache_set", key=key, ttl=ttl or self._default_ttl)

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None
