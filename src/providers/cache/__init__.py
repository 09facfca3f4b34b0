"""Cache providers.

``MemoryCacheProvider`` is per process.  For multi-worker deployments a
shared backend can implement ICacheProvider without touching the services.
"""

from src.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
