"""Abstract base class for cache service providers.

Used to memoise catalog title searches during suggestion validation and
self-healing, where the same candidate title is looked up repeatedly.
The backend can be swapped (in-memory, Redis, ...) without touching the
services that use it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


# Concrete implementation: MemoryCacheProvider (src/providers/cache/)
class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async so network-backed stores do not block the
    event loop.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or ``None`` if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        Parameters
        ----------
        ttl:
            Time-to-live in seconds.  ``None`` uses the backend's default.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*; no-op if it does not exist."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""
