"""Abstract base class for the external catalog (game store) adapter.

The core only needs two calls from the store: fetch one entry by id and
search an id by title.  The adapter must keep "this id does not exist"
(:class:`~src.utils.errors.NotFoundError`) distinguishable from "the call
failed" (:class:`~src.utils.errors.TransientExternalError`), because the
self-healing sweep rewrites or removes references only on the former.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.catalog import CatalogEntry


# Concrete implementation: SteamStoreProvider (src/providers/catalog/)
class ICatalogProvider(ABC):
    """Contract for the external source catalog."""

    @abstractmethod
    async def fetch_entry(self, external_id: int) -> CatalogEntry:
        """Fetch one entry from the catalog.

        Raises
        ------
        src.utils.errors.NotFoundError
            The catalog has no usable record for *external_id*.
        src.utils.errors.TransientExternalError
            Network / HTTP failure after bounded retries.
        """

    @abstractmethod
    async def search_by_title(self, title: str) -> int | None:
        """Return the best matching external id for *title*, or ``None``.

        Raises
        ------
        src.utils.errors.TransientExternalError
            The search itself failed (as opposed to finding nothing).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return an identifier such as ``"steam"``."""
