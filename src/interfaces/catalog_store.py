"""Abstract base class for catalog persistence.

Defines the contract for reading and writing :class:`CatalogEntry` rows
in the shared store.  The concrete implementation is
:class:`~src.providers.store.sqlite_catalog_store.SQLiteCatalogStore`;
tests may substitute an in-memory double.

Writes are whole-column-set upserts keyed by ``external_id`` (last writer
wins).  There is no compare-and-swap on entries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.catalog import CatalogEntry, SuggestedEntry


class ICatalogStore(ABC):
    """Contract for catalog entry persistence."""

    @abstractmethod
    async def get_entry(self, external_id: int) -> CatalogEntry | None:
        """Return the entry for *external_id*, or ``None`` if not stored."""

    @abstractmethod
    async def get_entries(self, external_ids: list[int]) -> list[CatalogEntry]:
        """Return stored entries for *external_ids* (missing ids are skipped)."""

    @abstractmethod
    async def save_fetched_entry(self, entry: CatalogEntry) -> CatalogEntry:
        """Upsert the catalog-sourced fields of *entry*.

        Enrichment fields and the suggestion list of an existing row are
        preserved; a freshly inserted row takes them from *entry*.

        Returns
        -------
        CatalogEntry
            The row as stored after the upsert.
        """

    @abstractmethod
    async def upsert_entry(self, entry: CatalogEntry) -> None:
        """Write every column of *entry* (insert or full overwrite)."""

    @abstractmethod
    async def update_suggestions(self, external_id: int, suggestions: list[SuggestedEntry]) -> None:
        """Replace the ordered suggestion list of one entry."""

    @abstractmethod
    async def update_enrichment(
        self,
        external_id: int,
        *,
        tags: list[str] | None = None,
        facet_texts: dict[str, str] | None = None,
        facet_embeddings: dict[str, list[float]] | None = None,
    ) -> None:
        """Update the enrichment columns that are not ``None``."""

    @abstractmethod
    async def find_missing_ids(self, external_ids: list[int]) -> list[int]:
        """Return the ids from *external_ids* that have no stored row, in input order."""

    @abstractmethod
    async def find_ids_by_title(self, title: str, limit: int = 10) -> list[tuple[int, str]]:
        """Case-insensitive substring title search over stored entries.

        Returns
        -------
        list[tuple[int, str]]
            ``(external_id, title)`` pairs.
        """

    @abstractmethod
    async def list_entries_referencing(self, external_id: int) -> list[CatalogEntry]:
        """Return every entry whose suggestion list contains *external_id*."""

    @abstractmethod
    async def list_entry_ids(
        self,
        limit: int | None = None,
        only_without_suggestions: bool = False,
    ) -> list[int]:
        """Return stored ids (oldest first), optionally only unenriched ones."""

    @abstractmethod
    async def list_facet_vectors(self, facet: str) -> list[tuple[int, str, list[float]]]:
        """Return ``(external_id, title, vector)`` for entries with a *facet* embedding."""
