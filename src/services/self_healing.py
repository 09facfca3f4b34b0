"""Correction or removal of stale suggestion references.

A suggestion accepted in the past can point at an id the catalog no longer
serves (delisted, merged, or a wrong match).  When that surfaces as a
``NotFoundError`` the reference is re-resolved by its stored title through
catalog search:

- a different id is found: every entry referencing the stale id is
  rewritten to the corrected id (deduplicated when an entry already
  suggests it);
- nothing is found: the stale id is removed from every referencing entry.

The sweep covers all referencing entries, not only the one that triggered
it, and is idempotent: a second run finds no references and does nothing.
"""

from __future__ import annotations

from src.coordination.distributed_lock import DistributedLock
from src.interfaces.catalog_provider import ICatalogProvider
from src.interfaces.catalog_store import ICatalogStore
from src.models.catalog import CatalogEntry, SuggestedEntry
from src.models.suggestion import HealingOutcome
from src.utils.errors import TransientExternalError
from src.utils.logging import get_logger
from src.utils.text_normalizer import normalize_title

_LOCK_TYPE = "heal"


class _SearchUnavailable(Exception):
    """The corrective search failed; the sweep must not remove anything."""


class SelfHealingService:
    """Runs the correction sweep for one stale external id at a time."""

    def __init__(
        self,
        store: ICatalogStore,
        catalog: ICatalogProvider,
        lock: DistributedLock,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._lock = lock
        self._logger = get_logger(__name__)

    async def correct_or_remove(self, stale_id: int, title_hint: str | None = None) -> HealingOutcome:
        """Sweep all references to *stale_id*.

        Guarded by the ``heal`` lock; when another caller already sweeps the
        same id this returns ``HealingOutcome(ran=False)`` immediately.
        """
        outcome = await self._lock.with_lock(
            _LOCK_TYPE,
            stale_id,
            lambda: self._sweep(stale_id, title_hint),
        )
        if not outcome.ran:
            self._logger.info("self_heal_skipped_locked", stale_id=stale_id)
            return HealingOutcome(stale_id=stale_id, ran=False)
        return outcome.value

    async def _sweep(self, stale_id: int, title_hint: str | None) -> HealingOutcome:
        referencing = await self._store.list_entries_referencing(stale_id)
        titles = self._reference_titles(referencing, stale_id, title_hint)

        try:
            corrected_id = await self._find_correction(stale_id, titles)
        except _SearchUnavailable:
            return HealingOutcome(stale_id=stale_id, aborted=True)

        rewritten: list[int] = []
        removed_from: list[int] = []
        for entry in referencing:
            updated = self._rewrite(entry, stale_id, corrected_id)
            await self._store.update_suggestions(entry.external_id, updated)
            if corrected_id is not None and corrected_id in {s.external_id for s in updated}:
                rewritten.append(entry.external_id)
            else:
                removed_from.append(entry.external_id)

        self._logger.info(
            "self_heal_completed",
            stale_id=stale_id,
            corrected_id=corrected_id,
            rewritten=len(rewritten),
            removed=len(removed_from),
        )
        return HealingOutcome(
            stale_id=stale_id,
            corrected_id=corrected_id,
            rewritten_entries=rewritten,
            removed_from=removed_from,
        )

    @staticmethod
    def _reference_titles(
        referencing: list[CatalogEntry],
        stale_id: int,
        title_hint: str | None,
    ) -> list[str]:
        """Distinct stored titles for the stale id, hint first."""
        titles: list[str] = []
        seen: set[str] = set()
        candidates = [title_hint or ""] + [
            s.title for entry in referencing for s in entry.suggested_entries if s.external_id == stale_id
        ]
        for title in candidates:
            key = normalize_title(title)
            if key and key not in seen:
                seen.add(key)
                titles.append(title)
        return titles

    async def _find_correction(self, stale_id: int, titles: list[str]) -> int | None:
        # Only the catalog search is consulted: a local title match could
        # return the stale id itself.
        for title in titles:
            try:
                found = await self._catalog.search_by_title(title)
            except TransientExternalError as exc:
                self._logger.warning(
                    "self_heal_search_failed",
                    stale_id=stale_id,
                    title=title,
                    error=str(exc),
                )
                raise _SearchUnavailable from exc
            if found is not None and found != stale_id:
                self._logger.info("self_heal_corrected", stale_id=stale_id, corrected_id=found, title=title)
                return found
        return None

    @staticmethod
    def _rewrite(entry: CatalogEntry, stale_id: int, corrected_id: int | None) -> list[SuggestedEntry]:
        existing = {s.external_id for s in entry.suggested_entries}
        usable = (
            corrected_id is not None
            and corrected_id != entry.external_id
            and corrected_id not in existing
        )
        updated: list[SuggestedEntry] = []
        for suggestion in entry.suggested_entries:
            if suggestion.external_id != stale_id:
                updated.append(suggestion)
            elif usable:
                updated.append(suggestion.model_copy(update={"external_id": corrected_id}))
                usable = False
        return updated
