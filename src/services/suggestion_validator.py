"""Resolution of generated titles to real catalog ids.

Every suggestion the model produces is a claim that a game with that title
exists.  The validator checks the claim before anything is persisted:

1. **Local match** -- substring search over titles already in the store,
   with rapidfuzz picking the closest hit (no network).
2. **Catalog search** -- the store's search-by-title endpoint (rate
   limited, results cached by the catalog provider).
3. Otherwise the title is **unresolved**: a likely hallucination that is
   never persisted.
"""

from __future__ import annotations

from src.interfaces.catalog_provider import ICatalogProvider
from src.interfaces.catalog_store import ICatalogStore
from src.models.catalog import CatalogEntry
from src.models.suggestion import (
    CuratedPick,
    Resolution,
    ResolutionSource,
    ValidatedSuggestion,
)
from src.utils.errors import TransientExternalError
from src.utils.logging import get_logger
from src.utils.text_normalizer import fuzzy_match, strip_citations


class SuggestionValidator:
    """Resolves titles and filters curated picks down to persistable suggestions."""

    def __init__(
        self,
        store: ICatalogStore,
        catalog: ICatalogProvider,
        local_match_threshold: float = 0.6,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._threshold = local_match_threshold
        self._logger = get_logger(__name__)

    async def resolve(self, title: str) -> Resolution:
        """Resolve *title* to an external id, local store first."""
        local = await self._store.find_ids_by_title(title)
        if local:
            best = fuzzy_match(title, [t for _, t in local], threshold=self._threshold)
            if best is not None:
                matched_title = best[0]
                external_id = next(i for i, t in local if t == matched_title)
                return Resolution(
                    external_id=external_id,
                    source=ResolutionSource.CACHE,
                    matched_title=matched_title,
                )

        try:
            external_id = await self._catalog.search_by_title(title)
        except TransientExternalError as exc:
            self._logger.warning("title_search_failed", title=title, error=str(exc))
            return Resolution()

        if external_id is None:
            return Resolution()
        return Resolution(external_id=external_id, source=ResolutionSource.EXTERNAL_SEARCH)

    async def validate(self, entry: CatalogEntry, picks: list[CuratedPick]) -> list[ValidatedSuggestion]:
        """Resolve every pick, in order.

        The result keeps unresolved picks (``resolved_external_id=None``) so
        callers can report them, but drops picks that resolve to *entry*
        itself or to an id already taken by an earlier pick.
        """
        validated: list[ValidatedSuggestion] = []
        seen_ids: set[int] = set()

        for pick in picks:
            resolution = await self.resolve(pick.candidate.title)
            external_id = resolution.external_id
            if external_id is not None and (external_id == entry.external_id or external_id in seen_ids):
                self._logger.debug(
                    "suggestion_dropped_duplicate",
                    title=pick.candidate.title,
                    external_id=external_id,
                )
                continue
            if external_id is not None:
                seen_ids.add(external_id)
            else:
                self._logger.info("suggestion_unresolved", title=pick.candidate.title)

            validated.append(
                ValidatedSuggestion(
                    candidate=pick.candidate,
                    explanation=strip_citations(pick.explanation or pick.candidate.best_reason),
                    resolved_external_id=external_id,
                    resolution_source=resolution.source,
                )
            )
        return validated
