"""Ingestion orchestrator: the only writer of catalog entries.

Coordinates fetch, persistence and background enrichment of catalog
entries across independent processes that share nothing but the database.

State per external id::

    Unseen  --(lock acquired)----------> Fetching -> Persisted (lock released)
    Unseen  --(lock held elsewhere)----> Waiting  -> row appears: return it
                                                   -> timeout: fetch anyway
    Seen, force=False -----------------> return the stored row, no fetch
    Seen, force=True  -----------------> same path as Unseen, row overwritten

Fetch failures propagate to the caller.  The ingest lock is released in a
``finally`` block, so a crashed fetch never holds it past its TTL.
Enrichment (suggestions, facet embeddings, auto-ingest of suggested ids)
runs detached through :class:`BackgroundTaskRunner`; its failures are
logged there and never reach the ingest caller.
"""

from __future__ import annotations

import aiosqlite

from src.coordination.distributed_lock import DistributedLock
from src.interfaces.catalog_provider import ICatalogProvider
from src.interfaces.catalog_store import ICatalogStore
from src.models.catalog import AutoIngestReport, CatalogEntry, IngestResult, SuggestedEntry, utc_now
from src.models.suggestion import HealingOutcome, SuggestionRun
from src.pipeline.suggestion_pipeline import SuggestionPipeline
from src.services.facet_similarity import FacetSimilarityService
from src.services.self_healing import SelfHealingService
from src.utils.catalog_url import parse_external_id
from src.utils.concurrency import BackgroundTaskRunner, PollPolicy, poll_until
from src.utils.errors import (
    IngestionError,
    InvalidSourceError,
    NotFoundError,
    TransientExternalError,
    VibeFinderError,
)
from src.utils.logging import get_logger

_INGEST_LOCK = "ingest"
_SUGGEST_LOCK = "suggest"


def merge_suggestion_lists(
    existing: list[SuggestedEntry],
    incoming: list[SuggestedEntry],
) -> list[SuggestedEntry]:
    """Incoming suggestions first, then older ones not superseded by id."""
    incoming_ids = {s.external_id for s in incoming}
    return list(incoming) + [s for s in existing if s.external_id not in incoming_ids]


class IngestionOrchestrator:
    """Ingests entries and drives their enrichment.

    Parameters
    ----------
    ingestion_wait:
        Bound on polling for a row another caller is fetching.
    lock_wait:
        Bound on waiting for a held ingest lock during a forced re-ingest.
    similarity:
        ``None`` disables facet-embedding enrichment.
    """

    def __init__(
        self,
        store: ICatalogStore,
        catalog: ICatalogProvider,
        lock: DistributedLock,
        suggestion_pipeline: SuggestionPipeline,
        healer: SelfHealingService,
        runner: BackgroundTaskRunner,
        similarity: FacetSimilarityService | None = None,
        ingestion_wait: PollPolicy | None = None,
        lock_wait: PollPolicy | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._lock = lock
        self._pipeline = suggestion_pipeline
        self._healer = healer
        self._runner = runner
        self._similarity = similarity
        self._ingestion_wait = ingestion_wait or PollPolicy(max_attempts=10, interval_seconds=1.0)
        self._lock_wait = lock_wait or PollPolicy(max_attempts=20, interval_seconds=0.5)
        # Same-process fast path only; the ingest lock is the real guard.
        self._in_flight: set[int] = set()
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(
        self,
        source: str | int,
        skip_enrichment: bool = False,
        force: bool = False,
    ) -> IngestResult:
        """Ingest the entry identified by *source* (store URL or id).

        Raises
        ------
        InvalidSourceError
            *source* holds no recognisable external id.
        NotFoundError
            The catalog has no usable record for the id.
        TransientExternalError
            The catalog fetch failed after retries.
        IngestionError
            The fetched entry could not be written.
        """
        external_id = parse_external_id(source)
        if external_id is None:
            raise InvalidSourceError(message=f"No catalog id in {source!r}")

        if not force:
            existing = await self._store.get_entry(external_id)
            if existing is not None:
                self._logger.debug("ingest_cache_hit", external_id=external_id)
                return IngestResult(entry=existing, cached=True)
            if external_id in self._in_flight:
                waited = await self._wait_for_row(external_id)
                if waited is not None:
                    return IngestResult(entry=waited, waited=True)

        lock = await self._lock.acquire(_INGEST_LOCK, external_id)
        if lock.acquired and not force:
            # Another process may have written the row and released the lock
            # between the read above and this acquire.
            existing = await self._store.get_entry(external_id)
            if existing is not None:
                await self._lock.release(_INGEST_LOCK, external_id, lock_id=lock.lock_id)
                self._logger.debug("ingest_cache_hit_after_lock", external_id=external_id)
                return IngestResult(entry=existing, cached=True)
        elif not lock.acquired:
            if not force:
                waited = await self._wait_for_row(external_id)
                if waited is not None:
                    return IngestResult(entry=waited, waited=True)
                self._logger.warning(
                    "ingest_wait_timeout",
                    external_id=external_id,
                    waited_seconds=self._ingestion_wait.max_wait_seconds,
                )
            else:
                wait_started = utc_now()
                if await self._wait_for_release(external_id):
                    fresh = await self._store.get_entry(external_id)
                    # Only a row rewritten during the wait satisfies a forced
                    # ingest; if the holder failed, fetch here instead.
                    if fresh is not None and fresh.updated_at > wait_started:
                        return IngestResult(entry=fresh, waited=True)
                self._logger.info("ingest_force_refetching", external_id=external_id)
                lock = await self._lock.acquire(_INGEST_LOCK, external_id)

        entry = await self._fetch_and_persist(external_id, lock_id=lock.lock_id if lock.acquired else None)

        if skip_enrichment:
            return IngestResult(entry=entry)
        self._runner.spawn(
            f"enrich:{external_id}",
            self.enrich(external_id),
            external_id=external_id,
        )
        return IngestResult(entry=entry, enrichment_scheduled=True)

    async def _fetch_and_persist(self, external_id: int, lock_id: str | None) -> CatalogEntry:
        self._in_flight.add(external_id)
        try:
            fetched = await self._catalog.fetch_entry(external_id)
            try:
                saved = await self._store.save_fetched_entry(fetched)
            except aiosqlite.Error as exc:
                raise IngestionError(message=f"Failed to persist entry {external_id}: {exc}") from exc
        finally:
            self._in_flight.discard(external_id)
            if lock_id is not None:
                await self._lock.release(_INGEST_LOCK, external_id, lock_id=lock_id)

        self._logger.info("entry_ingested", external_id=external_id, title=saved.title)
        return saved

    async def _wait_for_row(self, external_id: int) -> CatalogEntry | None:
        self._logger.info("ingest_waiting_for_in_flight", external_id=external_id)
        return await poll_until(lambda: self._store.get_entry(external_id), self._ingestion_wait)

    async def _wait_for_release(self, external_id: int) -> bool:
        async def _released() -> bool | None:
            return True if not await self._lock.is_locked(_INGEST_LOCK, external_id) else None

        return await poll_until(_released, self._lock_wait) is not None

    async def get_entry(self, external_id: int) -> CatalogEntry:
        entry = await self._store.get_entry(external_id)
        if entry is None:
            raise NotFoundError(
                message=f"Entry {external_id} has not been ingested",
                external_id=external_id,
            )
        return entry

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def enrich(self, external_id: int) -> None:
        """Background enrichment for a freshly ingested entry.

        Facet embeddings are best effort.  Suggestions are generated only
        when the entry has none yet; an explicit refresh regenerates them.
        """
        entry = await self._store.get_entry(external_id)
        if entry is None:
            return

        if self._similarity is not None and not entry.facet_embeddings:
            try:
                await self._similarity.extract_and_embed(entry)
            except TransientExternalError as exc:
                self._logger.warning("facet_enrichment_failed", external_id=external_id, error=str(exc))

        if not entry.suggested_entries:
            await self.refresh_suggestions(external_id)

    async def refresh_suggestions(self, external_id: int) -> SuggestionRun:
        """Regenerate suggestions and merge them into the stored list.

        Runs under the ``suggest`` lock; a concurrent refresh of the same
        entry is skipped (``SuggestionRun.skipped``).  Suggested ids that are
        not in the store yet are ingested afterwards.
        """
        entry = await self.get_entry(external_id)

        async def _generate() -> SuggestionRun:
            run = await self._pipeline.run(entry)
            current = await self._store.get_entry(external_id)
            existing = current.suggested_entries if current is not None else []
            persisted = merge_suggestion_lists(existing, run.suggestions)
            await self._store.update_suggestions(external_id, persisted)
            return run.model_copy(update={"suggestions": persisted})

        outcome = await self._lock.with_lock(_SUGGEST_LOCK, external_id, _generate)
        if not outcome.ran:
            self._logger.info("suggestion_refresh_skipped", external_id=external_id)
            return SuggestionRun(
                external_id=external_id,
                suggestions=entry.suggested_entries,
                skipped=True,
            )

        run: SuggestionRun = outcome.value
        await self.auto_ingest_missing([s.external_id for s in run.suggestions])
        return run

    async def clear_suggestions(self, external_id: int) -> None:
        await self.get_entry(external_id)
        await self._store.update_suggestions(external_id, [])
        self._logger.info("suggestions_cleared", external_id=external_id)

    async def auto_ingest_missing(self, external_ids: list[int]) -> AutoIngestReport:
        """Ingest suggested ids that are not stored yet, one at a time.

        A ``NotFoundError`` sends the id through the self-healing sweep;
        other failures are recorded and skipped.
        """
        missing = await self._store.find_missing_ids(external_ids)
        ingested: list[int] = []
        corrected: dict[int, int] = {}
        removed: list[int] = []
        failed: list[int] = []

        for suggested_id in missing:
            try:
                await self.ingest(suggested_id, skip_enrichment=True)
                ingested.append(suggested_id)
            except NotFoundError:
                outcome = await self.heal_reference(suggested_id)
                if outcome.corrected_id is not None:
                    corrected[suggested_id] = outcome.corrected_id
                elif outcome.ran and not outcome.aborted:
                    removed.append(suggested_id)
                else:
                    failed.append(suggested_id)
            except VibeFinderError as exc:
                self._logger.warning("auto_ingest_failed", external_id=suggested_id, error=str(exc))
                failed.append(suggested_id)

        report = AutoIngestReport(ingested=ingested, corrected=corrected, removed=removed, failed=failed)
        if missing:
            self._logger.info(
                "auto_ingest_complete",
                missing=len(missing),
                ingested=len(ingested),
                corrected=len(corrected),
                removed=len(removed),
                failed=len(failed),
            )
        return report

    async def heal_reference(self, stale_id: int, title_hint: str | None = None) -> HealingOutcome:
        """Run the self-healing sweep, then ingest the corrected id if any."""
        outcome = await self._healer.correct_or_remove(stale_id, title_hint)
        if outcome.corrected_id is not None:
            try:
                await self.ingest(outcome.corrected_id, skip_enrichment=True)
            except VibeFinderError as exc:
                self._logger.warning(
                    "corrected_ingest_failed",
                    stale_id=stale_id,
                    corrected_id=outcome.corrected_id,
                    error=str(exc),
                )
        return outcome
