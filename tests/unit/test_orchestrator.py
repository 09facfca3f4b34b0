"""Unit tests for the ingestion orchestrator.

Uses a real SQLite store and lock (one database file per test) with a fake
catalog and a mocked suggestion pipeline.  Separate orchestrator instances
over the same database stand in for separate processes.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.coordination.distributed_lock import DistributedLock
from src.models.catalog import CatalogEntry, SuggestedEntry
from src.models.suggestion import SuggestionRun
from src.pipeline.orchestrator import IngestionOrchestrator, merge_suggestion_lists
from src.pipeline.suggestion_pipeline import SuggestionPipeline
from src.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from src.providers.store.sqlite_database import SQLiteDatabase
from src.services.self_healing import SelfHealingService
from src.utils.concurrency import BackgroundTaskRunner
from src.utils.errors import InvalidSourceError, NotFoundError
from tests.conftest import FAST_POLICY, FakeCatalog, make_entry


def _pipeline_returning(*suggestions: tuple[int, str]) -> MagicMock:
    pipeline = MagicMock(spec=SuggestionPipeline)

    async def run(entry):  # noqa: ANN001, ANN202
        return SuggestionRun(
            external_id=entry.external_id,
            suggestions=[SuggestedEntry(external_id=i, title=t, explanation="match") for i, t in suggestions],
        )

    pipeline.run = AsyncMock(side_effect=run)
    return pipeline


class _LateFirstReadStore(SQLiteCatalogStore):
    """First ``get_entry`` answers "no row" after a delay.

    Models a process whose initial read landed just before another process
    wrote the row and released the ingest lock.
    """

    def __init__(self, database: SQLiteDatabase, delay: float) -> None:
        super().__init__(database)
        self._delay = delay
        self._reads = 0

    async def get_entry(self, external_id: int) -> CatalogEntry | None:
        self._reads += 1
        if self._reads == 1:
            await asyncio.sleep(self._delay)
            return None
        return await super().get_entry(external_id)


def _build(
    database: SQLiteDatabase,
    catalog: FakeCatalog,
    pipeline: MagicMock | None = None,
    store: SQLiteCatalogStore | None = None,
) -> IngestionOrchestrator:
    store = store or SQLiteCatalogStore(database)
    lock = DistributedLock(database, ttl_seconds=30, wait_policy=FAST_POLICY)
    return IngestionOrchestrator(
        store=store,
        catalog=catalog,
        lock=lock,
        suggestion_pipeline=pipeline or _pipeline_returning(),
        healer=SelfHealingService(store, catalog, lock),
        runner=BackgroundTaskRunner(),
        ingestion_wait=FAST_POLICY,
        lock_wait=FAST_POLICY,
    )


@pytest.fixture
def orchestrator(database: SQLiteDatabase, fake_catalog: FakeCatalog) -> IngestionOrchestrator:
    return _build(database, fake_catalog)


def test_merge_suggestion_lists_puts_new_first() -> None:
    existing = [SuggestedEntry(external_id=1), SuggestedEntry(external_id=2, title="old")]
    incoming = [SuggestedEntry(external_id=2, title="new"), SuggestedEntry(external_id=3)]

    merged = merge_suggestion_lists(existing, incoming)

    assert [s.external_id for s in merged] == [2, 3, 1]
    assert merged[0].title == "new"


# ======================================================================
# ingest
# ======================================================================


class TestIngest:
    async def test_fetches_and_persists(
        self, orchestrator: IngestionOrchestrator, fake_catalog: FakeCatalog, store: SQLiteCatalogStore
    ) -> None:
        fake_catalog.add(make_entry(620, "Portal 2"))

        result = await orchestrator.ingest("https://store.steampowered.com/app/620/Portal_2/", skip_enrichment=True)

        assert not result.cached
        assert result.entry.title == "Portal 2"
        assert await store.get_entry(620) is not None

    async def test_existing_entry_is_returned_without_fetch(
        self, orchestrator: IngestionOrchestrator, fake_catalog: FakeCatalog, store: SQLiteCatalogStore
    ) -> None:
        await store.upsert_entry(make_entry(620, "Portal 2"))

        result = await orchestrator.ingest(620)

        assert result.cached
        assert fake_catalog.fetch_calls == []

    async def test_invalid_source(self, orchestrator: IngestionOrchestrator) -> None:
        with pytest.raises(InvalidSourceError):
            await orchestrator.ingest("not a store link")

    async def test_fetch_failure_propagates_and_releases_lock(
        self, orchestrator: IngestionOrchestrator, lock: DistributedLock, store: SQLiteCatalogStore
    ) -> None:
        with pytest.raises(NotFoundError):
            await orchestrator.ingest(404)

        assert not await lock.is_locked("ingest", 404)
        assert await store.get_entry(404) is None

    async def test_concurrent_ingest_fetches_once(
        self, database: SQLiteDatabase, fake_catalog: FakeCatalog
    ) -> None:
        fake_catalog.add(make_entry(70, "Half-Life"))
        fake_catalog.fetch_delay = 0.05
        first = _build(database, fake_catalog)
        second = _build(database, fake_catalog)

        results = await asyncio.gather(
            first.ingest(70, skip_enrichment=True),
            second.ingest(70, skip_enrichment=True),
            first.ingest(70, skip_enrichment=True),
        )

        assert fake_catalog.fetch_calls == [70]
        assert all(r.entry.external_id == 70 for r in results)
        assert sum(1 for r in results if r.waited) == 2

    async def test_wait_timeout_fetches_anyway(
        self, orchestrator: IngestionOrchestrator, fake_catalog: FakeCatalog, lock: DistributedLock
    ) -> None:
        fake_catalog.add(make_entry(71))
        # A holder that never writes the row (e.g. it crashed mid-fetch).
        await lock.acquire("ingest", 71)

        result = await orchestrator.ingest(71, skip_enrichment=True)

        assert fake_catalog.fetch_calls == [71]
        assert not result.waited

    async def test_force_refetches_and_keeps_suggestions(
        self, orchestrator: IngestionOrchestrator, fake_catalog: FakeCatalog, store: SQLiteCatalogStore
    ) -> None:
        await store.upsert_entry(make_entry(72, "Old Name", suggestions=[(5, "Five")]))
        fake_catalog.add(make_entry(72, "New Name"))

        result = await orchestrator.ingest(72, force=True, skip_enrichment=True)

        assert fake_catalog.fetch_calls == [72]
        assert result.entry.title == "New Name"
        assert [s.external_id for s in result.entry.suggested_entries] == [5]

    async def test_force_waits_for_running_ingest(
        self,
        orchestrator: IngestionOrchestrator,
        fake_catalog: FakeCatalog,
        lock: DistributedLock,
        store: SQLiteCatalogStore,
    ) -> None:
        fake_catalog.add(make_entry(73))
        await lock.acquire("ingest", 73)

        async def other_process_finishes() -> None:
            await asyncio.sleep(0.03)
            await store.upsert_entry(make_entry(73, "Fresh"))
            await lock.release("ingest", 73)

        other = asyncio.create_task(other_process_finishes())
        result = await orchestrator.ingest(73, force=True, skip_enrichment=True)
        await other

        assert result.waited
        assert result.entry.title == "Fresh"
        assert fake_catalog.fetch_calls == []

    async def test_row_written_before_lock_is_not_refetched(
        self, database: SQLiteDatabase, fake_catalog: FakeCatalog
    ) -> None:
        fake_catalog.add(make_entry(70, "Half-Life"))
        fake_catalog.fetch_delay = 0.02
        fast = _build(database, fake_catalog)
        late = _build(database, fake_catalog, store=_LateFirstReadStore(database, delay=0.1))

        late_result, fast_result = await asyncio.gather(
            late.ingest(70, skip_enrichment=True),
            fast.ingest(70, skip_enrichment=True),
        )

        assert fake_catalog.fetch_calls == [70]
        assert not fast_result.cached
        assert late_result.cached
        assert late_result.entry.title == "Half-Life"
        assert not await late._lock.is_locked("ingest", 70)

    async def test_force_refetches_when_holder_wrote_nothing(
        self,
        orchestrator: IngestionOrchestrator,
        fake_catalog: FakeCatalog,
        lock: DistributedLock,
        store: SQLiteCatalogStore,
    ) -> None:
        await store.upsert_entry(make_entry(74, "Old Title"))
        fake_catalog.add(make_entry(74, "New Title"))
        await lock.acquire("ingest", 74)

        async def holder_fails() -> None:
            await asyncio.sleep(0.03)
            await lock.release("ingest", 74)

        other = asyncio.create_task(holder_fails())
        result = await orchestrator.ingest(74, force=True, skip_enrichment=True)
        await other

        assert fake_catalog.fetch_calls == [74]
        assert result.entry.title == "New Title"
        assert not await lock.is_locked("ingest", 74)


# ======================================================================
# Enrichment
# ======================================================================


class TestEnrichment:
    async def test_background_enrichment_generates_suggestions(
        self, database: SQLiteDatabase, fake_catalog: FakeCatalog, store: SQLiteCatalogStore
    ) -> None:
        fake_catalog.add(make_entry(1, "Source"))
        fake_catalog.add(make_entry(2, "Suggested"))
        orchestrator = _build(database, fake_catalog, _pipeline_returning((2, "Suggested")))

        result = await orchestrator.ingest(1)
        assert result.enrichment_scheduled
        await orchestrator._runner.drain()

        stored = await store.get_entry(1)
        assert stored is not None
        assert [s.external_id for s in stored.suggested_entries] == [2]
        # Suggested ids are ingested too.
        assert await store.get_entry(2) is not None

    async def test_enrichment_failure_does_not_reach_caller(
        self, database: SQLiteDatabase, fake_catalog: FakeCatalog, store: SQLiteCatalogStore
    ) -> None:
        fake_catalog.add(make_entry(1))
        pipeline = MagicMock(spec=SuggestionPipeline)
        pipeline.run = AsyncMock(side_effect=RuntimeError("model exploded"))
        orchestrator = _build(database, fake_catalog, pipeline)

        result = await orchestrator.ingest(1)
        await orchestrator._runner.drain()

        assert result.entry.external_id == 1
        assert await store.get_entry(1) is not None

    async def test_refresh_merges_with_existing(
        self, database: SQLiteDatabase, fake_catalog: FakeCatalog, store: SQLiteCatalogStore
    ) -> None:
        await store.upsert_entry(make_entry(1, suggestions=[(5, "Five")]))
        await store.upsert_entry(make_entry(5, "Five"))
        await store.upsert_entry(make_entry(7, "Seven"))
        orchestrator = _build(database, fake_catalog, _pipeline_returning((7, "Seven")))

        run = await orchestrator.refresh_suggestions(1)

        assert [s.external_id for s in run.suggestions] == [7, 5]
        stored = await store.get_entry(1)
        assert stored is not None
        assert [s.external_id for s in stored.suggested_entries] == [7, 5]

    async def test_refresh_skipped_when_already_running(
        self,
        database: SQLiteDatabase,
        fake_catalog: FakeCatalog,
        store: SQLiteCatalogStore,
        lock: DistributedLock,
    ) -> None:
        await store.upsert_entry(make_entry(1, suggestions=[(5, "Five")]))
        pipeline = _pipeline_returning((7, "Seven"))
        orchestrator = _build(database, fake_catalog, pipeline)
        await lock.acquire("suggest", 1)

        run = await orchestrator.refresh_suggestions(1)

        assert run.skipped
        assert [s.external_id for s in run.suggestions] == [5]
        pipeline.run.assert_not_called()

    async def test_clear_suggestions(self, orchestrator: IngestionOrchestrator, store: SQLiteCatalogStore) -> None:
        await store.upsert_entry(make_entry(1, suggestions=[(5, "Five")]))
        await orchestrator.clear_suggestions(1)

        stored = await store.get_entry(1)
        assert stored is not None
        assert stored.suggested_entries == []

    async def test_get_entry_unknown(self, orchestrator: IngestionOrchestrator) -> None:
        with pytest.raises(NotFoundError):
            await orchestrator.get_entry(12345)


# ======================================================================
# Auto-ingest and healing
# ======================================================================


class TestAutoIngest:
    async def test_ingests_missing_ids(
        self, orchestrator: IngestionOrchestrator, fake_catalog: FakeCatalog, store: SQLiteCatalogStore
    ) -> None:
        await store.upsert_entry(make_entry(1))
        fake_catalog.add(make_entry(2))

        report = await orchestrator.auto_ingest_missing([1, 2])

        assert report.ingested == [2]
        assert fake_catalog.fetch_calls == [2]

    async def test_not_found_id_is_corrected(
        self, orchestrator: IngestionOrchestrator, fake_catalog: FakeCatalog, store: SQLiteCatalogStore
    ) -> None:
        await store.upsert_entry(make_entry(1, suggestions=[(111, "Moved Game")]))
        fake_catalog.add(make_entry(222, "Moved Game"))

        report = await orchestrator.auto_ingest_missing([111])

        assert report.corrected == {111: 222}
        stored = await store.get_entry(1)
        assert stored is not None
        assert [s.external_id for s in stored.suggested_entries] == [222]
        assert await store.get_entry(222) is not None

    async def test_not_found_id_without_match_is_removed(
        self, orchestrator: IngestionOrchestrator, store: SQLiteCatalogStore
    ) -> None:
        await store.upsert_entry(make_entry(1, suggestions=[(111, "Delisted"), (5, "Five")]))

        report = await orchestrator.auto_ingest_missing([111])

        assert report.removed == [111]
        stored = await store.get_entry(1)
        assert stored is not None
        assert 111 not in [s.external_id for s in stored.suggested_entries]
