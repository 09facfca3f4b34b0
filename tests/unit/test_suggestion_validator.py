"""Unit tests for title resolution and suggestion validation."""

from __future__ import annotations

from src.models.suggestion import CuratedPick, MergedCandidate, ResolutionSource
from src.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from src.services.suggestion_validator import SuggestionValidator
from src.utils.errors import TransientExternalError
from tests.conftest import FakeCatalog, make_entry


def _pick(title: str, explanation: str = "") -> CuratedPick:
    return CuratedPick(
        candidate=MergedCandidate(normalized_title=title.lower(), title=title, reasons=["consensus reason"]),
        explanation=explanation,
    )


class TestResolve:
    async def test_local_store_first(self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog) -> None:
        await store.upsert_entry(make_entry(367520, "Hollow Knight"))
        fake_catalog.titles["hollow knight"] = 1

        resolution = await SuggestionValidator(store, fake_catalog).resolve("Hollow Knight")

        assert resolution.external_id == 367520
        assert resolution.source is ResolutionSource.CACHE
        assert fake_catalog.search_calls == []

    async def test_falls_back_to_catalog_search(self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog) -> None:
        fake_catalog.titles["celeste"] = 504230

        resolution = await SuggestionValidator(store, fake_catalog).resolve("Celeste")

        assert resolution.external_id == 504230
        assert resolution.source is ResolutionSource.EXTERNAL_SEARCH

    async def test_weak_local_match_goes_to_search(
        self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog
    ) -> None:
        await store.upsert_entry(make_entry(1, "Inside the Backrooms: Extended Collector's Edition"))
        fake_catalog.titles["inside"] = 304430

        resolution = await SuggestionValidator(store, fake_catalog).resolve("Inside")

        assert resolution.external_id == 304430

    async def test_unresolved(self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog) -> None:
        resolution = await SuggestionValidator(store, fake_catalog).resolve("Totally Real Game")
        assert resolution.external_id is None
        assert resolution.source is ResolutionSource.UNRESOLVED

    async def test_search_failure_is_unresolved(self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog) -> None:
        fake_catalog.search_error = TransientExternalError(message="503")
        resolution = await SuggestionValidator(store, fake_catalog).resolve("Celeste")
        assert resolution.external_id is None


class TestValidate:
    async def test_drops_self_reference_and_duplicates(
        self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog
    ) -> None:
        fake_catalog.titles.update({"source game": 1, "limbo": 48000, "limbo (2010)": 48000, "braid": 26800})
        picks = [_pick("Source Game"), _pick("Limbo"), _pick("LIMBO (2010)"), _pick("Braid")]

        validated = await SuggestionValidator(store, fake_catalog).validate(make_entry(1, "Source Game"), picks)

        assert [v.resolved_external_id for v in validated] == [48000, 26800]

    async def test_keeps_unresolved_for_reporting(self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog) -> None:
        fake_catalog.titles["braid"] = 26800
        validated = await SuggestionValidator(store, fake_catalog).validate(
            make_entry(1), [_pick("Imaginary Quest"), _pick("Braid")]
        )

        assert [v.is_resolved for v in validated] == [False, True]

    async def test_explanation_cleanup(self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog) -> None:
        fake_catalog.titles["braid"] = 26800
        validated = await SuggestionValidator(store, fake_catalog).validate(
            make_entry(1), [_pick("Braid", "time puzzles [4]")]
        )
        assert validated[0].explanation == "time puzzles"
        assert validated[0].to_suggested_entry().explanation == "time puzzles"

    async def test_missing_explanation_uses_reason(
        self, store: SQLiteCatalogStore, fake_catalog: FakeCatalog
    ) -> None:
        fake_catalog.titles["braid"] = 26800
        validated = await SuggestionValidator(store, fake_catalog).validate(make_entry(1), [_pick("Braid")])
        assert validated[0].explanation == "consensus reason"
