"""Unit tests for the vibefinder Pydantic models.

Covers validation bounds, immutability, default factories and the small
helper properties the services rely on.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.models.catalog import AutoIngestReport, CatalogEntry, SuggestedEntry
from src.models.coordination import LockOutcome, LockResult
from src.models.scoring import EntryType, Facet, FacetScores
from src.models.suggestion import (
    MergedCandidate,
    ResolutionSource,
    StrategyResult,
    ValidatedSuggestion,
)


# ======================================================================
# Catalog
# ======================================================================


class TestCatalogEntry:
    def test_create_with_minimal_data(self) -> None:
        entry = CatalogEntry(external_id=620, title="Portal 2")
        assert entry.entry_type == "game"
        assert entry.suggested_entries == []
        assert entry.created_at.tzinfo is not None

    def test_default_factory_lists_not_shared(self) -> None:
        first = CatalogEntry(external_id=1, title="A")
        second = CatalogEntry(external_id=2, title="B")
        assert first.tags is not second.tags
        assert first.facet_embeddings is not second.facet_embeddings

    def test_frozen_immutability(self) -> None:
        entry = CatalogEntry(external_id=1, title="A")
        with pytest.raises(ValidationError):
            entry.title = "B"  # type: ignore[misc]

    def test_description_falls_back_to_long(self) -> None:
        entry = CatalogEntry(external_id=1, title="A", long_description="Long text")
        assert entry.description == "Long text"

    def test_suggested_ids(self) -> None:
        entry = CatalogEntry(
            external_id=1,
            title="A",
            suggested_entries=[SuggestedEntry(external_id=5), SuggestedEntry(external_id=7)],
        )
        assert entry.suggested_ids == [5, 7]

    def test_json_round_trip_keeps_embeddings(self) -> None:
        entry = CatalogEntry(external_id=1, title="A", facet_embeddings={"gameplay": [0.1, 0.2]})
        restored = CatalogEntry.model_validate_json(entry.model_dump_json())
        assert restored.facet_embeddings == {"gameplay": [0.1, 0.2]}


class TestSuggestedEntry:
    def test_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            SuggestedEntry(external_id=1, score=1.5)
        with pytest.raises(ValidationError):
            SuggestedEntry(external_id=1, score=-0.1)

    def test_auto_ingest_report_defaults(self) -> None:
        report = AutoIngestReport()
        assert report.ingested == [] and report.corrected == {}


# ======================================================================
# Suggestion pipeline
# ======================================================================


class TestSuggestionModels:
    def test_strategy_success_tracks_error(self) -> None:
        assert StrategyResult(name="direct").succeeded is True
        assert StrategyResult(name="direct", error="timeout").succeeded is False

    def test_best_reason(self) -> None:
        assert MergedCandidate(normalized_title="limbo", title="Limbo").best_reason == ""
        merged = MergedCandidate(normalized_title="limbo", title="Limbo", reasons=["first", "second"])
        assert merged.best_reason == "first"

    def test_unresolved_suggestion_cannot_be_persisted(self) -> None:
        suggestion = ValidatedSuggestion(candidate=MergedCandidate(normalized_title="x", title="X"))
        assert suggestion.is_resolved is False
        with pytest.raises(ValueError):
            suggestion.to_suggested_entry()

    def test_to_suggested_entry(self) -> None:
        suggestion = ValidatedSuggestion(
            candidate=MergedCandidate(normalized_title="limbo", title="Limbo", reasons=["dread"]),
            resolved_external_id=48000,
            resolution_source=ResolutionSource.EXTERNAL_SEARCH,
            score=0.72,
            grade="A",
        )
        persisted = suggestion.to_suggested_entry()
        assert persisted == SuggestedEntry(
            external_id=48000, title="Limbo", explanation="dread", score=0.72, grade="A"
        )

    def test_resolution_source_wire_values(self) -> None:
        assert ResolutionSource.EXTERNAL_SEARCH.value == "externalSearch"


# ======================================================================
# Scoring
# ======================================================================


class TestScoringModels:
    @pytest.mark.parametrize(
        ("label", "expected"),
        [
            ("Narrative", EntryType.NARRATIVE),
            ("avant-garde", EntryType.EXPERIMENTAL),
            ("art_game", EntryType.EXPERIMENTAL),
            ("roguelike", None),
            (3, None),
        ],
    )
    def test_entry_type_parse(self, label: object, expected: EntryType | None) -> None:
        assert EntryType.parse(label) is expected

    def test_facet_scores_bounds(self) -> None:
        with pytest.raises(ValidationError):
            FacetScores(tone=1.2, presentation=0.5, theme=0.5, mechanics=0.5)

    def test_as_map_excludes_artistry(self) -> None:
        scores = FacetScores(tone=0.1, presentation=0.2, theme=0.3, mechanics=0.4)
        assert Facet.ARTISTRY not in scores.as_map()
        assert scores.as_map()[Facet.MECHANICS] == 0.4


# ======================================================================
# Coordination
# ======================================================================


class TestCoordinationModels:
    def test_lock_result_contended(self) -> None:
        result = LockResult(acquired=False, lock_key="ingest:620")
        assert result.lock_id is None

    def test_lock_outcome_not_run(self) -> None:
        outcome: LockOutcome[int] = LockOutcome(ran=False)
        assert outcome.value is None
