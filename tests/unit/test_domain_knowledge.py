"""Unit tests for src/config/domain_knowledge.py.

Weights and creator matching are exercised through the scorer in
test_facet_scoring.py; these cover the tables themselves.
"""

from __future__ import annotations

import pytest

from src.config.domain_knowledge import (
    KNOWN_EXPERIMENTAL_CREATORS,
    TYPE_FACET_WEIGHTS,
    TYPE_PROMPT_FOCUS,
    find_experimental_creator,
    weights_for,
)
from src.models.scoring import EntryType, Facet


# ═══════════════════════════════════════════════════════════════════════════
# 1. Experimental creators
# ═══════════════════════════════════════════════════════════════════════════


class TestExperimentalCreators:
    def test_table_is_lowercase(self) -> None:
        for creator in KNOWN_EXPERIMENTAL_CREATORS:
            assert creator == creator.lower(), f"Creator '{creator}' is not lowercase"

    def test_blank_developer_names_are_skipped(self) -> None:
        assert find_experimental_creator(["", "   "]) is None

    def test_first_matching_developer_wins(self) -> None:
        assert find_experimental_creator(["Valve", "Increpare Games"]) == "increpare"

    @pytest.mark.parametrize("developer", ["Ice", "Tale", "Water", "Cactusoft", "Increpared"])
    def test_partial_names_do_not_match(self, developer: str) -> None:
        assert find_experimental_creator([developer]) is None

    def test_longer_creator_name_wins(self) -> None:
        assert find_experimental_creator(["Ice Water Games"]) == "ice water games"


# ═══════════════════════════════════════════════════════════════════════════
# 2. Per-type tables
# ═══════════════════════════════════════════════════════════════════════════


class TestTypeTables:
    @pytest.mark.parametrize("entry_type", list(EntryType))
    def test_every_type_has_weights_and_focus(self, entry_type: EntryType) -> None:
        assert set(TYPE_FACET_WEIGHTS[entry_type]) == set(Facet)
        assert TYPE_PROMPT_FOCUS[entry_type].strip()

    def test_artistry_only_weighted_for_experimental(self) -> None:
        for entry_type, weights in TYPE_FACET_WEIGHTS.items():
            if entry_type is EntryType.EXPERIMENTAL:
                assert weights[Facet.ARTISTRY] > 0
            else:
                assert weights[Facet.ARTISTRY] == 0.0

    def test_weights_for_returns_a_copy(self) -> None:
        weights = weights_for(EntryType.COZY)
        weights[Facet.TONE] = 0.0
        assert TYPE_FACET_WEIGHTS[EntryType.COZY][Facet.TONE] == 0.40
