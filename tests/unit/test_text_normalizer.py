"""Unit tests for text normalization utilities."""

from __future__ import annotations

from src.utils.text_normalizer import (
    fuzzy_match,
    normalize_title,
    strip_citations,
    strip_html,
    truncate,
)


# ======================================================================
# normalize_title
# ======================================================================


class TestNormalizeTitle:
    def test_lowercases_and_trims(self) -> None:
        assert normalize_title("  Outer Wilds ") == "outer wilds"

    def test_collapses_inner_whitespace(self) -> None:
        assert normalize_title("Outer \t  Wilds") == "outer wilds"

    def test_equal_keys_for_case_variants(self) -> None:
        assert normalize_title("HOLLOW KNIGHT") == normalize_title("hollow knight")

    def test_punctuation_is_kept(self) -> None:
        assert normalize_title("Baba Is You!") == "baba is you!"

    def test_empty_string(self) -> None:
        assert normalize_title("   ") == ""


# ======================================================================
# fuzzy_match
# ======================================================================


class TestFuzzyMatch:
    def test_exact_match_scores_one(self) -> None:
        result = fuzzy_match("Celeste", ["Celeste", "Celeste Classic"])
        assert result is not None
        assert result[0] == "Celeste"
        assert result[1] == 1.0

    def test_word_order_does_not_matter(self) -> None:
        result = fuzzy_match("Souls Dark", ["Dark Souls"])
        assert result is not None
        assert result[0] == "Dark Souls"

    def test_case_insensitive(self) -> None:
        result = fuzzy_match("INSIDE", ["Inside"])
        assert result is not None
        assert result[0] == "Inside"

    def test_below_threshold_returns_none(self) -> None:
        assert fuzzy_match("Tetris", ["Disco Elysium"], threshold=0.8) is None

    def test_empty_candidates(self) -> None:
        assert fuzzy_match("Celeste", []) is None


# ======================================================================
# strip_citations / strip_html / truncate
# ======================================================================


class TestStripCitations:
    def test_removes_markers(self) -> None:
        assert strip_citations("Dreamy and slow [1][3]") == "Dreamy and slow"

    def test_removes_markers_mid_sentence(self) -> None:
        assert strip_citations("Dreamy [2] and slow") == "Dreamy and slow"

    def test_plain_text_unchanged(self) -> None:
        assert strip_citations("Same melancholy") == "Same melancholy"


class TestStripHtml:
    def test_removes_tags_and_unescapes(self) -> None:
        assert strip_html("<p>Rock &amp; roll<br>forever</p>") == "Rock & roll forever"

    def test_none_is_empty(self) -> None:
        assert strip_html(None) == ""


class TestTruncate:
    def test_short_text_unchanged(self) -> None:
        assert truncate("short", 100) == "short"

    def test_cuts_on_word_boundary(self) -> None:
        assert truncate("hello world again", 11) == "hello..."
