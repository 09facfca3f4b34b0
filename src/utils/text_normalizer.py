"""Text normalization utilities for catalog titles and model-written reasons.

Three concerns live here:

1. **Title keys** -- the case-insensitive, trimmed key that consensus
   merging folds candidates on, plus rapidfuzz helpers for choosing the
   best local title match during validation.

2. **Reason cleanup** -- search-grounded models append citation markers
   (``"Great atmosphere [1][3]"``); these are stripped before a reason is
   persisted or shown.

3. **Catalog descriptions** -- store descriptions arrive as HTML; prompts
   and embeddings want plain text of bounded length.
"""

import html
import re

from rapidfuzz import fuzz, process

_WHITESPACE = re.compile(r"\s+")
_CITATION_MARKER = re.compile(r"\s*\[\d+\]")
_HTML_TAG = re.compile(r"<[^>]+>")


def normalize_title(title: str) -> str:
    """Return the merge key for a title: trimmed, lower-cased, single-spaced.

    ``"  Outer  Wilds "`` and ``"outer wilds"`` produce the same key.
    """
    return _WHITESPACE.sub(" ", title.strip()).lower()


def fuzzy_match(
    query: str,
    candidates: list[str],
    threshold: float = 0.8,
) -> tuple[str, float] | None:
    """Find the best fuzzy match for *query* among *candidates*.

    Uses rapidfuzz ``token_sort_ratio`` so word order differences
    ("Souls Dark" vs "Dark Souls") still match.

    Args:
        query: The title to match.
        candidates: Titles to match against.
        threshold: Minimum similarity (0.0--1.0) to accept a match.

    Returns:
        ``(best_match, score)`` if a match meets the threshold, else ``None``.
    """
    if not candidates:
        return None

    result = process.extractOne(
        query,
        candidates,
        scorer=fuzz.token_sort_ratio,
        processor=normalize_title,
        score_cutoff=threshold * 100,
    )
    if result is None:
        return None

    match_str, score, _ = result
    return (match_str, score / 100.0)


def strip_citations(text: str) -> str:
    """Remove ``[n]`` citation markers and collapse leftover whitespace."""
    return _WHITESPACE.sub(" ", _CITATION_MARKER.sub("", text)).strip()


def strip_html(text: str | None) -> str:
    """Convert a store HTML description into plain text."""
    if not text:
        return ""
    # <br> and </p> carry the paragraph structure; keep it as spaces.
    without_tags = _HTML_TAG.sub(" ", text)
    return _WHITESPACE.sub(" ", html.unescape(without_tags)).strip()


def truncate(text: str, max_chars: int) -> str:
    """Cut *text* at the last word boundary before *max_chars*."""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars].rsplit(" ", 1)[0]
    return cut.rstrip(",.;:") + "..."
