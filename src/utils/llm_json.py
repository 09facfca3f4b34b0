"""Defensive JSON extraction from free-form model output.

Models wrap JSON in markdown fences, prepend chatter, append citations, or
return nothing usable at all.  These helpers never trust the full response:
they cut out the first array- or object-shaped substring and parse only
that.  Callers get ``None`` when nothing parses, so every call site has to
pick its own deterministic fallback (empty list, consensus ordering).
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def _unfence(response: str) -> str:
    text = response.strip()
    fence_match = _JSON_FENCE_RE.search(text)
    if fence_match:
        text = fence_match.group(1).strip()
    return text


def _slice_between(text: str, opener: str, closer: str) -> str | None:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json_array(response: str) -> list[dict[str, Any]] | None:
    """Extract a JSON array of objects from an LLM response.

    Returns
    -------
    list[dict] or None
        Object items of the first ``[`` ... last ``]`` substring (non-object
        items are dropped), or ``None`` when no array-shaped substring parses.
    """
    candidate = _slice_between(_unfence(response), "[", "]")
    if candidate is None:
        _logger.debug("json_array_not_found", response_preview=response[:200])
        return None

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        _logger.warning(
            "json_array_parse_failed",
            error=str(exc),
            response_preview=response[:200],
        )
        return None

    if not isinstance(parsed, list):
        return None
    return [item for item in parsed if isinstance(item, dict)]


def extract_json_object(response: str) -> dict[str, Any] | None:
    """Extract a JSON object from an LLM response.

    Same approach as :func:`extract_json_array` with ``{`` ... ``}``.
    """
    candidate = _slice_between(_unfence(response), "{", "}")
    if candidate is None:
        _logger.debug("json_object_not_found", response_preview=response[:200])
        return None

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        _logger.warning(
            "json_object_parse_failed",
            error=str(exc),
            response_preview=response[:200],
        )
        return None

    return parsed if isinstance(parsed, dict) else None


def coerce_unit_float(value: Any, default: float = 0.0) -> float:
    """Clamp a model-provided score into ``[0.0, 1.0]``.

    Models sometimes answer with a string such as ``"0.7"``; anything that
    is not a number falls back to *default*.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, number))
