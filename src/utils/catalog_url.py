"""Parse catalog external ids out of store URLs or raw ids."""

from __future__ import annotations

import re

# Checked in order: the specific store/community hosts first, then any
# ``/app/<id>`` path (mirrors and regional storefronts), then a bare id.
_APP_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"store\.steampowered\.com/app/(\d+)"),
    re.compile(r"steamcommunity\.com/app/(\d+)"),
    re.compile(r"/app/(\d+)"),
    re.compile(r"^(\d+)$"),
)


def parse_external_id(source: str | int) -> int | None:
    """Return the external id referenced by *source*, or ``None``.

    >>> parse_external_id("https://store.steampowered.com/app/620/Portal_2/")
    620
    >>> parse_external_id(" 620 ")
    620
    """
    if isinstance(source, int):
        return source if source > 0 else None

    text = source.strip()
    for pattern in _APP_ID_PATTERNS:
        match = pattern.search(text)
        if match:
            value = int(match.group(1))
            return value if value > 0 else None
    return None
