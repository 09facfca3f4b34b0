"""Static domain knowledge for game similarity.

Hand-curated constants used by classification, scoring and the
type-adapted generation strategy:

  - creators whose catalogue is reliably experimental / art-game work,
    which override the model's classification;
  - per-type facet weight vectors (fixed, not learned);
  - per-type prompt focus for the ``type_adapted`` strategy.

All helpers are pure; tables are built at import time.
"""

from __future__ import annotations

import re

from src.models.scoring import EntryType, Facet

# ═════════════════════════════════════════════════════════════════════════
# 1. KNOWN EXPERIMENTAL CREATORS
# ═════════════════════════════════════════════════════════════════════════
# Lowercase.  Matched as whole words inside each developer name, so
# "Tale of Tales BVBA" hits while a developer called "Tale" does not.

KNOWN_EXPERIMENTAL_CREATORS: frozenset[str] = frozenset({
    "the water museum",
    "thecatamites",
    "tale of tales",
    "ice water games",
    "kittyhorrorshow",
    "increpare",
    "molleindustria",
    "stephen lavelle",
    "nathalie lawhead",
    "porpentine",
    "connor sherlock",
    "cactus",
    "messhof",
    "droqen",
    "jonatan söderström",
    "clint hocking",
    "david o'reilly",
})

EXPERIMENTAL_OVERRIDE_CONFIDENCE = 0.9

# Longest first so "ice water games" wins over any shorter overlapping name.
_CREATOR_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (creator, re.compile(rf"(?<!\w){re.escape(creator)}(?!\w)"))
    for creator in sorted(KNOWN_EXPERIMENTAL_CREATORS, key=lambda c: (-len(c), c))
]


def find_experimental_creator(developers: list[str]) -> str | None:
    """Return the first allow-listed creator matching *developers*, if any."""
    for developer in developers:
        name = developer.strip().lower()
        if not name:
            continue
        for creator, pattern in _CREATOR_PATTERNS:
            if pattern.search(name):
                return creator
    return None


# ═════════════════════════════════════════════════════════════════════════
# 2. FACET WEIGHTS PER ENTRY TYPE
# ═════════════════════════════════════════════════════════════════════════
# Each row sums to 1.0.  Experimental leans on tone and artistic intent;
# competitive inverts that and leans on mechanics.

TYPE_FACET_WEIGHTS: dict[EntryType, dict[Facet, float]] = {
    EntryType.EXPERIMENTAL: {
        Facet.TONE: 0.35,
        Facet.PRESENTATION: 0.25,
        Facet.THEME: 0.15,
        Facet.MECHANICS: 0.05,
        Facet.ARTISTRY: 0.20,
    },
    EntryType.COZY: {
        Facet.TONE: 0.40,
        Facet.PRESENTATION: 0.35,
        Facet.THEME: 0.15,
        Facet.MECHANICS: 0.10,
        Facet.ARTISTRY: 0.0,
    },
    EntryType.COMPETITIVE: {
        Facet.TONE: 0.15,
        Facet.PRESENTATION: 0.10,
        Facet.THEME: 0.10,
        Facet.MECHANICS: 0.65,
        Facet.ARTISTRY: 0.0,
    },
    EntryType.NARRATIVE: {
        Facet.TONE: 0.30,
        Facet.PRESENTATION: 0.20,
        Facet.THEME: 0.35,
        Facet.MECHANICS: 0.15,
        Facet.ARTISTRY: 0.0,
    },
    EntryType.MAINSTREAM: {
        Facet.TONE: 0.30,
        Facet.PRESENTATION: 0.25,
        Facet.THEME: 0.20,
        Facet.MECHANICS: 0.25,
        Facet.ARTISTRY: 0.0,
    },
}


def weights_for(entry_type: EntryType) -> dict[Facet, float]:
    return dict(TYPE_FACET_WEIGHTS[entry_type])


# ═════════════════════════════════════════════════════════════════════════
# 3. TYPE-ADAPTED PROMPT FOCUS
# ═════════════════════════════════════════════════════════════════════════
# Appended to the type_adapted strategy prompt.  Describes what a good
# match looks like for this kind of game.

TYPE_PROMPT_FOCUS: dict[EntryType, str] = {
    EntryType.EXPERIMENTAL: (
        "This is an EXPERIMENTAL / ART game. Find other art games, small "
        "auteur works and strange short experiences. Match artistic intent, "
        "surreal or unsettling atmosphere and formal experimentation. "
        "Avoid mainstream indie hits and anything chosen only for its genre."
    ),
    EntryType.COZY: (
        "This is a COZY game. Find gentle, low-stress games with warm "
        "presentation and a relaxing loop. Match comfort, softness and "
        "pacing. Avoid anything tense, punishing or violent."
    ),
    EntryType.COMPETITIVE: (
        "This is a COMPETITIVE game. Find games with similar skill "
        "expression, match structure and mastery curve. Mechanics and "
        "depth matter far more than theme or art style."
    ),
    EntryType.NARRATIVE: (
        "This is a NARRATIVE game. Find story-driven games with similar "
        "themes, writing style and emotional arc. Theme and tone matter "
        "more than gameplay systems."
    ),
    EntryType.MAINSTREAM: (
        "Find games that share both the feel and the core gameplay, "
        "favouring lesser-known titles over the obvious best sellers."
    ),
}
