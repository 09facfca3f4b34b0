"""Adaptive facet scoring models for vibefinder.

An entry is classified into a small fixed taxonomy of types; each type
carries a constant weight vector over similarity facets.  Candidates are
then scored per facet (0.0-1.0) and combined into a single total with a
tone gate (see ``src/services/facet_scoring.py``).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EntryType(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Primary type of a catalog entry."""

    MAINSTREAM = "mainstream"
    EXPERIMENTAL = "experimental"  # art / avant-garde games
    COZY = "cozy"
    COMPETITIVE = "competitive"
    NARRATIVE = "narrative"

    @classmethod
    def parse(cls, value: object) -> EntryType | None:
        """Map a model-written label onto the taxonomy (``None`` if unknown)."""
        if not isinstance(value, str):
            return None
        label = value.strip().lower().replace("_", "-")
        if label in {"avant-garde", "avant garde", "art", "art-game", "experimental"}:
            return cls.EXPERIMENTAL
        try:
            return cls(label)
        except ValueError:
            return None


class Facet(str, Enum):  # noqa: UP042
    """Similarity dimensions.  ``ARTISTRY`` is weighted but not model-graded."""

    TONE = "tone"
    PRESENTATION = "presentation"
    THEME = "theme"
    MECHANICS = "mechanics"
    ARTISTRY = "artistry"


class EntryTypeProfile(BaseModel):
    """Classification of an entry plus its facet weight vector.

    Recomputed on demand; never persisted as its own record.
    """

    model_config = ConfigDict(frozen=True)

    primary_type: EntryType
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""
    facet_weights: dict[Facet, float] = Field(default_factory=dict)
    # Short descriptors (e.g. "melancholic, slow") used to steer prompts.
    descriptors: list[str] = Field(default_factory=list)
    creator_override: bool = False


class FacetScores(BaseModel):
    """Model-graded per-facet similarity between a source and a candidate."""

    model_config = ConfigDict(frozen=True)

    tone: float = Field(ge=0.0, le=1.0)
    presentation: float = Field(ge=0.0, le=1.0)
    theme: float = Field(ge=0.0, le=1.0)
    mechanics: float = Field(ge=0.0, le=1.0)
    reasons: dict[str, str] = Field(default_factory=dict)

    def as_map(self) -> dict[Facet, float]:
        return {
            Facet.TONE: self.tone,
            Facet.PRESENTATION: self.presentation,
            Facet.THEME: self.theme,
            Facet.MECHANICS: self.mechanics,
        }


class FacetScore(BaseModel):
    """Combined score for one candidate.

    ``total`` drives ranking; ``weighted`` (the profile-weighted mean of the
    graded facets) only breaks ties between equal totals.
    """

    model_config = ConfigDict(frozen=True)

    total: float
    per_facet: dict[Facet, float] = Field(default_factory=dict)
    grade: str
    gated: bool = False
    weighted: float = 0.0
