"""Suggestion pipeline models for vibefinder.

The suggestion pipeline turns noisy model output into a validated list:

    Candidate          -- one ``{title, reason}`` pair from one strategy
    StrategyResult     -- everything one strategy produced (or why it failed)
    MergedCandidate    -- candidates folded across strategies by title key
    ValidatedSuggestion-- a merged candidate with its resolved external id
    SuggestionRun      -- the persisted list plus run statistics

Only ``SuggestedEntry`` (see ``catalog.py``) is persisted; everything here
is ephemeral.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.catalog import SuggestedEntry
from src.models.scoring import EntryTypeProfile


class Candidate(BaseModel):
    """A raw suggestion as a single strategy produced it."""

    model_config = ConfigDict(frozen=True)

    title: str
    raw_reason: str = ""


class StrategyResult(BaseModel):
    """Candidates produced by one strategy, with success/failure bookkeeping.

    A failed strategy is recorded with zero candidates and an ``error``
    string; it never aborts the other strategies.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    candidates: list[Candidate] = Field(default_factory=list)
    attempts: int = 1
    elapsed_ms: float = 0.0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class MergedCandidate(BaseModel):
    """Candidates from all strategies folded on the normalized title.

    ``mention_count`` is an agreement signal, not a correctness guarantee.
    ``title`` keeps the display spelling of the first occurrence.
    """

    model_config = ConfigDict(frozen=True)

    normalized_title: str
    title: str
    mention_count: int = 1
    reasons: list[str] = Field(default_factory=list)
    source_strategies: list[str] = Field(default_factory=list)

    @property
    def best_reason(self) -> str:
        return self.reasons[0] if self.reasons else ""


class ResolutionSource(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Where a candidate's external id came from."""

    CACHE = "cache"                    # local title match against persisted entries
    EXTERNAL_SEARCH = "externalSearch" # catalog search-by-title
    UNRESOLVED = "unresolved"          # hallucination candidate


class Resolution(BaseModel):
    """Result of resolving one title to an external id."""

    model_config = ConfigDict(frozen=True)

    external_id: int | None = None
    source: ResolutionSource = ResolutionSource.UNRESOLVED
    matched_title: str | None = None


class ValidatedSuggestion(BaseModel):
    """A merged candidate plus its resolution and (optional) score."""

    model_config = ConfigDict(frozen=True)

    candidate: MergedCandidate
    explanation: str = ""
    resolved_external_id: int | None = None
    resolution_source: ResolutionSource = ResolutionSource.UNRESOLVED
    score: float | None = None
    weighted_score: float | None = None
    grade: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_external_id is not None

    def to_suggested_entry(self) -> SuggestedEntry:
        if self.resolved_external_id is None:
            raise ValueError(f"unresolved suggestion {self.candidate.title!r} cannot be persisted")
        return SuggestedEntry(
            external_id=self.resolved_external_id,
            title=self.candidate.title,
            explanation=self.explanation or self.candidate.best_reason,
            score=self.score,
            grade=self.grade,
        )


class SuggestionRun(BaseModel):
    """The outcome of one suggestion pipeline run for an entry."""

    model_config = ConfigDict(frozen=True)

    external_id: int
    suggestions: list[SuggestedEntry] = Field(default_factory=list)
    strategies: list[StrategyResult] = Field(default_factory=list)
    merged_count: int = 0
    curated: bool = False
    hallucinated_titles: list[str] = Field(default_factory=list)
    profile: EntryTypeProfile | None = None
    elapsed_ms: float = 0.0
    skipped: bool = False


class CuratedPick(BaseModel):
    """One candidate selected by curation, with the explanation to persist."""

    model_config = ConfigDict(frozen=True)

    candidate: MergedCandidate
    explanation: str = ""


class CurationResult(BaseModel):
    """Ordered picks plus whether the model-curated ordering was used.

    ``curated=False`` means the picks are the plain consensus ordering
    (curation disabled, failed, or returned nothing usable).
    """

    model_config = ConfigDict(frozen=True)

    picks: list[CuratedPick] = Field(default_factory=list)
    curated: bool = False


class HealingOutcome(BaseModel):
    """Result of one self-healing sweep for a stale external id."""

    model_config = ConfigDict(frozen=True)

    stale_id: int
    corrected_id: int | None = None
    rewritten_entries: list[int] = Field(default_factory=list)
    removed_from: list[int] = Field(default_factory=list)
    # False when another caller held the heal lock; nothing was touched.
    ran: bool = True
    # True when the corrective search itself failed; references were kept.
    aborted: bool = False
