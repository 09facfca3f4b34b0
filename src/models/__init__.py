"""vibefinder domain models: re-exports all public model classes.

The models are organized across four submodules by concern:
    - catalog.py      -- Catalog entries, persisted suggestions, ingest results
    - coordination.py -- Lock and rate-limit records
    - scoring.py      -- Entry types, facets, type profiles, facet scores
    - suggestion.py   -- Candidates, strategy results, merged/validated suggestions
"""

from __future__ import annotations

from src.models.catalog import (
    AutoIngestReport,
    CatalogEntry,
    IngestResult,
    SimilarEntry,
    SuggestedEntry,
)
from src.models.coordination import LockOutcome, LockRecord, LockResult, RateLimitRecord
from src.models.scoring import EntryType, EntryTypeProfile, Facet, FacetScore, FacetScores
from src.models.suggestion import (
    Candidate,
    CuratedPick,
    CurationResult,
    HealingOutcome,
    MergedCandidate,
    Resolution,
    ResolutionSource,
    StrategyResult,
    SuggestionRun,
    ValidatedSuggestion,
)

__all__ = [
    "AutoIngestReport",
    "Candidate",
    "CatalogEntry",
    "CuratedPick",
    "CurationResult",
    "EntryType",
    "EntryTypeProfile",
    "Facet",
    "FacetScore",
    "FacetScores",
    "HealingOutcome",
    "IngestResult",
    "LockOutcome",
    "LockRecord",
    "LockResult",
    "MergedCandidate",
    "RateLimitRecord",
    "Resolution",
    "ResolutionSource",
    "SimilarEntry",
    "StrategyResult",
    "SuggestedEntry",
    "SuggestionRun",
    "ValidatedSuggestion",
]
