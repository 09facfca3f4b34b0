"""Pydantic request/response schemas for the vibefinder API.

Request schemas end with ``Request``, response schemas with ``Response``.
Domain models are reused as nested fields where their shape is already
the public one (``SuggestedEntry``, ``SimilarEntry``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.models.catalog import CatalogEntry, SimilarEntry, SuggestedEntry
from src.models.suggestion import SuggestionRun


class IngestRequest(BaseModel):
    """Store URL (``.../app/<id>/...``) or bare numeric id."""

    source: str = Field(..., min_length=1, max_length=500)
    force: bool = False
    skip_enrichment: bool = False


class EntryResponse(BaseModel):
    """Public view of a catalog entry (embeddings omitted)."""

    external_id: int
    title: str
    short_description: str = ""
    long_description: str = ""
    header_image: str | None = None
    screenshots: list[str] = Field(default_factory=list)
    developers: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    facets: list[str] = Field(default_factory=list, description="Facets with stored embeddings")
    suggested_entries: list[SuggestedEntry] = Field(default_factory=list)
    updated_at: datetime

    @classmethod
    def from_entry(cls, entry: CatalogEntry) -> EntryResponse:
        return cls(
            external_id=entry.external_id,
            title=entry.title,
            short_description=entry.short_description,
            long_description=entry.long_description,
            header_image=entry.header_image,
            screenshots=entry.screenshots,
            developers=entry.developers,
            tags=entry.tags,
            facets=sorted(entry.facet_embeddings),
            suggested_entries=entry.suggested_entries,
            updated_at=entry.updated_at,
        )


class IngestResponse(BaseModel):
    entry: EntryResponse
    cached: bool = False
    waited: bool = False
    enrichment_scheduled: bool = False


class SuggestionsResponse(BaseModel):
    external_id: int
    suggestions: list[SuggestedEntry] = Field(default_factory=list)


class StrategySummary(BaseModel):
    name: str
    succeeded: bool
    candidates: int
    attempts: int
    elapsed_ms: float


class RefreshSuggestionsResponse(BaseModel):
    """Outcome of an explicit suggestion refresh.

    ``skipped`` means another caller was already refreshing this entry;
    ``suggestions`` then holds the currently stored list.
    """

    external_id: int
    skipped: bool = False
    suggestions: list[SuggestedEntry] = Field(default_factory=list)
    strategies: list[StrategySummary] = Field(default_factory=list)
    curated: bool = False
    hallucinated: int = 0
    entry_type: str | None = None
    elapsed_ms: float = 0.0

    @classmethod
    def from_run(cls, run: SuggestionRun) -> RefreshSuggestionsResponse:
        return cls(
            external_id=run.external_id,
            skipped=run.skipped,
            suggestions=run.suggestions,
            strategies=[
                StrategySummary(
                    name=s.name,
                    succeeded=s.succeeded,
                    candidates=len(s.candidates),
                    attempts=s.attempts,
                    elapsed_ms=round(s.elapsed_ms, 1),
                )
                for s in run.strategies
            ],
            curated=run.curated,
            hallucinated=len(run.hallucinated_titles),
            entry_type=run.profile.primary_type.value if run.profile else None,
            elapsed_ms=round(run.elapsed_ms, 1),
        )


class SimilarEntriesResponse(BaseModel):
    external_id: int
    facet: str
    results: list[SimilarEntry] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]
    background_tasks: int = 0


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
