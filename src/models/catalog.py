"""Catalog models for vibefinder.

Defines Pydantic v2 models for catalog entries (games) and their persisted
suggestion lists.  All models use frozen config: updates go through
``model_copy(update={...})`` and are written back with a full upsert, so
a stale in-memory copy can never be mutated into the store by accident.

Ownership: only the ingestion orchestrator writes ``CatalogEntry`` rows.
Every other component reads them.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# SuggestedEntry -- one element of an entry's ordered suggestion list.
# ---------------------------------------------------------------------------
class SuggestedEntry(BaseModel):
    """A persisted "similar item" reference.

    ``title`` is the title the suggestion was resolved from.  The
    self-healing sweep needs it to re-resolve the reference when
    ``external_id`` later turns out to be stale.
    """

    model_config = ConfigDict(frozen=True)

    external_id: int
    title: str = ""
    explanation: str = ""
    # Adaptive scoring output, present only when scoring ran.
    score: float | None = Field(default=None, ge=0.0, le=1.0)
    grade: str | None = None


# ---------------------------------------------------------------------------
# CatalogEntry -- the persisted game record.
# ---------------------------------------------------------------------------
class CatalogEntry(BaseModel):
    """A single catalog item with display, enrichment and suggestion data."""

    model_config = ConfigDict(frozen=True)

    external_id: int
    title: str
    short_description: str = ""
    long_description: str = ""
    header_image: str | None = None
    screenshots: list[str] = Field(default_factory=list)
    developers: list[str] = Field(default_factory=list)
    entry_type: str = "game"

    # Enrichment fields, filled by background work after ingestion.
    tags: list[str] = Field(default_factory=list)
    facet_texts: dict[str, str] = Field(default_factory=dict)
    facet_embeddings: dict[str, list[float]] = Field(default_factory=dict)

    suggested_entries: list[SuggestedEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def suggested_ids(self) -> list[int]:
        return [s.external_id for s in self.suggested_entries]

    @property
    def description(self) -> str:
        """Best available plain-text description for prompts."""
        return self.short_description or self.long_description


# ---------------------------------------------------------------------------
# Orchestrator results
# ---------------------------------------------------------------------------
class IngestResult(BaseModel):
    """Outcome of :meth:`IngestionOrchestrator.ingest`.

    ``cached`` is true when an existing row was returned without a fetch;
    ``waited`` is true when the caller waited on another process's
    in-flight fetch of the same entry.
    """

    model_config = ConfigDict(frozen=True)

    entry: CatalogEntry
    cached: bool = False
    waited: bool = False
    enrichment_scheduled: bool = False


class AutoIngestReport(BaseModel):
    """Summary of a sequential auto-ingest pass over missing suggested ids."""

    model_config = ConfigDict(frozen=True)

    ingested: list[int] = Field(default_factory=list)
    corrected: dict[int, int] = Field(default_factory=dict)
    removed: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)


class SimilarEntry(BaseModel):
    """A nearest-neighbour hit from the facet similarity read path."""

    model_config = ConfigDict(frozen=True)

    external_id: int
    title: str
    similarity: float
