"""FastAPI API routes for vibefinder.

Thin HTTP driver over the ingestion orchestrator and the facet similarity
read path.  Services are resolved from ``app.state`` (populated by
``build_components`` in ``main.py``) through ``Annotated`` dependencies.

Endpoint                                     Method  Description
-------------------------------------------  ------  ---------------------------------
/api/v1/entries/ingest                       POST    Ingest by store URL or id
/api/v1/entries/{id}                         GET     Stored entry
/api/v1/entries/{id}/suggestions             GET     Stored suggestion list
/api/v1/entries/{id}/suggestions/refresh     POST    Regenerate suggestions
/api/v1/entries/{id}/suggestions             DELETE  Clear suggestions
/api/v1/entries/{id}/similar                 GET     Facet nearest neighbours
/api/v1/health                               GET     Health + provider status

Domain errors propagate to ``ErrorHandlingMiddleware``, which maps them to
status codes.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.api.schemas import (
    EntryResponse,
    HealthResponse,
    IngestRequest,
    IngestResponse,
    RefreshSuggestionsResponse,
    SimilarEntriesResponse,
    SuggestionsResponse,
)
from src.pipeline.orchestrator import IngestionOrchestrator
from src.services.facet_similarity import FacetSimilarityService
from src.utils.concurrency import BackgroundTaskRunner
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

APP_VERSION = "0.1.0"

FacetName = Literal["aesthetics", "gameplay", "narrative_mood"]


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_orchestrator(request: Request) -> IngestionOrchestrator:
    return request.app.state.orchestrator


def _get_similarity(request: Request) -> FacetSimilarityService | None:
    return getattr(request.app.state, "similarity", None)


def _get_runner(request: Request) -> BackgroundTaskRunner | None:
    return getattr(request.app.state, "task_runner", None)


OrchestratorDep = Annotated[IngestionOrchestrator, Depends(_get_orchestrator)]
SimilarityDep = Annotated[FacetSimilarityService | None, Depends(_get_similarity)]
RunnerDep = Annotated[BackgroundTaskRunner | None, Depends(_get_runner)]


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@router.post(
    "/entries/ingest",
    response_model=IngestResponse,
    summary="Ingest a catalog entry",
)
async def ingest_entry(body: IngestRequest, orchestrator: OrchestratorDep) -> IngestResponse:
    """Return the stored entry, fetching it first when it is new (or forced).

    Enrichment runs in the background; poll the entry or its suggestions
    to see it land.
    """
    result = await orchestrator.ingest(
        body.source,
        skip_enrichment=body.skip_enrichment,
        force=body.force,
    )
    return IngestResponse(
        entry=EntryResponse.from_entry(result.entry),
        cached=result.cached,
        waited=result.waited,
        enrichment_scheduled=result.enrichment_scheduled,
    )


@router.get(
    "/entries/{external_id}",
    response_model=EntryResponse,
    summary="Get a stored entry",
)
async def get_entry(external_id: int, orchestrator: OrchestratorDep) -> EntryResponse:
    entry = await orchestrator.get_entry(external_id)
    return EntryResponse.from_entry(entry)


@router.get(
    "/entries/{external_id}/suggestions",
    response_model=SuggestionsResponse,
    summary="Get the stored suggestion list",
)
async def get_suggestions(external_id: int, orchestrator: OrchestratorDep) -> SuggestionsResponse:
    entry = await orchestrator.get_entry(external_id)
    return SuggestionsResponse(external_id=external_id, suggestions=entry.suggested_entries)


@router.post(
    "/entries/{external_id}/suggestions/refresh",
    response_model=RefreshSuggestionsResponse,
    summary="Regenerate suggestions",
)
async def refresh_suggestions(
    external_id: int,
    orchestrator: OrchestratorDep,
) -> RefreshSuggestionsResponse:
    run = await orchestrator.refresh_suggestions(external_id)
    return RefreshSuggestionsResponse.from_run(run)


@router.delete(
    "/entries/{external_id}/suggestions",
    response_model=SuggestionsResponse,
    summary="Clear suggestions",
)
async def clear_suggestions(external_id: int, orchestrator: OrchestratorDep) -> SuggestionsResponse:
    await orchestrator.clear_suggestions(external_id)
    return SuggestionsResponse(external_id=external_id, suggestions=[])


@router.get(
    "/entries/{external_id}/similar",
    response_model=SimilarEntriesResponse,
    summary="Nearest neighbours on one facet",
)
async def similar_entries(
    external_id: int,
    similarity: SimilarityDep,
    facet: FacetName = "aesthetics",
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    min_similarity: Annotated[float | None, Query(ge=0.0, le=1.0)] = None,
) -> SimilarEntriesResponse:
    if similarity is None:
        raise HTTPException(status_code=503, detail="Facet similarity is not configured")
    results = await similarity.find_similar(
        external_id,
        facet,
        limit=limit,
        min_similarity=min_similarity,
    )
    return SimilarEntriesResponse(external_id=external_id, facet=facet, results=results)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request, runner: RunnerDep) -> HealthResponse:
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)
    return HealthResponse(
        status="healthy",
        version=APP_VERSION,
        providers=providers,
        background_tasks=runner.pending if runner is not None else 0,
    )
