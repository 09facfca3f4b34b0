"""vibefinder FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Configuration comes from the environment / ``.env`` (see
:class:`src.config.settings.Settings`).  ``build_components`` is shared with
the CLI so both drivers run the same object graph.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import APP_VERSION
from src.api.routes import router as api_router
from src.config.settings import Settings
from src.coordination.distributed_lock import DistributedLock
from src.coordination.rate_limiter import RateLimiter
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.pipeline.orchestrator import IngestionOrchestrator
from src.pipeline.suggestion_pipeline import SuggestionPipeline
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.catalog.steam_store_provider import SteamStoreProvider
from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from src.providers.store.sqlite_database import SQLiteDatabase
from src.services.candidate_generator import BASE_STRATEGIES, CandidateGenerator
from src.services.consensus import ConsensusCurator
from src.services.facet_scoring import FacetScorer
from src.services.facet_similarity import FacetSimilarityService
from src.services.self_healing import SelfHealingService
from src.services.suggestion_validator import SuggestionValidator
from src.utils.concurrency import BackgroundTaskRunner
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)

_SHUTDOWN_DRAIN_SECONDS = 30.0


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the first available LLM provider based on configured API keys.

    Priority order: Anthropic -> OpenAI -> Ollama (always available).
    """
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider | None:
    """Select the first available embedding provider.

    Priority: OpenAI/OpenAI-compatible (if API key set) -> Nomic/Ollama
    (if reachable).  Returns ``None`` if neither is available.
    """
    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    provider = NomicEmbeddingProvider(settings=app_settings)
    if provider.is_available():
        return provider
    return None


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components; the API stores them on
    ``app.state`` and the CLI uses them directly.  The database still has
    to be initialised (``await components["database"].initialize()``).
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=30.0)
    database = SQLiteDatabase(app_settings.database_path, timeout=app_settings.database_timeout_seconds)
    store = SQLiteCatalogStore(database)

    # -- Coordination --
    rate_limiter = RateLimiter(
        database,
        policy=app_settings.rate_limit_policy(),
        safety_margin_ms=app_settings.rate_limit_safety_margin_ms,
    )
    lock = DistributedLock(
        database,
        ttl_seconds=app_settings.lock_ttl_seconds,
        wait_policy=app_settings.lock_wait_policy(),
    )

    # -- External catalog --
    catalog = SteamStoreProvider(
        http_client,
        rate_limiter,
        MemoryCacheProvider(ttl=app_settings.catalog_search_cache_ttl),
        base_url=app_settings.catalog_base_url,
        country=app_settings.catalog_country,
        rate_limit_key=app_settings.catalog_rate_limit_key,
        min_delay_ms=app_settings.catalog_min_delay_ms,
        max_attempts=app_settings.catalog_fetch_max_attempts,
        initial_backoff_ms=app_settings.catalog_retry_initial_delay_ms,
        max_backoff_ms=app_settings.catalog_retry_max_delay_ms,
    )

    # -- Models --
    llm = _build_llm_provider(app_settings)
    embedder = _build_embedding_provider(app_settings) if app_settings.facet_embeddings_enabled else None

    # -- Suggestion pipeline --
    scorer = (
        FacetScorer(llm, tone_gate=app_settings.tone_gate, gate_penalty=app_settings.tone_gate_penalty)
        if app_settings.scoring_enabled
        else None
    )
    suggestion_pipeline = SuggestionPipeline(
        generator=CandidateGenerator(
            llm,
            candidate_count=app_settings.strategy_candidate_count,
            retry_policy=app_settings.strategy_retry_policy(),
        ),
        curator=ConsensusCurator(
            llm,
            pool_size=app_settings.curation_pool_size,
            enabled=app_settings.curation_enabled,
            strategy_count=len(BASE_STRATEGIES) + (1 if scorer is not None else 0),
        ),
        validator=SuggestionValidator(store, catalog),
        store=store,
        scorer=scorer,
        suggestion_count=app_settings.suggestion_count,
    )

    similarity = (
        FacetSimilarityService(
            llm,
            embedder,
            store,
            min_similarity=app_settings.similarity_min_score,
            default_limit=app_settings.similarity_default_limit,
        )
        if embedder is not None
        else None
    )

    task_runner = BackgroundTaskRunner()
    orchestrator = IngestionOrchestrator(
        store=store,
        catalog=catalog,
        lock=lock,
        suggestion_pipeline=suggestion_pipeline,
        healer=SelfHealingService(store, catalog, lock),
        runner=task_runner,
        similarity=similarity,
        ingestion_wait=app_settings.ingestion_wait_policy(),
        lock_wait=app_settings.lock_wait_policy(),
    )

    provider_registry: dict[str, Any] = {
        "llm": llm.get_provider_name(),
        "embedding": embedder.get_provider_name() if embedder is not None else None,
        "catalog": catalog.get_provider_name(),
        "scoring": scorer is not None,
    }

    return {
        "http_client": http_client,
        "database": database,
        "store": store,
        "rate_limiter": rate_limiter,
        "lock": lock,
        "catalog": catalog,
        "llm": llm,
        "similarity": similarity,
        "task_runner": task_runner,
        "orchestrator": orchestrator,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build components and create tables on startup; drain and close on shutdown."""
    components = build_components(settings)
    for key, value in components.items():
        setattr(application.state, key, value)

    await components["database"].initialize()
    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        providers=components["provider_registry"],
    )

    yield

    task_runner: BackgroundTaskRunner = components["task_runner"]
    await task_runner.drain(timeout=_SHUTDOWN_DRAIN_SECONDS)
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="vibefinder API",
        version=APP_VERSION,
        description=(
            "Ingest games from the store catalog and surface similar games, "
            "generated by several model strategies, merged by consensus and "
            "validated against the catalog."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
