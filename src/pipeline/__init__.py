"""Ingestion orchestration and the suggestion pipeline."""

from src.pipeline.orchestrator import IngestionOrchestrator
from src.pipeline.suggestion_pipeline import SuggestionPipeline

__all__ = [
    "IngestionOrchestrator",
    "SuggestionPipeline",
]
