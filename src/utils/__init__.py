"""Utility modules for vibefinder.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at VibeFinderError;
  transient upstream failures, missing catalog ids, and malformed model
  output each get their own subclass so callers can handle them apart.
- **concurrency** -- polling with a fixed budget, semaphore-throttled
  fan-out, and the background task runner used for enrichment.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- title normalization, fuzzy title matching, and
  cleanup of store descriptions and model explanations.
- **llm_json** (not re-exported here) -- tolerant JSON extraction from
  free-form model responses.
- **catalog_url** (not re-exported here) -- store URL / id parsing.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    IngestionError,
    InvalidSourceError,
    LLMError,
    MalformedModelOutputError,
    NotFoundError,
    RateLimitError,
    RateLimitTimeout,
    TransientExternalError,
    VibeFinderError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import BackgroundTaskRunner, PollPolicy, poll_until, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Title normalization and matching --------------------------------------
from src.utils.text_normalizer import fuzzy_match, normalize_title

__all__ = [
    "BackgroundTaskRunner",
    "ConfigurationError",
    "IngestionError",
    "InvalidSourceError",
    "LLMError",
    "MalformedModelOutputError",
    "NotFoundError",
    "PollPolicy",
    "RateLimitError",
    "RateLimitTimeout",
    "TransientExternalError",
    "VibeFinderError",
    "configure_logging",
    "fuzzy_match",
    "get_logger",
    "normalize_title",
    "poll_until",
    "throttled_gather",
]
