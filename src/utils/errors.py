"""Custom exception hierarchy for vibefinder.

All application exceptions inherit from :class:`VibeFinderError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "steam", "openai", "sqlite") caused the failure.

The hierarchy follows how callers are expected to react:

    VibeFinderError  (base -- catch-all for any vibefinder error)
    +-- TransientExternalError    (network / HTTP failure, retry or surface)
    |   +-- RateLimitError        (catalog answered 429)
    |   +-- LLMError              (text-generation or embedding call failed)
    +-- NotFoundError             (catalog has no record, triggers self-healing)
    +-- MalformedModelOutputError (no parseable structure in model output)
    +-- RateLimitTimeout          (bounded wait exhausted, logged not raised)
    +-- InvalidSourceError        (source URL / id could not be parsed)
    +-- IngestionError            (persist / orchestration failure)
    +-- ConfigurationError        (startup / missing config)

Lock contention has no exception: losing a lock race is reported as
``LockResult(acquired=False)`` because it is an expected outcome.
"""


class VibeFinderError(Exception):
    """Base exception for all vibefinder errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[steam] App 620 not found``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# External service errors
# ---------------------------------------------------------------------------

class TransientExternalError(VibeFinderError):
    """Raised when the catalog or a model provider fails in a retryable way.

    Covers connection errors, timeouts and 5xx responses.  Cheap calls are
    retried with bounded attempts before this surfaces to the caller.
    """

    def __init__(
        self,
        message: str = "External service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(TransientExternalError):
    """Raised when the catalog or a model API answers with HTTP 429."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(TransientExternalError):
    """Raised when an LLM or embedding API call fails."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(VibeFinderError):
    """Raised when the catalog has no (or no longer has a) record for an id.

    Distinct from :class:`TransientExternalError` because the self-healing
    sweep reacts to it by re-resolving the stale reference by title.
    """

    def __init__(
        self,
        message: str = "Catalog entry not found",
        provider_name: str | None = None,
        external_id: int | None = None,
    ) -> None:
        self._external_id = external_id
        super().__init__(message=message, provider_name=provider_name)

    @property
    def external_id(self) -> int | None:
        return self._external_id


# ---------------------------------------------------------------------------
# Model output / coordination errors
# ---------------------------------------------------------------------------

class MalformedModelOutputError(VibeFinderError):
    """Raised when no JSON structure can be extracted from model output.

    Only used inside retry loops; strategies and curation degrade to an
    empty result or consensus ordering instead of propagating it.
    """

    def __init__(
        self,
        message: str = "Model output contained no parseable structure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitTimeout(VibeFinderError):
    """Describes an exhausted rate-limit wait.  Logged, never raised to callers."""

    def __init__(
        self,
        message: str = "Rate limiter wait exhausted",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class InvalidSourceError(VibeFinderError):
    """Raised when a source URL or id cannot be turned into an external id."""

    def __init__(
        self,
        message: str = "Invalid catalog URL or id",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IngestionError(VibeFinderError):
    """Raised when an entry could not be persisted or the orchestrator failed."""

    def __init__(
        self,
        message: str = "Ingestion failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(VibeFinderError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
