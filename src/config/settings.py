"""Application settings loaded from environment variables via pydantic-settings.

Two sources, in priority order:

  1. **Environment variables**, e.g. ``CATALOG_MIN_DELAY_MS=2000``
  2. **.env file** in the working directory (local development)

Field ``lock_ttl_seconds`` maps to env var ``LOCK_TTL_SECONDS``; defaults
apply when neither source sets a value.

Every polling loop in the coordination layer (rate limiter, lock waits,
in-flight ingestion waits, strategy retries) takes its bounds from here,
and the helper methods below package them as :class:`PollPolicy` values
so tests can build a ``Settings`` with tiny numbers.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.concurrency import PollPolicy


class Settings(BaseSettings):
    """vibefinder application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === LLM Providers ===
    # Empty string = "not configured"; main.py falls through to the next provider.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (TogetherAI, Groq, ...)
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"
    # Strategy prompts ask for long candidate lists; slow gateways need the room.
    llm_timeout_seconds: float = 60.0
    llm_max_retries: int = 2

    # === Shared store ===
    database_path: str = "data/vibefinder.db"
    database_timeout_seconds: float = 30.0

    # === External catalog ===
    catalog_base_url: str = "https://store.steampowered.com"
    catalog_country: str = "US"
    catalog_rate_limit_key: str = "catalog_api"
    catalog_min_delay_ms: int = 2000
    catalog_fetch_max_attempts: int = 5
    catalog_retry_initial_delay_ms: int = 3000
    catalog_retry_max_delay_ms: int = 30000
    catalog_search_cache_ttl: int = 3600

    # === Rate limiter ===
    rate_limit_max_attempts: int = 30
    rate_limit_poll_interval_ms: int = 100
    rate_limit_safety_margin_ms: int = 50

    # === Distributed lock ===
    lock_ttl_seconds: int = 60
    lock_poll_interval_ms: int = 500
    lock_max_wait_ms: int = 10000

    # === Ingestion ===
    # A caller that finds another process fetching the same entry polls for
    # the row this many times before fetching anyway.
    ingestion_wait_max_attempts: int = 10
    ingestion_wait_interval_ms: int = 1000

    # === Candidate generation / curation ===
    strategy_candidate_count: int = 15
    strategy_retries: int = 2
    strategy_retry_delay_ms: int = 1000
    curation_enabled: bool = True
    curation_pool_size: int = 20
    suggestion_count: int = 10

    # === Adaptive facet scoring ===
    scoring_enabled: bool = False
    tone_gate: float = 0.4
    tone_gate_penalty: float = 0.3

    # === Facet similarity ===
    facet_embeddings_enabled: bool = True
    similarity_min_score: float = 0.5
    similarity_default_limit: int = 10

    # === Bulk backfill (CLI) ===
    backfill_batch_size: int = 5
    backfill_batch_delay_ms: int = 2000

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Poll policies
    # ------------------------------------------------------------------

    def rate_limit_policy(self) -> PollPolicy:
        return PollPolicy.from_millis(self.rate_limit_max_attempts, self.rate_limit_poll_interval_ms)

    def lock_wait_policy(self) -> PollPolicy:
        attempts = max(1, self.lock_max_wait_ms // max(1, self.lock_poll_interval_ms))
        return PollPolicy.from_millis(attempts, self.lock_poll_interval_ms)

    def ingestion_wait_policy(self) -> PollPolicy:
        return PollPolicy.from_millis(self.ingestion_wait_max_attempts, self.ingestion_wait_interval_ms)

    def strategy_retry_policy(self) -> PollPolicy:
        return PollPolicy.from_millis(self.strategy_retries, self.strategy_retry_delay_ms)

    def get_available_llm_providers(self) -> list[str]:
        """Return LLM provider names that have credentials or a URL configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
