"""Nomic embedding provider adapter (local via Ollama).

``nomic-embed-text`` (768 dimensions) through Ollama's OpenAI-compatible
endpoint.  No API key; availability means the server answers.
"""

from __future__ import annotations

import httpx
import openai

from src.config.settings import Settings
from src.providers.embedding.openai_embedding_provider import EmbeddingsEndpointProvider


class NomicEmbeddingProvider(EmbeddingsEndpointProvider):
    """Embedding provider backed by ``nomic-embed-text`` served via Ollama."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        super().__init__(
            client=openai.AsyncOpenAI(
                base_url=f"{self._base_url}/v1",
                api_key="ollama",
                timeout=openai.Timeout(settings.llm_timeout_seconds, connect=5.0),
            ),
            model="nomic-embed-text",
            dimension=768,
            batch_limit=512,
            provider_label="nomic_embedding",
        )

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server answers ``/api/tags``."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
