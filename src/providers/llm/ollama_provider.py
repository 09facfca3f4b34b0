"""Ollama LLM provider adapter.

Ollama serves the OpenAI ``chat.completions`` API under ``/v1``, so this
adapter only supplies the client and the availability checks on top of
:class:`ChatCompletionsProvider`.  Local models follow the JSON-array
instructions less reliably, so JSON is pulled out of the reply by
``src.utils.llm_json`` and failed strategies are retried.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from src.config.settings import Settings
from src.providers.llm.openai_provider import ChatCompletionsProvider

logger = structlog.get_logger(logger_name=__name__)


class OllamaLLMProvider(ChatCompletionsProvider):
    """LLM provider backed by a local Ollama server."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        super().__init__(
            # The openai SDK insists on a key; Ollama ignores it.
            client=openai.AsyncOpenAI(
                base_url=f"{self._base_url}/v1",
                api_key="ollama",
                timeout=openai.Timeout(settings.llm_timeout_seconds, connect=5.0),
                max_retries=settings.llm_max_retries,
            ),
            model=settings.ollama_model,
            provider_label="ollama",
        )

    def is_available(self) -> bool:
        return bool(self._base_url)

    async def validate_credentials(self) -> bool:
        """Check the server is up and the configured model has been pulled."""
        if not self.is_available():
            return False
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self._base_url}/api/tags")
        except httpx.HTTPError:
            return False
        if response.status_code != 200:
            return False

        # Tags carry a ":latest"-style suffix unless one was pulled explicitly.
        installed = [model.get("name", "") for model in response.json().get("models", [])]
        if not any(name.split(":")[0] == self._text_model.split(":")[0] for name in installed):
            logger.warning("ollama_model_missing", model=self._text_model, installed=installed)
            return False
        return True
