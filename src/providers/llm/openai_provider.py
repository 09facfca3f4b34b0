"""Chat-completions LLM provider adapters.

:class:`ChatCompletionsProvider` holds the request and reply handling for
any endpoint that speaks the OpenAI ``chat.completions`` API.  Two
adapters build on it:

- :class:`OpenAILLMProvider` (this module) for OpenAI or any compatible
  gateway configured through ``openai_base_url``;
- ``OllamaLLMProvider`` (``ollama_provider.py``) for a local server.

A reply cut off at ``max_tokens`` is still returned but logged as
``llm_completion_truncated``: a truncated candidate array usually parses
to nothing, and the warning is the only trace of why a strategy came
back empty.
"""

from __future__ import annotations

from typing import Any

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import LLMError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TEXT_MODEL = "gpt-4o-mini"


class ChatCompletionsProvider(ILLMProvider):
    """Shared ``chat.completions`` plumbing for OpenAI-style endpoints."""

    def __init__(self, client: openai.AsyncOpenAI, model: str, provider_label: str) -> None:
        self._client = client
        self._text_model = model
        self._provider_label = provider_label

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limited: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        return self._read_reply(response, max_tokens)

    def _read_reply(self, response: Any, max_tokens: int) -> str:
        if not response.choices or not response.choices[0].message.content:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )

        choice = response.choices[0]
        if choice.finish_reason == "length":
            logger.warning(
                "llm_completion_truncated",
                provider=self._provider_label,
                model=self._text_model,
                max_tokens=max_tokens,
            )
        logger.info(
            "llm_completion",
            provider=self._provider_label,
            model=self._text_model,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return choice.message.content

    def get_provider_name(self) -> str:
        return self._provider_label


class OpenAILLMProvider(ChatCompletionsProvider):
    """LLM provider backed by OpenAI or an OpenAI-compatible gateway
    (TogetherAI, Groq, a search-grounded model service)."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.llm_timeout_seconds, connect=5.0),
            "max_retries": settings.llm_max_retries,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        super().__init__(
            client=openai.AsyncOpenAI(**client_kwargs),
            model=settings.openai_text_model or _DEFAULT_TEXT_MODEL,
            provider_label="openai-compatible" if settings.openai_base_url else "openai",
        )

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """List models to confirm the key is accepted, without inference cost."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False
