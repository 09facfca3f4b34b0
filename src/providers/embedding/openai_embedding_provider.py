"""Embedding adapters for endpoints that speak the OpenAI embeddings API.

:class:`EmbeddingsEndpointProvider` batches requests, puts vectors back
in input order (``item.index``) and checks the reply covers every input.
Facet similarity compares vectors pairwise, so the provider also pins
the dimension it actually observes: a model missing from
``_MODEL_DIMENSIONS`` starts from a guess and is corrected by the first
reply.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import LLMError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}

# Facet descriptions are a few hundred words; this only guards against a
# pathological long description being passed through unchanged.
_MAX_INPUT_CHARS = 8000


class EmbeddingsEndpointProvider(IEmbeddingProvider):
    """Shared ``embeddings.create`` plumbing."""

    def __init__(
        self,
        client: openai.AsyncOpenAI,
        model: str,
        dimension: int,
        batch_limit: int,
        provider_label: str,
    ) -> None:
        self._client = client
        self._model = model
        self._dimension = dimension
        self._batch_limit = batch_limit
        self._provider_label = provider_label

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_limit):
            batch = [text[:_MAX_INPUT_CHARS] for text in texts[start : start + self._batch_limit]]
            vectors.extend(await self._embed_batch(batch))

        observed = len(vectors[0])
        if observed != self._dimension:
            logger.warning(
                "embedding_dimension_observed",
                provider=self._provider_label,
                model=self._model,
                expected=self._dimension,
                observed=observed,
            )
            self._dimension = observed
        return vectors

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            response = await self._client.embeddings.create(input=batch, model=self._model)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limited: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if len(response.data) != len(batch):
            raise LLMError(
                message=(
                    f"{self._provider_label} returned {len(response.data)} vectors "
                    f"for {len(batch)} inputs"
                ),
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "embedding_batch",
            provider=self._provider_label,
            model=self._model,
            batch_size=len(batch),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label


class OpenAIEmbeddingProvider(EmbeddingsEndpointProvider):
    """Embedding provider backed by OpenAI or an OpenAI-compatible endpoint."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.llm_timeout_seconds, connect=5.0),
            "max_retries": settings.llm_max_retries,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        model = settings.openai_embedding_model or "text-embedding-3-small"
        super().__init__(
            client=openai.AsyncOpenAI(**client_kwargs),
            model=model,
            dimension=_MODEL_DIMENSIONS.get(model, 768),
            batch_limit=2048,
            provider_label=(
                "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
            ),
        )

    def is_available(self) -> bool:
        return bool(self._api_key)
