"""Unit tests for embedding provider adapters (OpenAI, Nomic)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from src.config.settings import Settings
from src.utils.errors import LLMError


def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_embedding_model": "",
        "ollama_base_url": "http://localhost:11434",
    }
    defaults.update(overrides)
    return Settings(**defaults)


def _embedding_response(*vectors: list[float]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=v, index=i) for i, v in enumerate(vectors)]
    response.usage = MagicMock(total_tokens=50)
    return response


# ======================================================================
# OpenAI Embedding Provider
# ======================================================================


class TestOpenAIEmbeddingProvider:
    def test_dimension_follows_model(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        assert OpenAIEmbeddingProvider(_settings()).get_dimension() == 1536
        large = OpenAIEmbeddingProvider(_settings(openai_embedding_model="text-embedding-3-large"))
        assert large.get_dimension() == 3072
        unknown = OpenAIEmbeddingProvider(_settings(openai_embedding_model="some-new-model"))
        assert unknown.get_dimension() == 768

    def test_is_available_without_key(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        assert OpenAIEmbeddingProvider(_settings(openai_api_key="")).is_available() is False

    async def test_embed_success(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([0.1] * 4, [0.2] * 4))

        with patch(
            "src.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(_settings())
            result = await provider.embed(["watercolour art", "gentle platforming"])

        assert result == [[0.1] * 4, [0.2] * 4]

    async def test_embed_empty_makes_no_call(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        with patch(
            "src.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            assert await OpenAIEmbeddingProvider(_settings()).embed([]) == []
        mock_client.embeddings.create.assert_not_called()

    async def test_long_input_is_truncated(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([0.5]))

        with patch(
            "src.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            await OpenAIEmbeddingProvider(_settings()).embed_single("x" * 20000)

        sent = mock_client.embeddings.create.call_args.kwargs["input"]
        assert len(sent[0]) == 8000

    async def test_vectors_follow_input_order(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        response = _embedding_response([0.1] * 4, [0.2] * 4)
        response.data = list(reversed(response.data))
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=response)

        with patch(
            "src.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            result = await OpenAIEmbeddingProvider(_settings()).embed(["first", "second"])

        assert result == [[0.1] * 4, [0.2] * 4]

    async def test_short_reply_raises(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([0.1] * 4))

        with patch(
            "src.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            with pytest.raises(LLMError, match="1 vectors for 2 inputs"):
                await OpenAIEmbeddingProvider(_settings()).embed(["first", "second"])

    async def test_observed_dimension_replaces_guess(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([0.1] * 384))

        with patch(
            "src.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(_settings(openai_embedding_model="all-minilm"))
            assert provider.get_dimension() == 768
            await provider.embed_single("cosy farming")

        assert provider.get_dimension() == 384

    async def test_api_error_is_wrapped(self) -> None:
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(
            side_effect=openai.APIError(message="boom", request=MagicMock(), body=None)
        )
        with patch(
            "src.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            with pytest.raises(LLMError):
                await OpenAIEmbeddingProvider(_settings()).embed(["text"])


# ======================================================================
# Nomic Embedding Provider
# ======================================================================


class TestNomicEmbeddingProvider:
    def test_metadata(self) -> None:
        from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider

        provider = NomicEmbeddingProvider(_settings())
        assert provider.get_dimension() == 768
        assert provider.get_provider_name() == "nomic_embedding"

    async def test_embed_success(self) -> None:
        from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_embedding_response([0.3] * 3))

        with patch(
            "src.providers.embedding.nomic_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            result = await NomicEmbeddingProvider(_settings()).embed_single("grief")

        assert result == [0.3] * 3
        assert mock_client.embeddings.create.call_args.kwargs["model"] == "nomic-embed-text"

    def test_is_available_checks_server(self) -> None:
        from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider

        with patch(
            "src.providers.embedding.nomic_embedding_provider.httpx.get",
            return_value=MagicMock(status_code=200),
        ):
            assert NomicEmbeddingProvider(_settings()).is_available() is True

        with patch(
            "src.providers.embedding.nomic_embedding_provider.httpx.get",
            side_effect=httpx.ConnectError("refused"),
        ):
            assert NomicEmbeddingProvider(_settings()).is_available() is False
