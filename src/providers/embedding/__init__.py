"""Embedding provider implementations.

Two implementations of IEmbeddingProvider, in selection order:
    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims), needs an API key.
    2. NomicEmbeddingProvider  -- nomic-embed-text via a local Ollama server (768 dims).
"""

from src.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider", "NomicEmbeddingProvider"]
