"""Abstract base class for text-embedding service providers.

Facet descriptions (aesthetics, gameplay, narrative mood) are embedded so
the facet-similarity read path can rank entries by cosine similarity per
facet.  Implementations wrap OpenAI ``text-embedding-3-small`` or Nomic
``nomic-embed-text`` served locally by Ollama.

Vectors from different providers are not comparable: switching provider
means re-running facet enrichment for every entry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OpenAIEmbeddingProvider, NomicEmbeddingProvider
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Returns
        -------
        list[list[float]]
            Vectors positionally matching *texts*, each of length
            :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.LLMError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Embed one text (convenience wrapper around :meth:`embed`)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the constant dimensionality of produced vectors."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return an identifier such as ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
