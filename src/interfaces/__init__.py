"""Public interface definitions for all external service providers.

Every external API or service is reached only through the abstract base
classes in this package.  Concrete adapters live in ``src/providers/`` and
are injected in ``src/main.py``; tests inject fakes or mocks instead.

    Interface            ->  Concrete implementations (src/providers/)
    ----------------------------------------------------------------------
    ILLMProvider         ->  AnthropicLLMProvider, OpenAILLMProvider,
                             OllamaLLMProvider
    IEmbeddingProvider   ->  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    ICatalogProvider     ->  SteamStoreProvider
    ICatalogStore        ->  SQLiteCatalogStore
    ICacheProvider       ->  MemoryCacheProvider
"""

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.catalog_provider import ICatalogProvider
from src.interfaces.catalog_store import ICatalogStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider

__all__ = [
    "ICacheProvider",
    "ICatalogProvider",
    "ICatalogStore",
    "IEmbeddingProvider",
    "ILLMProvider",
]
