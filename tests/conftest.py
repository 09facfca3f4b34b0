"""Shared pytest fixtures for the vibefinder test suite."""

from __future__ import annotations

import asyncio
import hashlib
import struct
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.coordination.distributed_lock import DistributedLock
from src.coordination.rate_limiter import RateLimiter
from src.interfaces.catalog_provider import ICatalogProvider
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.models.catalog import CatalogEntry, SuggestedEntry
from src.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from src.providers.store.sqlite_database import SQLiteDatabase
from src.utils.concurrency import PollPolicy
from src.utils.errors import NotFoundError

# Tiny bounds so polling loops finish in milliseconds.
FAST_POLICY = PollPolicy(max_attempts=20, interval_seconds=0.01)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_entry(
    external_id: int,
    title: str | None = None,
    suggestions: list[tuple[int, str]] | None = None,
    **overrides: Any,
) -> CatalogEntry:
    """Build a catalog entry; *suggestions* is a list of ``(id, title)``."""
    return CatalogEntry(
        external_id=external_id,
        title=title or f"Game {external_id}",
        short_description=overrides.pop("short_description", f"A game numbered {external_id}."),
        suggested_entries=[
            SuggestedEntry(external_id=sid, title=stitle, explanation="similar")
            for sid, stitle in (suggestions or [])
        ],
        **overrides,
    )


# ---------------------------------------------------------------------------
# Shared store
# ---------------------------------------------------------------------------


@pytest.fixture
async def database(tmp_path: Path) -> SQLiteDatabase:
    """A freshly initialised database file under the test's tmp dir."""
    db = SQLiteDatabase(tmp_path / "vibefinder.db", timeout=5.0)
    await db.initialize()
    return db


@pytest.fixture
def store(database: SQLiteDatabase) -> SQLiteCatalogStore:
    return SQLiteCatalogStore(database)


@pytest.fixture
def lock(database: SQLiteDatabase) -> DistributedLock:
    return DistributedLock(database, ttl_seconds=30, wait_policy=FAST_POLICY)


@pytest.fixture
def rate_limiter(database: SQLiteDatabase) -> RateLimiter:
    return RateLimiter(database, policy=FAST_POLICY, safety_margin_ms=5)


# ---------------------------------------------------------------------------
# Mock providers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """A mock LLM provider that returns an empty JSON array by default."""
    provider = MagicMock(spec=ILLMProvider)
    provider.complete = AsyncMock(return_value="[]")
    provider.get_provider_name.return_value = "mock-llm"
    provider.is_available.return_value = True
    provider.validate_credentials = AsyncMock(return_value=True)
    return provider


class FakeCatalog(ICatalogProvider):
    """In-memory catalog: ``entries`` by id, ``titles`` for search.

    ``fetch_calls`` records every fetch so tests can assert single-flight
    behaviour; ``fetch_delay`` holds fetches open long enough for callers
    to overlap.
    """

    def __init__(self) -> None:
        self.entries: dict[int, CatalogEntry] = {}
        self.titles: dict[str, int] = {}
        self.fetch_calls: list[int] = []
        self.search_calls: list[str] = []
        self.fetch_delay = 0.0
        self.search_error: Exception | None = None

    def add(self, entry: CatalogEntry, searchable: bool = True) -> CatalogEntry:
        self.entries[entry.external_id] = entry
        if searchable:
            self.titles[entry.title.lower()] = entry.external_id
        return entry

    async def fetch_entry(self, external_id: int) -> CatalogEntry:
        self.fetch_calls.append(external_id)
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if external_id not in self.entries:
            raise NotFoundError(message=f"App {external_id} not found", external_id=external_id)
        return self.entries[external_id].model_copy(update={"suggested_entries": []})

    async def search_by_title(self, title: str) -> int | None:
        self.search_calls.append(title)
        if self.search_error is not None:
            raise self.search_error
        return self.titles.get(title.lower())

    def get_provider_name(self) -> str:
        return "fake-catalog"


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 16


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Deterministic pseudo-embedding derived from a SHA-256 digest."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    values = struct.unpack(f"{dim}B", digest[:dim])
    return [v / 255.0 for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider returning deterministic vectors for each text."""

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [_hash_to_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return _hash_to_vector(text)

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()
