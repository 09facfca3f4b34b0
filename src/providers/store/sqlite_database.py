"""Shared SQLite database for vibefinder.

Holds the three tables every process coordinates through: the catalog
itself, distributed locks and rate-limit slots.  Uses ``aiosqlite`` for
async I/O with one short-lived connection per operation, so any number of
processes can point at the same database file.

WAL journal mode lets readers proceed while a writer holds the lock; the
connection ``timeout`` makes competing writers wait instead of failing
with ``database is locked``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite
import structlog

from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_DEFAULT_DB_PATH = Path("data/vibefinder.db")

_CREATE_CATALOG_ENTRIES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS catalog_entries (
    external_id        INTEGER PRIMARY KEY,
    title              TEXT    NOT NULL,
    short_description  TEXT    NOT NULL DEFAULT '',
    long_description   TEXT    NOT NULL DEFAULT '',
    header_image       TEXT,
    screenshots        TEXT    NOT NULL DEFAULT '[]',
    developers         TEXT    NOT NULL DEFAULT '[]',
    entry_type         TEXT    NOT NULL DEFAULT 'game',
    tags               TEXT    NOT NULL DEFAULT '[]',
    facet_texts        TEXT    NOT NULL DEFAULT '{}',
    facet_embeddings   TEXT    NOT NULL DEFAULT '{}',
    suggested_entries  TEXT    NOT NULL DEFAULT '[]',
    created_at         TEXT    NOT NULL,
    updated_at         TEXT    NOT NULL
);
"""

# lock_key UNIQUE is the whole mutual-exclusion guarantee: acquisition is
# a plain INSERT that fails while a row for the key exists.
_CREATE_LOCKS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS locks (
    lock_key     TEXT NOT NULL UNIQUE,
    lock_id      TEXT NOT NULL,
    acquired_at  REAL NOT NULL,
    expires_at   REAL NOT NULL
);
"""

_CREATE_RATE_LIMITS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS rate_limits (
    key              TEXT PRIMARY KEY,
    last_request_at  REAL NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_locks_expires_at ON locks(expires_at);",
    "CREATE INDEX IF NOT EXISTS idx_catalog_entries_title ON catalog_entries(title COLLATE NOCASE);",
]


class SQLiteDatabase:
    """Connection factory and schema owner for the shared store."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path), timeout=self._timeout) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_CATALOG_ENTRIES_TABLE_SQL)
            await db.execute(_CREATE_LOCKS_TABLE_SQL)
            await db.execute(_CREATE_RATE_LIMITS_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("database_initialized", path=str(self._db_path))

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with ``Row`` factory; closed on exit.

        Callers commit explicitly.  Uncommitted work is rolled back when the
        connection closes.
        """
        async with aiosqlite.connect(str(self._db_path), timeout=self._timeout) as db:
            db.row_factory = aiosqlite.Row
            yield db
