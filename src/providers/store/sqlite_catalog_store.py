"""SQLite-backed catalog store.

Persists :class:`CatalogEntry` rows in the shared ``catalog_entries``
table.  List/dict columns (media, tags, facet data, suggestions) are
stored as JSON text so SQLite's JSON1 functions can query into them,
e.g. to find every entry whose suggestion list references a given id.
"""

from __future__ import annotations

import json
from typing import Any

import aiosqlite
import structlog

from src.interfaces.catalog_store import ICatalogStore
from src.models.catalog import CatalogEntry, SuggestedEntry, utc_now
from src.providers.store.sqlite_database import SQLiteDatabase
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_ENTRY_COLUMNS = (
    "external_id, title, short_description, long_description, header_image, "
    "screenshots, developers, entry_type, tags, facet_texts, facet_embeddings, "
    "suggested_entries, created_at, updated_at"
)

_SELECT_ENTRY_SQL = f"SELECT {_ENTRY_COLUMNS} FROM catalog_entries WHERE external_id = ?;"

_UPSERT_ENTRY_SQL = f"""\
INSERT INTO catalog_entries ({_ENTRY_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(external_id) DO UPDATE SET
    title = excluded.title,
    short_description = excluded.short_description,
    long_description = excluded.long_description,
    header_image = excluded.header_image,
    screenshots = excluded.screenshots,
    developers = excluded.developers,
    entry_type = excluded.entry_type,
    tags = excluded.tags,
    facet_texts = excluded.facet_texts,
    facet_embeddings = excluded.facet_embeddings,
    suggested_entries = excluded.suggested_entries,
    updated_at = excluded.updated_at;
"""

# Re-ingestion refreshes what the catalog owns and leaves enrichment and
# suggestions alone.  Tags are only replaced when the catalog sent some.
_UPSERT_FETCHED_SQL = f"""\
INSERT INTO catalog_entries ({_ENTRY_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(external_id) DO UPDATE SET
    title = excluded.title,
    short_description = excluded.short_description,
    long_description = excluded.long_description,
    header_image = excluded.header_image,
    screenshots = excluded.screenshots,
    developers = excluded.developers,
    entry_type = excluded.entry_type,
    tags = CASE WHEN excluded.tags = '[]' THEN catalog_entries.tags ELSE excluded.tags END,
    updated_at = excluded.updated_at;
"""

_UPDATE_SUGGESTIONS_SQL = """\
UPDATE catalog_entries SET suggested_entries = ?, updated_at = ? WHERE external_id = ?;
"""

_FIND_BY_TITLE_SQL = """\
SELECT external_id, title
FROM catalog_entries
WHERE title LIKE ? ESCAPE '\\'
ORDER BY length(title) ASC
LIMIT ?;
"""

# Linear scan, but evaluated inside SQLite: only referencing rows come back.
_SELECT_REFERENCING_SQL = f"""\
SELECT {_ENTRY_COLUMNS}
FROM catalog_entries AS e
WHERE EXISTS (
    SELECT 1 FROM json_each(e.suggested_entries) AS j
    WHERE json_extract(j.value, '$.external_id') = ?
);
"""

_SELECT_FACET_VECTORS_SQL = """\
SELECT external_id, title, json_extract(facet_embeddings, ?) AS vector
FROM catalog_entries
WHERE json_extract(facet_embeddings, ?) IS NOT NULL;
"""


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _entry_params(entry: CatalogEntry) -> tuple[Any, ...]:
    return (
        entry.external_id,
        entry.title,
        entry.short_description,
        entry.long_description,
        entry.header_image,
        _dump(entry.screenshots),
        _dump(entry.developers),
        entry.entry_type,
        _dump(entry.tags),
        _dump(entry.facet_texts),
        _dump(entry.facet_embeddings),
        _dump([s.model_dump(exclude_none=True) for s in entry.suggested_entries]),
        entry.created_at.isoformat(),
        entry.updated_at.isoformat(),
    )


def _row_to_entry(row: aiosqlite.Row) -> CatalogEntry:
    return CatalogEntry(
        external_id=row["external_id"],
        title=row["title"],
        short_description=row["short_description"],
        long_description=row["long_description"],
        header_image=row["header_image"],
        screenshots=json.loads(row["screenshots"]),
        developers=json.loads(row["developers"]),
        entry_type=row["entry_type"],
        tags=json.loads(row["tags"]),
        facet_texts=json.loads(row["facet_texts"]),
        facet_embeddings=json.loads(row["facet_embeddings"]),
        suggested_entries=[SuggestedEntry(**s) for s in json.loads(row["suggested_entries"])],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteCatalogStore(ICatalogStore):
    """Catalog persistence on top of :class:`SQLiteDatabase`."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._database = database

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_entry(self, external_id: int) -> CatalogEntry | None:
        async with self._database.connect() as db:
            cursor = await db.execute(_SELECT_ENTRY_SQL, (external_id,))
            row = await cursor.fetchone()
        return _row_to_entry(row) if row else None

    async def get_entries(self, external_ids: list[int]) -> list[CatalogEntry]:
        if not external_ids:
            return []
        placeholders = ", ".join("?" for _ in external_ids)
        sql = f"SELECT {_ENTRY_COLUMNS} FROM catalog_entries WHERE external_id IN ({placeholders});"
        async with self._database.connect() as db:
            cursor = await db.execute(sql, tuple(external_ids))
            rows = await cursor.fetchall()
        by_id = {row["external_id"]: _row_to_entry(row) for row in rows}
        return [by_id[i] for i in external_ids if i in by_id]

    async def find_missing_ids(self, external_ids: list[int]) -> list[int]:
        if not external_ids:
            return []
        unique_ids = list(dict.fromkeys(external_ids))
        placeholders = ", ".join("?" for _ in unique_ids)
        sql = f"SELECT external_id FROM catalog_entries WHERE external_id IN ({placeholders});"
        async with self._database.connect() as db:
            cursor = await db.execute(sql, tuple(unique_ids))
            present = {row["external_id"] for row in await cursor.fetchall()}
        return [i for i in unique_ids if i not in present]

    async def find_ids_by_title(self, title: str, limit: int = 10) -> list[tuple[int, str]]:
        needle = title.strip()
        if not needle:
            return []
        async with self._database.connect() as db:
            cursor = await db.execute(_FIND_BY_TITLE_SQL, (f"%{_escape_like(needle)}%", limit))
            rows = await cursor.fetchall()
        return [(row["external_id"], row["title"]) for row in rows]

    async def list_entries_referencing(self, external_id: int) -> list[CatalogEntry]:
        async with self._database.connect() as db:
            cursor = await db.execute(_SELECT_REFERENCING_SQL, (external_id,))
            rows = await cursor.fetchall()
        return [_row_to_entry(row) for row in rows]

    async def list_entry_ids(
        self,
        limit: int | None = None,
        only_without_suggestions: bool = False,
    ) -> list[int]:
        sql = "SELECT external_id FROM catalog_entries"
        if only_without_suggestions:
            sql += " WHERE suggested_entries = '[]'"
        sql += " ORDER BY created_at ASC"
        params: tuple[Any, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        async with self._database.connect() as db:
            cursor = await db.execute(sql + ";", params)
            rows = await cursor.fetchall()
        return [row["external_id"] for row in rows]

    async def list_facet_vectors(self, facet: str) -> list[tuple[int, str, list[float]]]:
        path = f"$.{facet}"
        async with self._database.connect() as db:
            cursor = await db.execute(_SELECT_FACET_VECTORS_SQL, (path, path))
            rows = await cursor.fetchall()
        return [(row["external_id"], row["title"], json.loads(row["vector"])) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_fetched_entry(self, entry: CatalogEntry) -> CatalogEntry:
        entry = entry.model_copy(update={"updated_at": utc_now()})
        async with self._database.connect() as db:
            await db.execute(_UPSERT_FETCHED_SQL, _entry_params(entry))
            await db.commit()
            cursor = await db.execute(_SELECT_ENTRY_SQL, (entry.external_id,))
            row = await cursor.fetchone()
        logger.info("catalog_entry_saved", external_id=entry.external_id, title=entry.title)
        return _row_to_entry(row)

    async def upsert_entry(self, entry: CatalogEntry) -> None:
        async with self._database.connect() as db:
            await db.execute(_UPSERT_ENTRY_SQL, _entry_params(entry))
            await db.commit()

    async def update_suggestions(self, external_id: int, suggestions: list[SuggestedEntry]) -> None:
        payload = _dump([s.model_dump(exclude_none=True) for s in suggestions])
        async with self._database.connect() as db:
            await db.execute(
                _UPDATE_SUGGESTIONS_SQL,
                (payload, utc_now().isoformat(), external_id),
            )
            await db.commit()
        logger.debug("suggestions_updated", external_id=external_id, count=len(suggestions))

    async def update_enrichment(
        self,
        external_id: int,
        *,
        tags: list[str] | None = None,
        facet_texts: dict[str, str] | None = None,
        facet_embeddings: dict[str, list[float]] | None = None,
    ) -> None:
        assignments: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("tags", tags),
            ("facet_texts", facet_texts),
            ("facet_embeddings", facet_embeddings),
        ):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(_dump(value))
        if not assignments:
            return
        assignments.append("updated_at = ?")
        params.extend([utc_now().isoformat(), external_id])
        sql = f"UPDATE catalog_entries SET {', '.join(assignments)} WHERE external_id = ?;"
        async with self._database.connect() as db:
            await db.execute(sql, tuple(params))
            await db.commit()
