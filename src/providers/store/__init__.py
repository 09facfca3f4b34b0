"""SQLite-backed persistence shared by the catalog store and coordination."""

from src.providers.store.sqlite_catalog_store import SQLiteCatalogStore
from src.providers.store.sqlite_database import SQLiteDatabase

__all__ = ["SQLiteCatalogStore", "SQLiteDatabase"]
