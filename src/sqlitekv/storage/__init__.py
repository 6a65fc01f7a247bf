"""Storage layer for entry persistence on SQLite."""

from sqlitekv.storage.database import SQLiteStorage, resolve_db_path
from sqlitekv.storage.models import StoredEntry, StoreInfo, build_entry_table

__all__ = [
    "SQLiteStorage",
    "StoredEntry",
    "StoreInfo",
    "build_entry_table",
    "resolve_db_path",
]
