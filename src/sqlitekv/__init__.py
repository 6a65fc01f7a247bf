"""sqlitekv - a key-value store on SQLite.

Values are JSON-encoded and merged on write; entries can expire or be
consumed by their first read.

Example:
    >>> from sqlitekv import SQLiteKV
    >>> async with SQLiteKV(storage_mode="memory") as kv:
    ...     await kv.set("counter", 1)
    ...     await kv.increment("counter")
    2
"""

from sqlitekv.config import JournalMode, StorageMode, StoreConfig, load_config_from_env
from sqlitekv.errors import (
    InvalidJournalModeError,
    KVStoreError,
    LoopOperationsDisabledError,
    StoreNotInitializedError,
    TransactionAlreadyOpenError,
    ValueSerializationError,
)
from sqlitekv.storage.models import StoreInfo
from sqlitekv.store import SQLiteKV

__version__ = "0.1.0"

__all__ = [
    "SQLiteKV",
    "StoreConfig",
    "StoreInfo",
    "JournalMode",
    "StorageMode",
    "load_config_from_env",
    "KVStoreError",
    "StoreNotInitializedError",
    "ValueSerializationError",
    "TransactionAlreadyOpenError",
    "InvalidJournalModeError",
    "LoopOperationsDisabledError",
]
