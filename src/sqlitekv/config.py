"""Store configuration models and utilities.

This module provides configuration management for the key-value store,
including the storage mode, journal mode, table name and transaction policy.
"""

import os
import re
from enum import Enum
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from sqlitekv.errors import InvalidJournalModeError

_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class JournalMode(str, Enum):
    """SQLite journal modes.

    Controls how SQLite keeps writes durable:
    - DELETE: Rollback journal deleted at the end of each transaction
    - TRUNCATE: Rollback journal truncated instead of deleted
    - PERSIST: Rollback journal header zeroed and kept
    - MEMORY: Rollback journal kept in memory
    - WAL: Write-ahead log (readers do not block writers)
    - OFF: No journal (no atomic rollback)
    """

    DELETE = "DELETE"
    TRUNCATE = "TRUNCATE"
    PERSIST = "PERSIST"
    MEMORY = "MEMORY"
    WAL = "WAL"
    OFF = "OFF"

    @classmethod
    def parse(cls, value: Any) -> "JournalMode":
        """Parse a journal mode case-insensitively.

        Args:
            value: JournalMode or string such as "wal"

        Returns:
            Matching JournalMode

        Raises:
            InvalidJournalModeError: If the value is not a known mode
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidJournalModeError(str(value), [m.value for m in cls]) from None


class StorageMode(str, Enum):
    """Where the database lives.

    - DISK: File at the configured filename
    - MEMORY: Private in-memory database, lost on close
    - TEMP: Fixed file in the system temp directory
    """

    DISK = "disk"
    MEMORY = "memory"
    TEMP = "temp"


class StoreConfig(BaseModel):
    """Configuration for a key-value store instance.

    All settings are fixed for the lifetime of the store.

    Attributes:
        filename: Database file name or path (disk mode)
        table_name: Name of the table holding the entries
        auto_commit: Commit every write immediately unless a transaction is open
        journal_mode: Journal mode applied when the store is opened
        storage_mode: Disk, memory or temp storage
        log_queries: Log every SQL statement through SQLAlchemy's engine logger
        enable_loop_operations: Allow perform_loop_operations()

    Example:
        >>> config = StoreConfig(
        ...     filename="data/cache.sqlite",
        ...     table_name="sessions",
        ...     journal_mode=JournalMode.WAL,
        ... )
    """

    model_config = ConfigDict(frozen=True)

    filename: str = Field(default="database.sqlite", min_length=1, description="Database filename")
    table_name: str = Field(default="kv_store", description="Entry table name")
    auto_commit: bool = Field(default=True, description="Commit each write immediately")
    journal_mode: JournalMode = Field(default=JournalMode.WAL, description="SQLite journal mode")
    storage_mode: StorageMode = Field(default=StorageMode.DISK, description="Storage mode")
    log_queries: bool = Field(default=False, description="Log SQL statements")
    enable_loop_operations: bool = Field(
        default=False, description="Allow perform_loop_operations()"
    )

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, value: str) -> str:
        """Validate the table name is a plain SQL identifier.

        The name is interpolated into DDL, so only identifier characters
        are accepted.

        Args:
            value: The table name to validate

        Returns:
            The validated table name

        Raises:
            ValueError: If the name is not a valid identifier
        """
        if not _TABLE_NAME_PATTERN.match(value):
            raise ValueError(
                f"table_name must match {_TABLE_NAME_PATTERN.pattern}, got {value!r}"
            )
        return value

    @field_validator("journal_mode", mode="before")
    @classmethod
    def normalize_journal_mode(cls, value: Any) -> Any:
        """Accept journal modes in any letter case."""
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("storage_mode", mode="before")
    @classmethod
    def normalize_storage_mode(cls, value: Any) -> Any:
        """Accept storage modes in any letter case."""
        if isinstance(value, str):
            return value.strip().lower()
        return value


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def load_config_from_env(filename: Optional[str] = None) -> StoreConfig:
    """Load store configuration from environment variables.

    Automatically loads variables from .env file if present.

    Reads configuration from environment variables:
    - SQLITEKV_FILENAME: Database filename (default: database.sqlite)
    - SQLITEKV_TABLE_NAME: Table name (default: kv_store)
    - SQLITEKV_AUTO_COMMIT: Commit each write (true/false, default: true)
    - SQLITEKV_JOURNAL_MODE: Journal mode (default: WAL)
    - SQLITEKV_STORAGE_MODE: disk, memory or temp (default: disk)
    - SQLITEKV_LOG_QUERIES: Log SQL statements (true/false, default: false)
    - SQLITEKV_ENABLE_LOOP_OPERATIONS: Allow loop operations (default: false)

    Args:
        filename: Optional filename overriding SQLITEKV_FILENAME

    Returns:
        StoreConfig loaded from environment

    Example:
        >>> import os
        >>> os.environ["SQLITEKV_JOURNAL_MODE"] = "delete"
        >>> load_config_from_env().journal_mode
        <JournalMode.DELETE: 'DELETE'>
    """
    load_dotenv()

    return StoreConfig(
        filename=filename or os.getenv("SQLITEKV_FILENAME", "database.sqlite"),
        table_name=os.getenv("SQLITEKV_TABLE_NAME", "kv_store"),
        auto_commit=_env_flag("SQLITEKV_AUTO_COMMIT", True),
        journal_mode=os.getenv("SQLITEKV_JOURNAL_MODE", JournalMode.WAL.value),
        storage_mode=os.getenv("SQLITEKV_STORAGE_MODE", StorageMode.DISK.value),
        log_queries=_env_flag("SQLITEKV_LOG_QUERIES", False),
        enable_loop_operations=_env_flag("SQLITEKV_ENABLE_LOOP_OPERATIONS", False),
    )
