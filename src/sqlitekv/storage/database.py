"""SQLite storage adapter.

This module wraps a single SQLAlchemy async connection to a SQLite database
(aiosqlite driver) and exposes the raw row operations the store is built on.

The connection runs in autocommit mode at the driver level; transactions are
opened and closed explicitly with ``begin()``/``commit()`` so that the
transaction coordinator decides where their boundaries are.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from sqlitekv.config import JournalMode, StorageMode
from sqlitekv.errors import StoreNotInitializedError
from sqlitekv.observability.logging import get_logger
from sqlitekv.storage.models import StoredEntry, build_entry_table

logger = get_logger(__name__)

MEMORY_PATH = ":memory:"
TEMP_FILENAME = "sqlitekv_temp.sqlite"


def resolve_db_path(filename: str, mode: StorageMode) -> str:
    """Resolve the database path for a storage mode.

    Args:
        filename: Configured filename; relative names resolve against the
            current working directory
        mode: Storage mode

    Returns:
        Absolute file path, or ":memory:" for memory mode
    """
    if mode is StorageMode.MEMORY:
        return MEMORY_PATH
    if mode is StorageMode.TEMP:
        return str(Path(tempfile.gettempdir()) / TEMP_FILENAME)
    return str(Path.cwd() / filename)


class SQLiteStorage:
    """Raw entry storage on one SQLite connection.

    All methods raise StoreNotInitializedError while the connection is
    closed. Values are passed and returned as encoded JSON text; this class
    knows nothing about merging or expiry policy.

    Example:
        >>> storage = SQLiteStorage(":memory:", "kv_store")
        >>> await storage.open()
        >>> await storage.put_raw("a", '"x"', None, False)
        >>> await storage.get_raw("a")
        StoredEntry(key='a', value='"x"', expiry=None, one_time=False)
    """

    def __init__(self, db_path: str, table_name: str, echo: bool = False):
        """Initialize storage for a database path.

        Args:
            db_path: Database file path or ":memory:"
            table_name: Entry table name
            echo: Whether to log SQL statements (default: False)
        """
        self.db_path = db_path
        self.table_name = table_name
        self.echo = echo
        self.table = build_entry_table(table_name)
        self._engine: Optional[AsyncEngine] = None
        self._conn: Optional[AsyncConnection] = None

    @property
    def is_memory(self) -> bool:
        return self.db_path == MEMORY_PATH

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _connection(self, operation: str) -> AsyncConnection:
        if self._conn is None:
            raise StoreNotInitializedError(operation)
        return self._conn

    async def open(self) -> None:
        """Open the connection and create the entry table if needed.

        Calling open() on an open storage does nothing.
        """
        if self._conn is not None:
            return

        if not self.is_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        url = URL.create("sqlite+aiosqlite", database=self.db_path)
        self._engine = create_async_engine(url, echo=self.echo, isolation_level="AUTOCOMMIT")
        try:
            self._conn = await self._engine.connect()
            await self._conn.run_sync(self.table.metadata.create_all)
        except Exception:
            await self._dispose()
            raise
        logger.debug("storage_opened", db_path=self.db_path, table=self.table_name)

    async def close(self) -> None:
        """Close the connection and dispose of the engine."""
        if self._conn is None:
            return
        await self._dispose()
        logger.debug("storage_closed", db_path=self.db_path)

    async def _dispose(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    # Row operations

    async def get_raw(self, key: str) -> Optional[StoredEntry]:
        """Fetch the row for a key.

        Args:
            key: Entry key

        Returns:
            StoredEntry if the row exists, None otherwise
        """
        conn = self._connection("get")
        t = self.table
        stmt = select(t.c.key, t.c.value, t.c.expiry, t.c.one_time).where(t.c.key == key)
        row = (await conn.execute(stmt)).first()
        if row is None:
            return None
        return StoredEntry(
            key=row.key,
            value=row.value,
            expiry=row.expiry,
            one_time=bool(row.one_time),
        )

    async def put_raw(
        self, key: str, encoded: str, expiry: Optional[int], one_time: bool
    ) -> bool:
        """Insert or replace the row for a key.

        Args:
            key: Entry key
            encoded: JSON text of the value
            expiry: Expiry in ms since the epoch, None for never
            one_time: Whether the entry is consumed by its first read

        Returns:
            True once the row is written
        """
        conn = self._connection("set")
        values = {"value": encoded, "expiry": expiry, "one_time": 1 if one_time else 0}
        stmt = sqlite_insert(self.table).values(key=key, **values)
        stmt = stmt.on_conflict_do_update(index_elements=[self.table.c.key], set_=values)
        await conn.execute(stmt)
        return True

    async def delete_raw(self, key: str) -> bool:
        """Delete the row for a key.

        Returns:
            True if a row was deleted
        """
        conn = self._connection("delete")
        result = await conn.execute(delete(self.table).where(self.table.c.key == key))
        return result.rowcount > 0

    async def exists_raw(self, key: str) -> bool:
        """Check whether a row exists for a key, expired or not."""
        conn = self._connection("exists")
        stmt = select(self.table.c.key).where(self.table.c.key == key)
        return (await conn.execute(stmt)).first() is not None

    def _live(self, now: Optional[int]) -> Any:
        expiry = self.table.c.expiry
        if now is None:
            return None
        return or_(expiry.is_(None), expiry >= now)

    async def scan_keys(self, pattern: Optional[str] = None, now: Optional[int] = None) -> list[str]:
        """List keys ordered by key.

        Args:
            pattern: Optional SQL LIKE pattern ("%" any run, "_" one character)
            now: If given, skip rows that expired before this time (ms)

        Returns:
            Matching keys
        """
        conn = self._connection("keys")
        stmt = select(self.table.c.key).order_by(self.table.c.key)
        if pattern:
            stmt = stmt.where(self.table.c.key.like(pattern))
        live = self._live(now)
        if live is not None:
            stmt = stmt.where(live)
        result = await conn.execute(stmt)
        return list(result.scalars().all())

    async def scan_entries(self, now: Optional[int] = None) -> list[StoredEntry]:
        """List all rows ordered by key.

        Args:
            now: If given, skip rows that expired before this time (ms)
        """
        conn = self._connection("scan")
        t = self.table
        stmt = select(t.c.key, t.c.value, t.c.expiry, t.c.one_time).order_by(t.c.key)
        live = self._live(now)
        if live is not None:
            stmt = stmt.where(live)
        result = await conn.execute(stmt)
        return [
            StoredEntry(key=r.key, value=r.value, expiry=r.expiry, one_time=bool(r.one_time))
            for r in result
        ]

    async def count(self, now: Optional[int] = None) -> int:
        """Count rows, optionally skipping those expired before ``now``."""
        conn = self._connection("size")
        stmt = select(func.count()).select_from(self.table)
        live = self._live(now)
        if live is not None:
            stmt = stmt.where(live)
        return (await conn.execute(stmt)).scalar_one()

    async def count_expired(self, now: int) -> int:
        """Count rows whose expiry is before ``now``."""
        conn = self._connection("size")
        stmt = select(func.count()).select_from(self.table).where(self.table.c.expiry < now)
        return (await conn.execute(stmt)).scalar_one()

    async def purge_expired(self, now: int) -> int:
        """Delete rows whose expiry is before ``now``.

        Returns:
            Number of rows deleted
        """
        conn = self._connection("purge")
        result = await conn.execute(delete(self.table).where(self.table.c.expiry < now))
        return result.rowcount

    async def clear_all(self) -> int:
        """Delete every row.

        Returns:
            Number of rows deleted
        """
        conn = self._connection("clear")
        result = await conn.execute(delete(self.table))
        return result.rowcount

    # Transactions

    async def begin(self) -> None:
        """Start a transaction holding the database write lock."""
        await self._connection("begin_transaction").exec_driver_sql("BEGIN IMMEDIATE")

    async def commit(self) -> None:
        await self._connection("commit_transaction").exec_driver_sql("COMMIT")

    async def rollback(self) -> None:
        await self._connection("rollback_transaction").exec_driver_sql("ROLLBACK")

    # Journal mode and file information

    async def set_journal_mode(self, mode: JournalMode) -> str:
        """Apply a journal mode.

        SQLite may keep a different mode (an in-memory database only
        supports MEMORY and OFF); the mode actually in effect is returned.

        Args:
            mode: Requested journal mode

        Returns:
            Journal mode reported by SQLite, upper-cased
        """
        conn = self._connection("set_journal_mode")
        result = await conn.exec_driver_sql(f"PRAGMA journal_mode = {mode.value}")
        return str(result.scalar()).upper()

    async def get_journal_mode(self) -> str:
        conn = self._connection("get_journal_mode")
        result = await conn.exec_driver_sql("PRAGMA journal_mode")
        return str(result.scalar()).upper()

    def file_size(self) -> int:
        """Size of the database file in bytes (0 for memory or missing files)."""
        if self.is_memory:
            return 0
        try:
            return os.stat(self.db_path).st_size
        except FileNotFoundError:
            return 0

    async def file_info(self) -> dict[str, Any]:
        """Path, size and journal mode of the database."""
        return {
            "path": self.db_path,
            "size_bytes": self.file_size(),
            "journal_mode": await self.get_journal_mode(),
        }

    def journal_file_exists(self) -> bool:
        """Check for a rollback journal file next to the database."""
        if self.is_memory:
            return False
        return Path(f"{self.db_path}-journal").exists()
