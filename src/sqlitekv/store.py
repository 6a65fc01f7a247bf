"""Key-value store on SQLite.

SQLiteKV is the public entry point. Values are JSON-encoded; writes to an
existing key are merged (see ``sqlitekv.merge``); entries can expire or be
consumed by their first read (see ``sqlitekv.expiry``); writes are committed
immediately unless a transaction is open (see ``sqlitekv.transaction``).
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Optional, Union

from sqlitekv.codec import JSONValue, ValueKind, classify, decode_value, encode_value, is_number
from sqlitekv.config import JournalMode, StoreConfig
from sqlitekv.errors import (
    LoopOperationsDisabledError,
    StoreNotInitializedError,
    ValueSerializationError,
)
from sqlitekv.expiry import ReadOutcome, evaluate_read, expiry_from_ttl, is_expired, now_ms, remaining_ms
from sqlitekv.merge import resolve
from sqlitekv.observability.logging import get_logger
from sqlitekv.storage.database import SQLiteStorage, resolve_db_path
from sqlitekv.storage.models import StoreInfo
from sqlitekv.transaction import TransactionCoordinator

logger = get_logger(__name__)

DEFAULT_EXPORT_FILENAME = "database_export.json"

JsonUpdateFunction = Callable[[dict[str, Any]], dict[str, Any]]


class SQLiteKV:
    """Persistent key-value store backed by a single SQLite table.

    The store must be initialized before use, either with ``await kv.init()``
    or as an async context manager. Every operation raises
    StoreNotInitializedError before init() and after close().

    Example:
        >>> async with SQLiteKV("cache.sqlite", table_name="sessions") as kv:
        ...     await kv.set("user:1", {"name": "Ada"})
        ...     await kv.set("user:1", {"role": "admin"})
        ...     await kv.get("user:1")
        {'name': 'Ada', 'role': 'admin'}
    """

    def __init__(
        self,
        filename: Optional[str] = None,
        config: Optional[Union[StoreConfig, str]] = None,
        **overrides: Any,
    ):
        """Initialize store.

        Args:
            filename: Database filename (disk mode); overrides config.filename
            config: StoreConfig, or a table name string
            **overrides: Individual StoreConfig fields, e.g. auto_commit=False
        """
        if isinstance(config, str):
            overrides.setdefault("table_name", config)
            config = None
        base = config.model_dump() if config is not None else {}
        if filename is not None:
            base["filename"] = filename
        self.config = StoreConfig(**{**base, **overrides})

        self.db_path = resolve_db_path(self.config.filename, self.config.storage_mode)
        self._storage = SQLiteStorage(
            self.db_path, self.config.table_name, echo=self.config.log_queries
        )
        self._transactions = TransactionCoordinator(
            self._storage, auto_commit=self.config.auto_commit
        )
        self._initialized = False
        self._log = logger.bind(table=self.config.table_name)

    @property
    def table_name(self) -> str:
        return self.config.table_name

    @property
    def in_transaction(self) -> bool:
        return self._transactions.in_transaction

    # Lifecycle

    async def init(self) -> None:
        """Open the database, create the table and apply the journal mode.

        Calling init() on an open store does nothing.
        """
        if self._storage.is_open:
            return
        await self._storage.open()
        try:
            await self._apply_journal_mode(self.config.journal_mode)
        except Exception:
            await self._storage.close()
            raise
        self._initialized = True
        self._log.info(
            "store_opened",
            db_path=self.db_path,
            storage_mode=self.config.storage_mode.value,
            auto_commit=self.config.auto_commit,
        )

    async def close(self) -> bytes:
        """Release the database handle.

        An open transaction is rolled back. Closing a closed store does
        nothing.

        Returns:
            Empty bytes (reserved)

        Raises:
            StoreNotInitializedError: If the store was never initialized
        """
        if not self._initialized:
            raise StoreNotInitializedError("close")
        if not self._storage.is_open:
            return b""
        if self._transactions.in_transaction:
            self._log.warning(
                "transaction_discarded_on_close", implicit=self._transactions.implicit
            )
            await self._transactions.rollback()
        await self._storage.close()
        self._transactions.reset()
        self._log.info("store_closed", db_path=self.db_path)
        return b""

    async def __aenter__(self) -> "SQLiteKV":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._storage.is_open:
            await self.close()

    def _ensure_initialized(self, operation: str) -> None:
        if not self._storage.is_open:
            raise StoreNotInitializedError(operation)

    # Writes

    async def set(self, key: str, value: JSONValue, one_time: bool = False) -> bool:
        """Store a value, merging it with the current one.

        Args:
            key: Entry key
            value: String, number, boolean, dict or list
            one_time: Delete the entry after its first read

        Returns:
            True once written

        Raises:
            ValueSerializationError: If the value cannot be stored
        """
        return await self._set_with_expiry(key, value, None, one_time)

    async def setex(
        self, key: str, seconds: float, value: JSONValue, one_time: bool = False
    ) -> bool:
        """Store a value that expires after ``seconds``.

        Args:
            key: Entry key
            seconds: Time to live; zero or negative values expire immediately
            value: String, number, boolean, dict or list
            one_time: Delete the entry after its first read

        Returns:
            True once written
        """
        return await self._set_with_expiry(key, value, expiry_from_ttl(seconds), one_time)

    async def _set_with_expiry(
        self, key: str, value: JSONValue, expiry: Optional[int], one_time: bool
    ) -> bool:
        self._ensure_initialized("set")
        if classify(value) is None:
            raise ValueSerializationError(
                f"unsupported value type {type(value).__name__}", key=key
            )
        async with self._transactions.write_scope():
            await self._write_locked(key, value, expiry, one_time)
        return True

    async def _write_locked(
        self, key: str, value: JSONValue, expiry: Optional[int], one_time: bool
    ) -> JSONValue:
        # Reads the row raw: one-time entries are merged against, not consumed.
        entry = await self._storage.get_raw(key)
        existing: Optional[JSONValue] = None
        if entry is not None and not is_expired(entry.expiry):
            existing = decode_value(entry.value, key)

        new_value = resolve(existing, value)
        await self._storage.put_raw(key, encode_value(new_value, key), expiry, one_time)
        self._log.debug("entry_written", key=key, expiry=expiry, one_time=one_time)
        return new_value

    async def delete(self, key: str) -> bool:
        """Delete a key.

        Returns:
            True if the key was present
        """
        self._ensure_initialized("delete")
        async with self._transactions.write_scope():
            return await self._storage.delete_raw(key)

    async def clear(self) -> bool:
        """Delete every entry.

        Returns:
            True once the table is empty
        """
        self._ensure_initialized("clear")
        async with self._transactions.write_scope():
            removed = await self._storage.clear_all()
        self._log.info("store_cleared", removed=removed)
        return True

    # Reads

    async def get(self, key: str) -> Optional[JSONValue]:
        """Read a value.

        Expired entries are deleted and read as missing. One-time entries are
        deleted by this read; the value is still returned to this caller.

        Args:
            key: Entry key

        Returns:
            The value, or None if the key is missing, expired or consumed

        Raises:
            ValueSerializationError: If the stored blob cannot be decoded
        """
        self._ensure_initialized("get")
        entry = await self._storage.get_raw(key)
        outcome = evaluate_read(entry)
        if outcome is ReadOutcome.MISSING:
            return None
        if outcome is ReadOutcome.RETURN:
            return decode_value(entry.value, key)

        async with self._transactions.write_scope(commit_implicit=True):
            return await self._read_locked(key)

    async def _read_locked(self, key: str) -> Optional[JSONValue]:
        # Re-read under the lock: another task may have consumed or replaced
        # the entry since the unlocked read.
        entry = await self._storage.get_raw(key)
        outcome = evaluate_read(entry)
        if outcome is ReadOutcome.MISSING:
            return None
        if outcome is ReadOutcome.EXPIRED:
            await self._storage.delete_raw(key)
            self._log.debug("entry_expired", key=key)
            return None

        value = decode_value(entry.value, key)
        if outcome is ReadOutcome.CONSUME:
            await self._storage.delete_raw(key)
            self._log.debug("one_time_entry_consumed", key=key)
        return value

    async def exists(self, key: str) -> bool:
        """Check whether a key holds a live entry.

        Expired entries are deleted; one-time entries are not consumed.
        """
        self._ensure_initialized("exists")
        entry = await self._storage.get_raw(key)
        if entry is None:
            return False
        if not is_expired(entry.expiry):
            return True

        async with self._transactions.write_scope(commit_implicit=True):
            entry = await self._storage.get_raw(key)
            if entry is None:
                return False
            if is_expired(entry.expiry):
                await self._storage.delete_raw(key)
                self._log.debug("entry_expired", key=key)
                return False
            return True

    async def _sweep_expired(self, now: int) -> None:
        if not await self._storage.count_expired(now):
            return
        async with self._transactions.write_scope(commit_implicit=True):
            removed = await self._storage.purge_expired(now)
        if removed:
            self._log.debug("expired_entries_removed", removed=removed)

    async def keys(self, pattern: Optional[str] = None) -> list[str]:
        """List keys in key order.

        Expired entries found on the way are deleted.

        Args:
            pattern: Optional LIKE pattern: "%" matches any run of
                characters, "_" exactly one (ASCII case-insensitive)

        Returns:
            Matching live keys
        """
        self._ensure_initialized("keys")
        now = now_ms()
        await self._sweep_expired(now)
        return await self._storage.scan_keys(pattern, now=now)

    async def size(self) -> int:
        """Number of live entries."""
        self._ensure_initialized("size")
        now = now_ms()
        await self._sweep_expired(now)
        return await self._storage.count(now=now)

    async def ttl(self, key: str) -> Optional[int]:
        """Milliseconds until a key expires.

        This is a probe: it never deletes anything.

        Returns:
            Remaining ms (0 once the expiry has passed), or None if the key
            is missing or has no expiry
        """
        self._ensure_initialized("ttl")
        entry = await self._storage.get_raw(key)
        if entry is None:
            return None
        return remaining_ms(entry.expiry)

    async def mget(self, *keys: str) -> list[Optional[JSONValue]]:
        """Read several keys.

        Returns:
            Values in the order of ``keys``, None for missing keys
        """
        self._ensure_initialized("mget")
        return list(await asyncio.gather(*(self.get(key) for key in keys)))

    async def get_all(self) -> dict[str, JSONValue]:
        """Read every live entry.

        Each entry is read with get(), so one-time entries are consumed.
        """
        self._ensure_initialized("get_all")
        result: dict[str, JSONValue] = {}
        for key in await self.keys():
            value = await self.get(key)
            if value is not None:
                result[key] = value
        return result

    # Derived writes

    async def increment(self, key: str, amount: Union[int, float] = 1) -> Optional[Union[int, float]]:
        """Add ``amount`` to a numeric value.

        Args:
            key: Entry key
            amount: Number to add (default: 1)

        Returns:
            The new value, or None if the key is missing or not a number
            (nothing is written in that case)
        """
        self._ensure_initialized("increment")
        if not is_number(amount):
            raise TypeError(f"increment amount must be a number, got {type(amount).__name__}")
        async with self._transactions.write_scope():
            entry = await self._storage.get_raw(key)
            outcome = evaluate_read(entry)
            if outcome is ReadOutcome.MISSING:
                return None
            if outcome is ReadOutcome.EXPIRED:
                await self._storage.delete_raw(key)
                self._log.debug("entry_expired", key=key)
                return None
            current = decode_value(entry.value, key)
            if not is_number(current):
                return None
            # Replacing the row also ends a one-time entry: it was read here.
            new_value = current + amount
            await self._write_locked(key, new_value, None, False)
        return new_value

    async def update_json(self, key: str, update_function: JsonUpdateFunction) -> bool:
        """Update an object value with a function.

        The function's result goes through the normal merge-on-write path,
        so it is shallow-merged into the stored object: keys the function
        drops are NOT removed from storage. Use delete() and set() to
        remove keys.

        Args:
            key: Entry key
            update_function: Receives the current object, returns the update

        Returns:
            True if the key held an object and was updated
        """
        self._ensure_initialized("update_json")
        value = await self.get(key)
        if classify(value) is not ValueKind.OBJECT:
            return False
        await self.set(key, update_function(value))
        return True

    # Transactions

    async def begin_transaction(self) -> None:
        """Open a transaction; writes are committed by commit_transaction().

        Raises:
            TransactionAlreadyOpenError: If a transaction is already open
        """
        self._ensure_initialized("begin_transaction")
        await self._transactions.begin()

    async def commit_transaction(self) -> None:
        """Commit the open transaction; does nothing when none is open."""
        self._ensure_initialized("commit_transaction")
        await self._transactions.commit()

    async def rollback_transaction(self) -> None:
        """Discard the open transaction; does nothing when none is open."""
        self._ensure_initialized("rollback_transaction")
        await self._transactions.rollback()

    # Journal mode and info

    async def _apply_journal_mode(self, mode: JournalMode) -> JournalMode:
        reported = await self._storage.set_journal_mode(mode)
        current = JournalMode.parse(reported)
        if current is not mode:
            # In-memory databases only support MEMORY and OFF.
            log = self._log.debug if self._storage.is_memory else self._log.warning
            log(
                "journal_mode_not_applied", requested=mode.value, current=current.value
            )
        return current

    async def set_journal_mode(self, mode: Union[JournalMode, str]) -> None:
        """Change the journal mode.

        Raises:
            InvalidJournalModeError: If the mode is unknown
        """
        self._ensure_initialized("set_journal_mode")
        await self._apply_journal_mode(JournalMode.parse(mode))

    async def get_journal_mode(self) -> JournalMode:
        self._ensure_initialized("get_journal_mode")
        return JournalMode.parse(await self._storage.get_journal_mode())

    async def get_info(self) -> StoreInfo:
        """Describe the database: journal mode, path, table, size and key count."""
        self._ensure_initialized("get_info")
        file_info = await self._storage.file_info()
        return StoreInfo(
            journal_mode=JournalMode.parse(file_info["journal_mode"]),
            path=file_info["path"],
            filename=self.config.filename,
            table_name=self.table_name,
            size_bytes=file_info["size_bytes"],
            key_count=await self.size(),
        )

    async def check_journal_file(self) -> bool:
        """Check whether a rollback journal file exists next to the database."""
        self._ensure_initialized("check_journal_file")
        return self._storage.journal_file_exists()

    # Export and utilities

    async def convert_to_json(self, json_file_path: Optional[str] = None) -> bool:
        """Export live entries as a JSON object of key to value.

        One-time entries are exported without being consumed.

        Args:
            json_file_path: Output path (default: database_export.json in the
                current directory)

        Returns:
            True if the file was written, False on I/O errors

        Raises:
            ValueSerializationError: If a stored value cannot be decoded
        """
        self._ensure_initialized("convert_to_json")
        entries = await self._storage.scan_entries(now=now_ms())
        document = {entry.key: decode_value(entry.value, entry.key) for entry in entries}
        path = Path(json_file_path) if json_file_path else Path.cwd() / DEFAULT_EXPORT_FILENAME

        try:
            await asyncio.to_thread(
                path.write_text, json.dumps(document, indent=2, ensure_ascii=False), "utf-8"
            )
        except OSError as e:
            self._log.warning("export_failed", path=str(path), error=str(e))
            return False
        self._log.info("store_exported", path=str(path), entries=len(document))
        return True

    async def perform_loop_operations(
        self, operation: Callable[[], Awaitable[Any]], iterations: int
    ) -> None:
        """Await ``operation()`` ``iterations`` times in sequence.

        Raises:
            LoopOperationsDisabledError: Unless enable_loop_operations is set
        """
        self._ensure_initialized("perform_loop_operations")
        if not self.config.enable_loop_operations:
            raise LoopOperationsDisabledError()
        for _ in range(iterations):
            await operation()
