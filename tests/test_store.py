"""Tests for SQLiteKV operations."""

import asyncio
import json
from pathlib import Path

import pytest

from sqlitekv.config import JournalMode, StoreConfig
from sqlitekv.errors import (
    InvalidJournalModeError,
    LoopOperationsDisabledError,
    StoreNotInitializedError,
    ValueSerializationError,
)
from sqlitekv.store import SQLiteKV


class TestConstruction:
    """Tests for store configuration handling."""

    def test_table_name_string(self) -> None:
        store = SQLiteKV("db.sqlite", "sessions")

        assert store.table_name == "sessions"
        assert store.config.filename == "db.sqlite"

    def test_config_with_overrides(self) -> None:
        config = StoreConfig(table_name="cache", auto_commit=False)
        store = SQLiteKV(config=config, storage_mode="memory")

        assert store.config.table_name == "cache"
        assert store.config.auto_commit is False
        assert store.db_path == ":memory:"

    def test_filename_argument_overrides_config(self) -> None:
        store = SQLiteKV("other.sqlite", StoreConfig(filename="config.sqlite"))

        assert store.config.filename == "other.sqlite"


class TestBasicOperations:
    """Tests for set/get/delete/exists."""

    async def test_missing_key(self, kv: SQLiteKV) -> None:
        """A key never written reads as absent."""
        assert await kv.get("never") is None
        assert await kv.exists("never") is False

    @pytest.mark.parametrize(
        "value",
        ["text", "", 42, 3.25, 0, True, False, {"a": 1, "b": [1, 2]}, [1, "two", {"three": 3}], {}],
    )
    async def test_round_trip(self, kv: SQLiteKV, value) -> None:
        """Every value kind reads back equal and with the same type."""
        assert await kv.set("k", value) is True

        result = await kv.get("k")

        assert result == value
        assert type(result) is type(value)

    async def test_unsupported_value_rejected(self, kv: SQLiteKV) -> None:
        with pytest.raises(ValueSerializationError):
            await kv.set("k", None)
        with pytest.raises(ValueSerializationError):
            await kv.set("k", {"x": {1, 2}})

        assert await kv.exists("k") is False
        assert kv.in_transaction is False

    async def test_delete(self, kv: SQLiteKV) -> None:
        await kv.set("k", "v")

        assert await kv.delete("k") is True
        assert await kv.delete("k") is False
        assert await kv.get("k") is None

    async def test_exists(self, kv: SQLiteKV) -> None:
        await kv.set("k", "v")

        assert await kv.exists("k") is True


class TestMergeOnWrite:
    """Tests for merge semantics of repeated writes."""

    async def test_object_merge(self, kv: SQLiteKV) -> None:
        await kv.set("k", {"a": 1})
        await kv.set("k", {"b": 2})

        assert await kv.get("k") == {"a": 1, "b": 2}

    async def test_object_merge_incoming_wins(self, kv: SQLiteKV) -> None:
        await kv.set("k", {"a": 1, "b": 1})
        await kv.set("k", {"b": 2})

        assert await kv.get("k") == {"a": 1, "b": 2}

    async def test_array_append(self, kv: SQLiteKV) -> None:
        await kv.set("k", [1, 2])
        await kv.set("k", [3])

        assert await kv.get("k") == [1, 2, 3]

    async def test_string_overwrites_object(self, kv: SQLiteKV) -> None:
        await kv.set("k", {"a": 1})
        await kv.set("k", "x")

        assert await kv.get("k") == "x"

    async def test_number_replaces_object(self, kv: SQLiteKV) -> None:
        await kv.set("k", {"a": 1})
        await kv.set("k", 7)

        assert await kv.get("k") == 7

    async def test_setex_merges_too(self, kv: SQLiteKV) -> None:
        await kv.set("k", [1])
        await kv.setex("k", 60, [2])

        assert await kv.get("k") == [1, 2]
        assert await kv.ttl("k") is not None

    async def test_expired_value_is_not_merged(self, kv: SQLiteKV) -> None:
        """A logically expired entry counts as absent for the merge."""
        await kv.setex("k", -1, {"old": True})
        await kv.set("k", {"new": True})

        assert await kv.get("k") == {"new": True}

    async def test_write_merges_with_one_time_entry_without_consuming(self, kv: SQLiteKV) -> None:
        """Writes merge against a one-time entry; only reads consume it."""
        await kv.set("k", {"a": 1}, one_time=True)
        await kv.set("k", {"b": 2}, one_time=True)

        assert await kv.get("k") == {"a": 1, "b": 2}
        assert await kv.get("k") is None

    async def test_write_sets_metadata_of_latest_write(self, kv: SQLiteKV) -> None:
        """Expiry and one-time flag follow the latest write."""
        await kv.setex("k", 60, "v", one_time=True)
        await kv.set("k", "w")

        assert await kv.ttl("k") is None
        assert await kv.get("k") == "w"
        assert await kv.get("k") == "w"


class TestExpiry:
    """Tests for expiring entries."""

    async def test_elapsed_ttl_reads_absent(self, kv: SQLiteKV) -> None:
        await kv.setex("k", -1, "v")

        assert await kv.get("k") is None
        assert await kv.exists("k") is False

    async def test_zero_ttl_expires(self, kv: SQLiteKV) -> None:
        await kv.setex("k", 0, "v")
        await asyncio.sleep(0.01)

        assert await kv.get("k") is None

    async def test_expired_read_deletes_row(self, kv: SQLiteKV) -> None:
        """The read that finds an expired entry removes it physically."""
        await kv.setex("k", -1, "v")

        await kv.get("k")

        assert await kv._storage.get_raw("k") is None

    async def test_exists_deletes_expired_row(self, kv: SQLiteKV) -> None:
        await kv.setex("k", -1, "v")

        assert await kv.exists("k") is False
        assert await kv._storage.get_raw("k") is None

    async def test_live_entry_readable(self, kv: SQLiteKV) -> None:
        await kv.setex("k", 60, {"a": 1})

        assert await kv.get("k") == {"a": 1}
        assert await kv.exists("k") is True

    async def test_ttl(self, kv: SQLiteKV) -> None:
        await kv.setex("k", 60, "v")

        remaining = await kv.ttl("k")

        assert remaining is not None
        assert 0 < remaining <= 60_000

    async def test_ttl_without_expiry(self, kv: SQLiteKV) -> None:
        await kv.set("k", "v")

        assert await kv.ttl("k") is None
        assert await kv.ttl("missing") is None

    async def test_ttl_of_passed_expiry_is_zero_and_does_not_delete(self, kv: SQLiteKV) -> None:
        """ttl() is a probe: it reports 0 and leaves the row in place."""
        await kv.setex("k", -1, "v")

        assert await kv.ttl("k") == 0
        assert await kv._storage.get_raw("k") is not None

    async def test_keys_and_size_skip_expired(self, kv: SQLiteKV) -> None:
        await kv.set("live", "v")
        await kv.setex("gone", -1, "v")

        assert await kv.keys() == ["live"]
        assert await kv.size() == 1
        assert await kv._storage.get_raw("gone") is None


class TestOneTime:
    """Tests for read-once entries."""

    async def test_second_read_absent(self, kv: SQLiteKV) -> None:
        await kv.set("k", "secret", one_time=True)

        assert await kv.get("k") == "secret"
        assert await kv.get("k") is None
        assert await kv.exists("k") is False

    async def test_exists_does_not_consume(self, kv: SQLiteKV) -> None:
        await kv.set("k", "secret", one_time=True)

        assert await kv.exists("k") is True
        assert await kv.get("k") == "secret"

    async def test_setex_one_time(self, kv: SQLiteKV) -> None:
        await kv.setex("k", 60, "secret", one_time=True)

        assert await kv.get("k") == "secret"
        assert await kv.get("k") is None

    async def test_expired_one_time_entry_not_returned(self, kv: SQLiteKV) -> None:
        await kv.setex("k", -1, "secret", one_time=True)

        assert await kv.get("k") is None

    async def test_concurrent_reads_consume_once(self, kv: SQLiteKV) -> None:
        """Only one of several concurrent readers gets a one-time value."""
        await kv.set("k", "secret", one_time=True)

        results = await asyncio.gather(*(kv.get("k") for _ in range(5)))

        assert results.count("secret") == 1
        assert results.count(None) == 4


class TestDerivedOperations:
    """Tests for increment, update_json and mget."""

    async def test_increment(self, kv: SQLiteKV) -> None:
        await kv.set("k", 5)

        assert await kv.increment("k", 3) == 8
        assert await kv.get("k") == 8

    async def test_increment_default_amount(self, kv: SQLiteKV) -> None:
        await kv.set("k", 1.5)

        assert await kv.increment("k") == 2.5

    async def test_increment_missing_key(self, kv: SQLiteKV) -> None:
        assert await kv.increment("k") is None
        assert await kv.exists("k") is False

    @pytest.mark.parametrize("value", ["5", True, {"n": 1}, [1]])
    async def test_increment_non_numeric(self, kv: SQLiteKV, value) -> None:
        await kv.set("k", value)

        assert await kv.increment("k") is None
        assert await kv.get("k") == value

    async def test_increment_non_numeric_one_time_not_consumed(self, kv: SQLiteKV) -> None:
        await kv.set("k", "text", one_time=True)

        assert await kv.increment("k") is None
        assert await kv.get("k") == "text"

    async def test_increment_rejects_non_numeric_amount(self, kv: SQLiteKV) -> None:
        await kv.set("k", 1)

        with pytest.raises(TypeError):
            await kv.increment("k", "2")  # type: ignore[arg-type]

    async def test_concurrent_increments_not_lost(self, kv: SQLiteKV) -> None:
        """Increments on one store do not lose updates."""
        await kv.set("counter", 0)

        await asyncio.gather(*(kv.increment("counter") for _ in range(20)))

        assert await kv.get("counter") == 20

    async def test_update_json(self, kv: SQLiteKV) -> None:
        await kv.set("user", {"name": "John", "age": 25})

        updated = await kv.update_json("user", lambda value: {**value, "age": 30})

        assert updated is True
        assert await kv.get("user") == {"name": "John", "age": 30}

    async def test_update_json_cannot_remove_keys(self, kv: SQLiteKV) -> None:
        """Dropped keys come back through the object merge."""
        await kv.set("user", {"name": "John", "age": 25})

        await kv.update_json("user", lambda value: {"age": value["age"] + 1})

        assert await kv.get("user") == {"name": "John", "age": 26}

    async def test_update_json_non_object(self, kv: SQLiteKV) -> None:
        await kv.set("list", [1])

        assert await kv.update_json("list", lambda value: {"x": 1}) is False
        assert await kv.update_json("missing", lambda value: {"x": 1}) is False
        assert await kv.get("list") == [1]

    async def test_mget_null_fills(self, kv: SQLiteKV) -> None:
        await kv.set("k1", "v1")
        await kv.set("k3", {"a": 1})

        assert await kv.mget("k1", "k2", "k3") == ["v1", None, {"a": 1}]

    async def test_mget_empty(self, kv: SQLiteKV) -> None:
        assert await kv.mget() == []

    async def test_get_all(self, kv: SQLiteKV) -> None:
        await kv.set("a", "text")
        await kv.set("b", [1])
        await kv.setex("c", -1, "gone")

        assert await kv.get_all() == {"a": "text", "b": [1]}


class TestKeysAndClear:
    """Tests for keys, size and clear."""

    async def test_keys_sorted(self, kv: SQLiteKV) -> None:
        for key in ["b", "a", "c"]:
            await kv.set(key, 1)

        assert await kv.keys() == ["a", "b", "c"]

    async def test_keys_pattern(self, kv: SQLiteKV) -> None:
        for key in ["user:1", "user:2", "session:1"]:
            await kv.set(key, 1)

        assert await kv.keys("user:%") == ["user:1", "user:2"]
        assert await kv.keys("%:1") == ["session:1", "user:1"]
        assert await kv.keys("user:_") == ["user:1", "user:2"]

    async def test_clear(self, kv: SQLiteKV) -> None:
        await kv.set("a", 1)
        await kv.set("b", 2)

        assert await kv.clear() is True
        assert await kv.size() == 0
        assert await kv.keys() == []


class TestLifecycle:
    """Tests for init/close behavior."""

    async def test_operations_before_init_raise(self) -> None:
        store = SQLiteKV(storage_mode="memory")

        with pytest.raises(StoreNotInitializedError):
            await store.get("k")
        with pytest.raises(StoreNotInitializedError):
            await store.set("k", "v")
        with pytest.raises(StoreNotInitializedError):
            await store.close()

    async def test_operations_after_close_raise(self) -> None:
        store = SQLiteKV(storage_mode="memory")
        await store.init()

        assert await store.close() == b""

        with pytest.raises(StoreNotInitializedError) as exc_info:
            await store.set("k", "v")
        assert exc_info.value.operation == "set"
        with pytest.raises(StoreNotInitializedError):
            await store.keys()

    async def test_close_twice(self) -> None:
        store = SQLiteKV(storage_mode="memory")
        await store.init()

        assert await store.close() == b""
        assert await store.close() == b""

    async def test_init_twice_keeps_data(self, kv: SQLiteKV) -> None:
        await kv.set("k", "v")
        await kv.init()

        assert await kv.get("k") == "v"

    async def test_async_context_manager(self) -> None:
        async with SQLiteKV(storage_mode="memory") as store:
            await store.set("k", "v")
            assert await store.get("k") == "v"

        with pytest.raises(StoreNotInitializedError):
            await store.get("k")

    async def test_close_rolls_back_open_transaction(self, file_store_factory) -> None:
        store = await file_store_factory()
        await store.begin_transaction()
        await store.set("k", "v")
        await store.close()

        reopened = await file_store_factory()
        assert await reopened.get("k") is None

    async def test_persists_across_instances(self, file_store_factory) -> None:
        store = await file_store_factory()
        await store.set("k", {"a": 1})
        await store.close()

        reopened = await file_store_factory()
        assert await reopened.get("k") == {"a": 1}

    async def test_tables_are_independent(self, file_store_factory) -> None:
        first = await file_store_factory(table_name="first")
        second = await file_store_factory(table_name="second")

        await first.set("k", "one")

        assert await second.get("k") is None


class TestJournalModeAndInfo:
    """Tests for journal mode and info reporting."""

    async def test_default_journal_mode_on_disk(self, file_store_factory) -> None:
        store = await file_store_factory()

        assert await store.get_journal_mode() is JournalMode.WAL

    async def test_set_journal_mode(self, file_store_factory) -> None:
        store = await file_store_factory()

        await store.set_journal_mode("delete")

        assert await store.get_journal_mode() is JournalMode.DELETE

    async def test_set_invalid_journal_mode(self, kv: SQLiteKV) -> None:
        with pytest.raises(InvalidJournalModeError):
            await kv.set_journal_mode("fast")

    async def test_memory_store_journal_mode(self, kv: SQLiteKV) -> None:
        assert await kv.get_journal_mode() is JournalMode.MEMORY

    async def test_get_info(self, file_store_factory, tmp_path: Path) -> None:
        path = tmp_path / "info.sqlite"
        store = await file_store_factory(filename=str(path), table_name="things")
        await store.set("a", 1)
        await store.set("b", 2)

        info = await store.get_info()

        assert info.path == str(path)
        assert info.filename == str(path)
        assert info.table_name == "things"
        assert info.journal_mode is JournalMode.WAL
        assert info.key_count == 2
        assert info.size_bytes > 0

    async def test_check_journal_file(self, file_store_factory) -> None:
        store = await file_store_factory(journal_mode="delete")
        await store.set("k", "v")

        # DELETE mode removes the rollback journal after each commit.
        assert await store.check_journal_file() is False


class TestExport:
    """Tests for convert_to_json."""

    async def test_export(self, kv: SQLiteKV, tmp_path: Path) -> None:
        await kv.set("a", {"x": 1})
        await kv.set("b", [1, 2])
        await kv.set("secret", "once", one_time=True)
        await kv.setex("gone", -1, "v")
        target = tmp_path / "export.json"

        assert await kv.convert_to_json(str(target)) is True

        assert json.loads(target.read_text()) == {"a": {"x": 1}, "b": [1, 2], "secret": "once"}
        assert await kv.get("secret") == "once"

    async def test_export_default_path(
        self, kv: SQLiteKV, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        await kv.set("a", 1)

        assert await kv.convert_to_json() is True
        assert json.loads((tmp_path / "database_export.json").read_text()) == {"a": 1}

    async def test_export_io_failure_returns_false(self, kv: SQLiteKV, tmp_path: Path) -> None:
        await kv.set("a", 1)
        target = tmp_path / "missing-dir" / "export.json"

        assert await kv.convert_to_json(str(target)) is False


class TestLoopOperations:
    """Tests for perform_loop_operations."""

    async def test_disabled_by_default(self, kv: SQLiteKV) -> None:
        async def operation() -> None:
            pass

        with pytest.raises(LoopOperationsDisabledError):
            await kv.perform_loop_operations(operation, 3)

    async def test_runs_operation_repeatedly(self) -> None:
        async with SQLiteKV(storage_mode="memory", enable_loop_operations=True) as store:
            await store.set("n", 0)

            await store.perform_loop_operations(lambda: store.increment("n"), 5)

            assert await store.get("n") == 5
