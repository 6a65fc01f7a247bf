"""Pytest configuration and shared fixtures for the test suite."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from sqlitekv.store import SQLiteKV

# Configure pytest-asyncio to use auto mode
pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
async def kv() -> AsyncGenerator[SQLiteKV, None]:
    """Create an initialized in-memory store.

    Yields:
        SQLiteKV backed by an in-memory SQLite database
    """
    store = SQLiteKV(storage_mode="memory")
    await store.init()
    yield store
    await store.close()


@pytest.fixture
async def file_store_factory(
    tmp_path: Path,
) -> AsyncGenerator[Callable[..., Awaitable[SQLiteKV]], None]:
    """Open initialized disk stores on a file under tmp_path.

    Every store opened through the factory shares the same database file
    unless a filename is given, and is closed after the test.

    Yields:
        Async factory accepting StoreConfig overrides
    """
    opened: list[SQLiteKV] = []

    async def _open(**overrides: Any) -> SQLiteKV:
        overrides.setdefault("filename", str(tmp_path / "store.sqlite"))
        store = SQLiteKV(**overrides)
        await store.init()
        opened.append(store)
        return store

    yield _open

    for store in opened:
        if store._storage.is_open:
            await store.close()
