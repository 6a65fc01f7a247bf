"""Transaction coordination and the auto-commit policy.

A store has at most one open transaction. It is either opened by the caller
with ``begin()`` or implicitly by the first write of an idle store. Implicit
transactions are committed at the end of the write when auto-commit is
enabled; with auto-commit disabled they stay open until ``commit()``.
"""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator

from sqlitekv.errors import TransactionAlreadyOpenError
from sqlitekv.observability.logging import get_logger
from sqlitekv.storage.database import SQLiteStorage

logger = get_logger(__name__)


class TransactionState(str, Enum):
    """State of the store's transaction."""

    IDLE = "idle"
    OPEN = "open"


class TransactionCoordinator:
    """Tracks the open transaction and brackets writes.

    Write scopes of one coordinator never interleave: they are serialised
    with an asyncio.Lock, which also guards begin/commit/rollback so a
    transaction boundary cannot land in the middle of another task's
    read-merge-write.

    Attributes:
        auto_commit: Commit implicit transactions at the end of each write
        state: IDLE or OPEN
        implicit: True if the open transaction was started by a write
    """

    def __init__(self, storage: SQLiteStorage, auto_commit: bool = True):
        """Initialize coordinator.

        Args:
            storage: Storage whose connection carries the transactions
            auto_commit: Commit each write immediately unless the caller
                opened a transaction (default: True)
        """
        self._storage = storage
        self.auto_commit = auto_commit
        self.state = TransactionState.IDLE
        self.implicit = False
        self._lock = asyncio.Lock()

    @property
    def in_transaction(self) -> bool:
        return self.state is TransactionState.OPEN

    def reset(self) -> None:
        """Forget the transaction state, e.g. after the connection closed."""
        self.state = TransactionState.IDLE
        self.implicit = False

    async def begin(self) -> None:
        """Open a caller-managed transaction.

        Raises:
            TransactionAlreadyOpenError: If a transaction is already open
        """
        async with self._lock:
            if self.in_transaction:
                raise TransactionAlreadyOpenError(implicit=self.implicit)
            await self._storage.begin()
            self.state = TransactionState.OPEN
            self.implicit = False
            logger.debug("transaction_started")

    async def commit(self) -> None:
        """Commit the open transaction; does nothing when idle."""
        async with self._lock:
            await self._commit_locked()

    async def rollback(self) -> None:
        """Roll back the open transaction; does nothing when idle."""
        async with self._lock:
            await self._rollback_locked()

    async def _commit_locked(self) -> None:
        if not self.in_transaction:
            return
        await self._storage.commit()
        logger.debug("transaction_committed", implicit=self.implicit)
        self.reset()

    async def _rollback_locked(self) -> None:
        if not self.in_transaction:
            return
        await self._storage.rollback()
        logger.debug("transaction_rolled_back", implicit=self.implicit)
        self.reset()

    @asynccontextmanager
    async def write_scope(self, commit_implicit: bool = False) -> AsyncIterator[None]:
        """Bracket one mutating operation.

        Opens an implicit transaction when idle. On success the implicit
        transaction is committed if auto-commit is enabled. If the body
        raises, a transaction opened by this scope is rolled back; a
        transaction that was already open is left to its owner.

        Args:
            commit_implicit: Commit a transaction opened by this scope even
                with auto-commit disabled. Reads pass it for their lazy
                deletions, so a read never leaves the write lock held.

        Example:
            >>> async with coordinator.write_scope():
            ...     await storage.put_raw("k", '"v"', None, False)
        """
        async with self._lock:
            started = False
            if not self.in_transaction:
                await self._storage.begin()
                self.state = TransactionState.OPEN
                self.implicit = True
                started = True

            try:
                yield
            except BaseException:
                if started:
                    await self._rollback_locked()
                raise

            if started and commit_implicit:
                await self._commit_locked()
            elif self.implicit and self.auto_commit:
                await self._commit_locked()
