"""Custom exceptions for the key-value store.

This module defines the exception hierarchy for store errors, providing
structured error handling with error codes and context.
"""

from typing import Any, Optional


class KVStoreError(Exception):
    """Base exception for all store-related errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context information about the error
    """

    def __init__(
        self, message: str, error_code: str, context: Optional[dict[str, Any]] = None
    ) -> None:
        """Initialize store error.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code
            context: Optional additional context information
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}


class StoreNotInitializedError(KVStoreError):
    """Raised when an operation runs without an open storage handle.

    This happens before ``init()`` has completed or after ``close()``.
    """

    def __init__(self, operation: Optional[str] = None) -> None:
        """Initialize not initialized error.

        Args:
            operation: Optional name of the operation that was attempted
        """
        if operation:
            message = f"Database not initialized (operation '{operation}')"
        else:
            message = "Database not initialized"

        context = {"operation": operation} if operation else {}

        super().__init__(
            message=message,
            error_code="store_not_initialized",
            context=context,
        )
        self.operation = operation


class ValueSerializationError(KVStoreError):
    """Raised when a value cannot be encoded or a stored blob cannot be decoded."""

    def __init__(self, reason: str, key: Optional[str] = None) -> None:
        """Initialize serialization error.

        Args:
            reason: Description of why serialization failed
            key: Optional key whose value failed to serialize
        """
        if key is not None:
            message = f"Failed to serialize value for key '{key}': {reason}"
        else:
            message = f"Failed to serialize value: {reason}"

        context: dict[str, Any] = {"reason": reason}
        if key is not None:
            context["key"] = key

        super().__init__(
            message=message,
            error_code="value_serialization_error",
            context=context,
        )
        self.reason = reason
        self.key = key


class TransactionAlreadyOpenError(KVStoreError):
    """Raised when a transaction is begun while another one is open.

    SQLite supports a single active transaction per connection, so nested
    transactions are rejected instead of silently merged.
    """

    def __init__(self, implicit: bool = False) -> None:
        """Initialize transaction already open error.

        Args:
            implicit: True if the open transaction was started by a write
                with auto-commit disabled
        """
        if implicit:
            message = (
                "A transaction is already open with uncommitted writes "
                "(auto-commit is disabled); call commit_transaction() first"
            )
        else:
            message = "A transaction is already open; nested transactions are not supported"

        super().__init__(
            message=message,
            error_code="transaction_already_open",
            context={"implicit": implicit},
        )
        self.implicit = implicit


class InvalidJournalModeError(KVStoreError):
    """Raised when an unknown journal mode is requested."""

    def __init__(self, mode: str, allowed: list[str]) -> None:
        """Initialize invalid journal mode error.

        Args:
            mode: The rejected journal mode
            allowed: Journal modes that are accepted
        """
        super().__init__(
            message=f"Invalid journal mode '{mode}'. Allowed: {', '.join(allowed)}",
            error_code="invalid_journal_mode",
            context={"mode": mode, "allowed": allowed},
        )
        self.mode = mode
        self.allowed = allowed


class LoopOperationsDisabledError(KVStoreError):
    """Raised when loop operations are used without enabling them in config."""

    def __init__(self) -> None:
        """Initialize loop operations disabled error."""
        super().__init__(
            message="Loop operations are not enabled.",
            error_code="loop_operations_disabled",
        )
