"""Observability module for the key-value store.

Provides structured logging for store lifecycle, lazy expiry and
transaction events.
"""

from sqlitekv.observability.logging import bind_store_context, get_logger, setup_logging

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_store_context",
]
