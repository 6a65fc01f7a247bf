"""Structured logging configuration.

Store operations log event-style messages ("entry_expired",
"transaction_committed", ...) through structlog with the key and table bound
as fields. Events are routed through the standard ``logging`` module, so a
host application that never calls ``setup_logging()`` only sees warnings and
errors, on stderr, via logging's last-resort handler.
"""

import logging
import sys
from typing import Any, Optional, TextIO

import structlog


def _shared_processors() -> list[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _configure(renderer: Any, cache: bool) -> None:
    structlog.configure(
        processors=_shared_processors() + [structlog.processors.format_exc_info, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=cache,
    )


def setup_logging(
    log_level: str = "WARNING",
    json_logs: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structured logging for the store and its CLI.

    Args:
        log_level: Level for the ``sqlitekv`` loggers (DEBUG shows every
            write, read-side deletion and transaction boundary)
        json_logs: If True, output logs in JSON format; otherwise use console format
        stream: Output stream (default: stderr, keeping stdout free for
            command output)

    Example:
        >>> setup_logging(log_level="DEBUG", json_logs=False)
        >>> logger = get_logger(__name__)
        >>> logger.debug("entry_written", key="user:1")
    """
    logging.basicConfig(format="%(message)s", stream=stream or sys.stderr)
    logging.getLogger("sqlitekv").setLevel(getattr(logging, log_level.upper()))

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    _configure(renderer, cache=True)


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    If structlog has not been configured yet, events are routed to the
    standard ``logging`` module instead of structlog's stdout printer.

    Args:
        name: Logger name (typically __name__)
        **initial_values: Fields bound to every event of this logger

    Returns:
        Configured structlog logger

    Example:
        >>> logger = get_logger(__name__, table="kv_store")
        >>> logger.info("store_opened", path="database.sqlite")
    """
    if not structlog.is_configured():
        _configure(structlog.processors.KeyValueRenderer(), cache=False)
    return structlog.get_logger(name, **initial_values)


def bind_store_context(**fields: Any) -> None:
    """Bind fields to every log event emitted in the current context.

    Args:
        **fields: Context fields such as db_path or table

    Example:
        >>> bind_store_context(db_path="/tmp/cache.sqlite")
    """
    structlog.contextvars.bind_contextvars(**fields)
