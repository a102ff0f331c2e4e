"""Correlation ID management for tracing one unit of work.

Correlation IDs live in a contextvar, so they follow a request (or one
deadline sweep) across awaits without being passed around. The structlog
processor below stamps the current id onto every log entry.

Usage:
    with correlation_scope() as correlation_id:
        await sweeper.process_expired_sessions()

    # In structlog configuration
    processors = [..., correlation_id_processor, ...]
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from uuid6 import uuid7

# Default is empty string to avoid None type issues
_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    """Generate a new, time-ordered correlation ID (UUIDv7)."""
    return str(uuid7())


def get_correlation_id() -> str:
    """Get the current correlation ID, or empty string if none is set."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in the current context."""
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under a correlation ID, restoring the previous one after.

    Args:
        correlation_id: ID to use; a new one is generated when None.

    Yields:
        The correlation ID in effect inside the block.
    """
    value = correlation_id or generate_correlation_id()
    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)


def correlation_id_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor to add correlation_id to every log entry.

    Args:
        logger: The logger instance (unused, required by structlog).
        method_name: The logging method name (unused, required by structlog).
        event_dict: The event dictionary to modify.

    Returns:
        The event dictionary with correlation_id added when one is set.
    """
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict
