"""Observability infrastructure for structured logging and correlation.

This module provides cross-cutting observability concerns:
- Structured JSON logging with structlog
- Correlation ID management for tracing a unit of work

Usage:
    from src.infrastructure.observability import (
        configure_structlog,
        correlation_scope,
    )

    # At startup
    configure_structlog(environment="production")

    # Around a unit of work
    with correlation_scope():
        ...
"""

from src.infrastructure.observability.correlation import (
    correlation_id_processor,
    correlation_scope,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from src.infrastructure.observability.logging import (
    configure_structlog,
    resolve_log_level,
)

__all__: list[str] = [
    "configure_structlog",
    "correlation_id_processor",
    "correlation_scope",
    "generate_correlation_id",
    "get_correlation_id",
    "resolve_log_level",
    "set_correlation_id",
]
