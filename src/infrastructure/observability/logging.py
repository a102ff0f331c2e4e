"""Structured logging configuration with structlog.

This module provides centralized structlog configuration for the governance
core, supporting both production (JSON) and development (console) output.

Log Entry Format (production):
    {
        "timestamp": "2026-01-01T00:00:00.000000Z",
        "level": "info",
        "event": "vote_cast",
        "correlation_id": "uuid",
        "session_id": "...",
        ...additional context
    }

Usage:
    # At application startup
    from src.infrastructure.observability import configure_structlog

    configure_structlog(environment="production")  # JSON output
    configure_structlog(environment="development")  # Console output

    # Then use structlog normally
    from structlog import get_logger
    logger = get_logger()
    logger.info("voting_session_opened", session_id=session_id)
"""

import logging
import os
from typing import cast

import structlog
from structlog.typing import Processor

from src.infrastructure.observability.correlation import correlation_id_processor

# Environment variable for log level (default: INFO)
LOG_LEVEL_ENV = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

PRODUCTION = "production"


def resolve_log_level(level_name: str | None = None) -> int:
    """Resolve a log level name to its logging constant.

    Args:
        level_name: Explicit level name; LOG_LEVEL from the environment
            (default INFO) when None.

    Returns:
        The logging level integer; INFO for unknown names.
    """
    if level_name is None:
        level_name = os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)
    level = getattr(logging, level_name.strip().upper(), None)
    return level if isinstance(level, int) else logging.INFO


def configure_structlog(
    environment: str = PRODUCTION,
    log_level: str | None = None,
) -> None:
    """Configure structlog for the application.

    Should be called once at application startup.

    Args:
        environment: 'production' for JSON output, anything else for console.
        log_level: Level name overriding LOG_LEVEL.
    """
    shared_processors: list[Processor] = [
        # Merge context from contextvars (async support)
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        cast(Processor, correlation_id_processor),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if environment == PRODUCTION:
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(
            resolve_log_level(log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
