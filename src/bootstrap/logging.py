"""Bootstrap wiring for logging configuration."""

from __future__ import annotations

import os

from src.infrastructure.observability import configure_structlog as _configure_structlog

ENVIRONMENT_ENV = "GOVERNANCE_ENV"


def configure_structlog(environment: str | None = None) -> None:
    """Configure structlog for the given environment.

    Falls back to GOVERNANCE_ENV, then "production" (JSON output).
    """
    _configure_structlog(
        environment=environment or os.environ.get(ENVIRONMENT_ENV, "production")
    )


__all__ = ["configure_structlog"]
