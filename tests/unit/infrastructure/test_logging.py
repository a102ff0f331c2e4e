"""Unit tests for structured logging configuration.

Tests the structlog configuration and log level resolution.
"""

import json
import logging
import os
from unittest.mock import patch

import pytest
import structlog

from src.infrastructure.observability.correlation import correlation_scope
from src.infrastructure.observability.logging import (
    configure_structlog,
    resolve_log_level,
)


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def _renderer_types() -> list[type]:
    return [type(p) for p in structlog.get_config()["processors"]]


class TestConfigureStructlog:
    """Tests for configure_structlog function."""

    def test_production_renders_json(self) -> None:
        configure_structlog(environment="production")
        assert _renderer_types()[-1] is structlog.processors.JSONRenderer

    def test_development_renders_console(self) -> None:
        configure_structlog(environment="development")
        assert _renderer_types()[-1] is structlog.dev.ConsoleRenderer

    def test_defaults_to_production(self) -> None:
        configure_structlog()
        assert _renderer_types()[-1] is structlog.processors.JSONRenderer

    def test_includes_utc_timestamper(self) -> None:
        configure_structlog()
        assert structlog.processors.TimeStamper in _renderer_types()

    def test_production_output_is_json_with_correlation_id(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        configure_structlog(environment="production", log_level="INFO")
        with correlation_scope("corr-1"):
            structlog.get_logger().info("vote_cast", session_id="s-1")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["event"] == "vote_cast"
        assert payload["session_id"] == "s-1"
        assert payload["correlation_id"] == "corr-1"
        assert payload["level"] == "info"


class TestResolveLogLevel:
    def test_explicit_level(self) -> None:
        assert resolve_log_level("debug") == logging.DEBUG

    def test_reads_environment(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}):
            assert resolve_log_level() == logging.WARNING

    def test_defaults_to_info(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_log_level() == logging.INFO

    def test_unknown_level_falls_back_to_info(self) -> None:
        assert resolve_log_level("chatty") == logging.INFO
