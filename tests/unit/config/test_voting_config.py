"""Unit tests for VotingDefaults.

Tests default values, bounds validation and environment loading.
"""

from __future__ import annotations

import os
from datetime import timedelta
from unittest.mock import patch

import pytest

from src.config.voting_config import (
    DEFAULT_VOTING_DEFAULTS,
    MAX_ALLOWED_EXTENSIONS,
    MAX_DURATION_HOURS,
    MIN_DURATION_HOURS,
    TEST_VOTING_DEFAULTS,
    VotingDefaults,
)
from src.domain.models.agent import AgentRole
from src.domain.models.voting_session import TimeoutBehavior

VOTING_ENV_KEYS = (
    "VOTING_DURATION_HOURS",
    "VOTING_QUORUM_THRESHOLD",
    "VOTING_CONSENSUS_THRESHOLD",
    "VOTING_AUTO_FINALIZE",
    "VOTING_TIMEOUT_BEHAVIOR",
    "VOTING_ALLOWED_EXTENSIONS",
    "VOTING_EXTENSION_HOURS",
)


@pytest.fixture(autouse=True)
def clean_voting_env():
    """Strip VOTING_* variables so the host environment cannot leak in."""
    saved = {key: os.environ.pop(key) for key in VOTING_ENV_KEYS if key in os.environ}
    yield
    os.environ.update(saved)


class TestVotingDefaults:
    """Tests for VotingDefaults dataclass."""

    def test_defaults(self) -> None:
        defaults = VotingDefaults()
        assert defaults.duration_hours == 48
        assert defaults.quorum_threshold == 0.6
        assert defaults.consensus_threshold == 0.7
        assert defaults.auto_finalize is True
        assert defaults.timeout_behavior == TimeoutBehavior.EXTEND_ONCE
        assert defaults.duration_timedelta == timedelta(hours=48)
        assert defaults.allowed_extensions == 1
        assert defaults.extension_timedelta == timedelta(hours=24)

    def test_valid_duration_at_bounds(self) -> None:
        assert VotingDefaults(duration_hours=MIN_DURATION_HOURS).duration_hours == 1
        assert VotingDefaults(duration_hours=MAX_DURATION_HOURS).duration_hours == 720

    @pytest.mark.parametrize("hours", [0, MAX_DURATION_HOURS + 1])
    def test_duration_out_of_bounds_raises(self, hours: int) -> None:
        with pytest.raises(ValueError, match="duration_hours must be between"):
            VotingDefaults(duration_hours=hours)

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"allowed_extensions": -1}, "allowed_extensions"),
            ({"allowed_extensions": MAX_ALLOWED_EXTENSIONS + 1}, "allowed_extensions"),
            ({"extension_hours": 0}, "extension_hours"),
        ],
    )
    def test_extension_out_of_bounds_raises(
        self, kwargs: dict[str, int], field: str
    ) -> None:
        with pytest.raises(ValueError, match=f"{field} must be between"):
            VotingDefaults(**kwargs)  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        "kwargs",
        [{"quorum_threshold": 1.1}, {"consensus_threshold": -0.5}],
    )
    def test_threshold_out_of_bounds_raises(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError, match="threshold must be between"):
            VotingDefaults(**kwargs)  # type: ignore[arg-type]

    def test_is_frozen(self) -> None:
        with pytest.raises(AttributeError):
            DEFAULT_VOTING_DEFAULTS.duration_hours = 1  # type: ignore[misc]

    def test_to_voting_config(self) -> None:
        config = VotingDefaults(duration_hours=2, quorum_threshold=0.5).to_voting_config()
        assert config.duration_hours == 2
        assert config.quorum_threshold == 0.5
        assert config.allowed_roles == frozenset(
            {AgentRole.VOTER, AgentRole.REVIEWER, AgentRole.MEDIATOR}
        )

    def test_test_preset_is_short_and_finalizes(self) -> None:
        assert TEST_VOTING_DEFAULTS.duration_hours == 1
        assert TEST_VOTING_DEFAULTS.timeout_behavior == (
            TimeoutBehavior.FINALIZE_IMMEDIATELY
        )


class TestFromEnvironment:
    """Tests for VotingDefaults.from_environment()."""

    def test_unset_environment_gives_defaults(self) -> None:
        assert VotingDefaults.from_environment() == VotingDefaults()

    def test_reads_every_variable(self) -> None:
        env = {
            "VOTING_DURATION_HOURS": "24",
            "VOTING_QUORUM_THRESHOLD": "0.5",
            "VOTING_CONSENSUS_THRESHOLD": "0.66",
            "VOTING_AUTO_FINALIZE": "false",
            "VOTING_TIMEOUT_BEHAVIOR": "REJECT_PROPOSAL",
            "VOTING_ALLOWED_EXTENSIONS": "3",
            "VOTING_EXTENSION_HOURS": "12",
        }
        with patch.dict(os.environ, env):
            defaults = VotingDefaults.from_environment()

        assert defaults.duration_hours == 24
        assert defaults.quorum_threshold == 0.5
        assert defaults.consensus_threshold == 0.66
        assert defaults.auto_finalize is False
        assert defaults.timeout_behavior == TimeoutBehavior.REJECT_PROPOSAL
        assert defaults.allowed_extensions == 3
        assert defaults.extension_hours == 12

    def test_clamps_out_of_range_values(self) -> None:
        env = {
            "VOTING_DURATION_HOURS": "5000",
            "VOTING_QUORUM_THRESHOLD": "-1",
            "VOTING_CONSENSUS_THRESHOLD": "7",
            "VOTING_ALLOWED_EXTENSIONS": "99",
            "VOTING_EXTENSION_HOURS": "0",
        }
        with patch.dict(os.environ, env):
            defaults = VotingDefaults.from_environment()

        assert defaults.duration_hours == MAX_DURATION_HOURS
        assert defaults.quorum_threshold == 0.0
        assert defaults.consensus_threshold == 1.0
        assert defaults.allowed_extensions == MAX_ALLOWED_EXTENSIONS
        assert defaults.extension_hours == MIN_DURATION_HOURS

    def test_invalid_values_fall_back_to_defaults(self) -> None:
        env = {
            "VOTING_DURATION_HOURS": "two days",
            "VOTING_QUORUM_THRESHOLD": "most",
            "VOTING_AUTO_FINALIZE": "maybe",
            "VOTING_TIMEOUT_BEHAVIOR": "wait_forever",
        }
        with patch.dict(os.environ, env):
            defaults = VotingDefaults.from_environment()

        assert defaults == VotingDefaults()
