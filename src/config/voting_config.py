"""Voting session default configuration.

This module defines the defaults every voting session starts from, with
environment variable overrides for production tuning. Per-session
overrides are applied on top of these by the voting engine.

Environment Variables:
- VOTING_DURATION_HOURS: Voting window length (default: 48, min: 1, max: 720)
- VOTING_QUORUM_THRESHOLD: Minimum participation rate (default: 0.6, min: 0, max: 1)
- VOTING_CONSENSUS_THRESHOLD: Minimum approve-weight share (default: 0.7, min: 0, max: 1)
- VOTING_AUTO_FINALIZE: Let the deadline sweep close sessions (default: true)
- VOTING_TIMEOUT_BEHAVIOR: finalize_immediately | extend_once | reject_proposal
  (default: extend_once)
- VOTING_ALLOWED_EXTENSIONS: Deadline extensions the sweep may grant a session
  (default: 1, min: 0, max: 10)
- VOTING_EXTENSION_HOURS: Length of one extension, counted from the sweep
  (default: 24, min: 1, max: 720)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from src.domain.models.voting_session import (
    DEFAULT_ALLOWED_ROLES,
    DEFAULT_CONSENSUS_THRESHOLD,
    DEFAULT_DURATION_HOURS,
    DEFAULT_QUORUM_THRESHOLD,
    TimeoutBehavior,
    VotingConfig,
)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _get_int_env(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Args:
        key: Environment variable name.
        default: Default value if not set or invalid.

    Returns:
        Parsed integer value or default.
    """
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float_env(key: str, default: float) -> float:
    """Get float environment variable with default."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_bool_env(key: str, default: bool) -> bool:
    """Get boolean environment variable with default."""
    value = os.environ.get(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


# Voting window bounds (1 hour to 30 days)
MIN_DURATION_HOURS = 1
MAX_DURATION_HOURS = 720

# Threshold bounds
MIN_THRESHOLD = 0.0
MAX_THRESHOLD = 1.0

# Deadline extensions granted by the sweep
DEFAULT_ALLOWED_EXTENSIONS = 1
MIN_ALLOWED_EXTENSIONS = 0
MAX_ALLOWED_EXTENSIONS = 10
DEFAULT_EXTENSION_HOURS = 24


@dataclass(frozen=True)
class VotingDefaults:
    """Defaults for new voting sessions.

    Attributes:
        duration_hours: Voting window length in hours.
                        Default: 48. Minimum: 1. Maximum: 720.
        quorum_threshold: Minimum participation rate. Default: 0.6.
        consensus_threshold: Minimum approve-weight share. Default: 0.7.
        auto_finalize: Whether the deadline sweep may close sessions.
        timeout_behavior: Sweep behavior for expired sessions.
        allowed_extensions: Extensions the sweep may grant under
                            extend_once. Default: 1.
        extension_hours: Length of one extension. Default: 24.
    """

    duration_hours: int = DEFAULT_DURATION_HOURS
    quorum_threshold: float = DEFAULT_QUORUM_THRESHOLD
    consensus_threshold: float = DEFAULT_CONSENSUS_THRESHOLD
    auto_finalize: bool = True
    timeout_behavior: TimeoutBehavior = TimeoutBehavior.EXTEND_ONCE
    allowed_extensions: int = DEFAULT_ALLOWED_EXTENSIONS
    extension_hours: int = DEFAULT_EXTENSION_HOURS

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not MIN_DURATION_HOURS <= self.duration_hours <= MAX_DURATION_HOURS:
            raise ValueError(
                f"duration_hours must be between {MIN_DURATION_HOURS} "
                f"and {MAX_DURATION_HOURS}, got {self.duration_hours}"
            )
        if not MIN_THRESHOLD <= self.quorum_threshold <= MAX_THRESHOLD:
            raise ValueError(
                f"quorum_threshold must be between {MIN_THRESHOLD} "
                f"and {MAX_THRESHOLD}, got {self.quorum_threshold}"
            )
        if not MIN_THRESHOLD <= self.consensus_threshold <= MAX_THRESHOLD:
            raise ValueError(
                f"consensus_threshold must be between {MIN_THRESHOLD} "
                f"and {MAX_THRESHOLD}, got {self.consensus_threshold}"
            )
        extensions = self.allowed_extensions
        if not MIN_ALLOWED_EXTENSIONS <= extensions <= MAX_ALLOWED_EXTENSIONS:
            raise ValueError(
                f"allowed_extensions must be between {MIN_ALLOWED_EXTENSIONS} "
                f"and {MAX_ALLOWED_EXTENSIONS}, got {self.allowed_extensions}"
            )
        if not MIN_DURATION_HOURS <= self.extension_hours <= MAX_DURATION_HOURS:
            raise ValueError(
                f"extension_hours must be between {MIN_DURATION_HOURS} "
                f"and {MAX_DURATION_HOURS}, got {self.extension_hours}"
            )

    @property
    def duration_timedelta(self) -> timedelta:
        """Get the voting window as a timedelta."""
        return timedelta(hours=self.duration_hours)

    @property
    def extension_timedelta(self) -> timedelta:
        """Get one deadline extension as a timedelta."""
        return timedelta(hours=self.extension_hours)

    def to_voting_config(self) -> VotingConfig:
        """Build the base VotingConfig sessions start from."""
        return VotingConfig(
            duration_hours=self.duration_hours,
            quorum_threshold=self.quorum_threshold,
            consensus_threshold=self.consensus_threshold,
            auto_finalize=self.auto_finalize,
            allowed_roles=DEFAULT_ALLOWED_ROLES,
            timeout_behavior=self.timeout_behavior,
        )

    @classmethod
    def from_environment(cls) -> VotingDefaults:
        """Create defaults from environment variables.

        Out-of-range numbers are clamped; unparseable values fall back to
        the built-in default.

        Returns:
            VotingDefaults with values from environment or defaults.
        """
        duration = _get_int_env("VOTING_DURATION_HOURS", DEFAULT_DURATION_HOURS)
        # Clamp to valid range
        duration = max(MIN_DURATION_HOURS, min(duration, MAX_DURATION_HOURS))

        quorum = _get_float_env("VOTING_QUORUM_THRESHOLD", DEFAULT_QUORUM_THRESHOLD)
        quorum = max(MIN_THRESHOLD, min(quorum, MAX_THRESHOLD))

        consensus = _get_float_env(
            "VOTING_CONSENSUS_THRESHOLD", DEFAULT_CONSENSUS_THRESHOLD
        )
        consensus = max(MIN_THRESHOLD, min(consensus, MAX_THRESHOLD))

        auto_finalize = _get_bool_env("VOTING_AUTO_FINALIZE", True)

        raw_behavior = os.environ.get("VOTING_TIMEOUT_BEHAVIOR")
        try:
            behavior = (
                TimeoutBehavior(raw_behavior.strip().lower())
                if raw_behavior
                else TimeoutBehavior.EXTEND_ONCE
            )
        except ValueError:
            behavior = TimeoutBehavior.EXTEND_ONCE

        extensions = _get_int_env(
            "VOTING_ALLOWED_EXTENSIONS", DEFAULT_ALLOWED_EXTENSIONS
        )
        extensions = max(
            MIN_ALLOWED_EXTENSIONS, min(extensions, MAX_ALLOWED_EXTENSIONS)
        )

        extension_hours = _get_int_env(
            "VOTING_EXTENSION_HOURS", DEFAULT_EXTENSION_HOURS
        )
        extension_hours = max(
            MIN_DURATION_HOURS, min(extension_hours, MAX_DURATION_HOURS)
        )

        return cls(
            duration_hours=duration,
            quorum_threshold=quorum,
            consensus_threshold=consensus,
            auto_finalize=auto_finalize,
            timeout_behavior=behavior,
            allowed_extensions=extensions,
            extension_hours=extension_hours,
        )


# Default production config
DEFAULT_VOTING_DEFAULTS = VotingDefaults()

# Testing config with the shortest window
TEST_VOTING_DEFAULTS = VotingDefaults(
    duration_hours=MIN_DURATION_HOURS,  # 1 hour
    timeout_behavior=TimeoutBehavior.FINALIZE_IMMEDIATELY,
)
