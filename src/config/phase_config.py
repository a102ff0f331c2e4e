"""Per-phase timing configuration.

Each governance phase has a default duration, a number of deadline
extensions that may be granted, the length of one extension, and whether
leaving the phase needs a manual step. The voting entry is the one the
core acts on: the deadline sweep reads it to decide whether an expired
session may be extended and by how much, and skips expired sessions
entirely when voting requires manual progression.

The voting entry is derived from VotingDefaults so that VOTING_* environment
variables apply; the other phases use the built-in table below.

Usage:
    phases = PhaseConfigurationRegistry.from_voting_defaults(defaults)
    voting = phases.get(GovernancePhase.VOTING)
    phases.update(GovernancePhase.VOTING, allowed_extensions=2)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any

from structlog import get_logger

from src.config.voting_config import VotingDefaults
from src.domain.models.proposal import GovernancePhase

logger = get_logger()


@dataclass(frozen=True)
class PhaseConfiguration:
    """Timing rules for one governance phase.

    Attributes:
        phase: The phase these rules apply to.
        default_duration: How long the phase normally lasts.
        requires_manual_progression: Whether leaving the phase needs an
            explicit call rather than a scheduler.
        allowed_extensions: How many times the phase deadline may be extended.
        extension_duration: Length of one extension.
    """

    phase: GovernancePhase
    default_duration: timedelta
    requires_manual_progression: bool = False
    allowed_extensions: int = 0
    extension_duration: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.default_duration <= timedelta(0):
            raise ValueError(
                f"default_duration must be positive, got {self.default_duration}"
            )
        if self.allowed_extensions < 0:
            raise ValueError(
                f"allowed_extensions must be >= 0, got {self.allowed_extensions}"
            )
        if self.extension_duration < timedelta(0):
            raise ValueError(
                f"extension_duration must be >= 0, got {self.extension_duration}"
            )
        if self.allowed_extensions > 0 and self.extension_duration == timedelta(0):
            raise ValueError(
                "extension_duration must be positive when extensions are allowed"
            )

    def can_extend(self, extension_count: int) -> bool:
        """Whether another extension is allowed after extension_count."""
        return extension_count < self.allowed_extensions

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "default_duration_seconds": self.default_duration.total_seconds(),
            "requires_manual_progression": self.requires_manual_progression,
            "allowed_extensions": self.allowed_extensions,
            "extension_duration_seconds": self.extension_duration.total_seconds(),
        }


DEFAULT_PHASE_CONFIGURATIONS: dict[GovernancePhase, PhaseConfiguration] = {
    GovernancePhase.PROPOSAL: PhaseConfiguration(
        phase=GovernancePhase.PROPOSAL,
        default_duration=timedelta(hours=24),
        allowed_extensions=2,
        extension_duration=timedelta(hours=12),
    ),
    GovernancePhase.DISCUSSION: PhaseConfiguration(
        phase=GovernancePhase.DISCUSSION,
        default_duration=timedelta(hours=48),
        allowed_extensions=3,
        extension_duration=timedelta(hours=24),
    ),
    GovernancePhase.REVISION: PhaseConfiguration(
        phase=GovernancePhase.REVISION,
        default_duration=timedelta(hours=24),
        requires_manual_progression=True,
        allowed_extensions=2,
        extension_duration=timedelta(hours=12),
    ),
    GovernancePhase.VOTING: PhaseConfiguration(
        phase=GovernancePhase.VOTING,
        default_duration=timedelta(hours=72),
        allowed_extensions=1,
        extension_duration=timedelta(hours=24),
    ),
    GovernancePhase.RESOLUTION: PhaseConfiguration(
        phase=GovernancePhase.RESOLUTION,
        default_duration=timedelta(hours=12),
    ),
    GovernancePhase.EXECUTION: PhaseConfiguration(
        phase=GovernancePhase.EXECUTION,
        default_duration=timedelta(days=7),
        requires_manual_progression=True,
        allowed_extensions=5,
        extension_duration=timedelta(hours=24),
    ),
}


class PhaseConfigurationRegistry:
    """Current phase configurations, updatable at runtime."""

    def __init__(
        self,
        configurations: dict[GovernancePhase, PhaseConfiguration] | None = None,
    ) -> None:
        self._configurations = dict(configurations or DEFAULT_PHASE_CONFIGURATIONS)
        missing = set(GovernancePhase) - set(self._configurations)
        if missing:
            names = ", ".join(sorted(p.value for p in missing))
            raise ValueError(f"Missing phase configuration for: {names}")

    @classmethod
    def from_voting_defaults(cls, defaults: VotingDefaults) -> PhaseConfigurationRegistry:
        """Registry whose voting entry follows the voting defaults."""
        configurations = dict(DEFAULT_PHASE_CONFIGURATIONS)
        configurations[GovernancePhase.VOTING] = replace(
            configurations[GovernancePhase.VOTING],
            default_duration=defaults.duration_timedelta,
            allowed_extensions=defaults.allowed_extensions,
            extension_duration=defaults.extension_timedelta,
        )
        return cls(configurations)

    def get(self, phase: GovernancePhase) -> PhaseConfiguration:
        return self._configurations[phase]

    def update(self, phase: GovernancePhase, **changes: Any) -> PhaseConfiguration:
        """Replace fields of a phase's configuration.

        Args:
            phase: Phase to update.
            **changes: PhaseConfiguration fields to change (not phase).

        Returns:
            The new configuration.

        Raises:
            ValueError: If the result is invalid or phase is in changes.
        """
        if "phase" in changes:
            raise ValueError("A configuration's phase cannot be changed")
        updated = replace(self._configurations[phase], **changes)
        self._configurations[phase] = updated
        logger.info(
            "phase_configuration_updated",
            phase=phase.value,
            changed=sorted(changes),
        )
        return updated

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            phase.value: config.to_dict()
            for phase, config in self._configurations.items()
        }
