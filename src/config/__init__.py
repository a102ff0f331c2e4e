"""Configuration module for the governance core.

Available Configurations:
- VotingDefaults: Voting session defaults with environment overrides
- PhaseConfiguration: Per-phase durations and extension rules
"""

from src.config.phase_config import (
    DEFAULT_PHASE_CONFIGURATIONS,
    PhaseConfiguration,
    PhaseConfigurationRegistry,
)
from src.config.voting_config import (
    DEFAULT_VOTING_DEFAULTS,
    TEST_VOTING_DEFAULTS,
    VotingDefaults,
)

__all__ = [
    "VotingDefaults",
    "DEFAULT_VOTING_DEFAULTS",
    "TEST_VOTING_DEFAULTS",
    "PhaseConfiguration",
    "PhaseConfigurationRegistry",
    "DEFAULT_PHASE_CONFIGURATIONS",
]
