"""Agent record as seen by the governance core.

Agent profiles live in an external directory. The core only needs an
agent's roles (for eligibility and the role multipliers) and its
performance scores (for the base vote weight).

Architecture Note:
- Domain layer MUST NOT import from application or infrastructure
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AgentRole(Enum):
    """Governance roles an agent can hold.

    Values:
        PROPOSER: May author proposals.
        VOTER: May vote.
        REVIEWER: May vote; votes carry a 1.2x multiplier.
        MEDIATOR: May vote; votes carry a further 1.1x multiplier.
        OBSERVER: Read-only.
    """

    PROPOSER = "proposer"
    VOTER = "voter"
    REVIEWER = "reviewer"
    MEDIATOR = "mediator"
    OBSERVER = "observer"


@dataclass(frozen=True, eq=True)
class PerformanceMetrics:
    """Performance scores in [0, 1]; None when the directory has no score."""

    quality_score: float | None = None
    consensus_score: float | None = None

    def __post_init__(self) -> None:
        for name in ("quality_score", "consensus_score"):
            value = getattr(self, name)
            if value is not None and not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")


@dataclass(frozen=True, eq=True)
class AgentRecord:
    """An agent known to the directory.

    Attributes:
        agent_id: Directory id of the agent.
        roles: Roles the agent holds.
        active: Whether the agent is currently active.
        metrics: Performance scores used for vote weighting.
    """

    agent_id: str
    roles: frozenset[AgentRole] = field(default_factory=frozenset)
    active: bool = True
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    def has_any_role(self, roles: frozenset[AgentRole]) -> bool:
        """Check whether the agent holds at least one of the given roles."""
        return bool(self.roles & roles)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "agent_id": self.agent_id,
            "roles": sorted(role.value for role in self.roles),
            "active": self.active,
            "quality_score": self.metrics.quality_score,
            "consensus_score": self.metrics.consensus_score,
        }
