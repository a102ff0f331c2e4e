"""Voting session domain model.

A VotingSession is opened when a proposal enters the voting phase. It holds
an immutable snapshot of the agents eligible to vote, the votes cast so far
(append-only, one per agent) and the configuration the session runs under.
A session terminates exactly once, either by finalization or cancellation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from uuid6 import uuid7

from src.domain.models.agent import AgentRole

# Defaults for a voting session; overridable per session and via environment.
DEFAULT_DURATION_HOURS = 48
DEFAULT_QUORUM_THRESHOLD = 0.6
DEFAULT_CONSENSUS_THRESHOLD = 0.7
DEFAULT_ALLOWED_ROLES: frozenset[AgentRole] = frozenset(
    {AgentRole.VOTER, AgentRole.REVIEWER, AgentRole.MEDIATOR}
)

# Bounds for a single vote's weight.
MIN_VOTE_WEIGHT = 0.1
MAX_VOTE_WEIGHT = 2.0


class VoteDecision(Enum):
    """Decision an agent can cast."""

    APPROVE = "approve"
    REJECT = "reject"
    ABSTAIN = "abstain"


class VotingSessionStatus(Enum):
    """Lifecycle status of a voting session.

    Statuses:
        ACTIVE: Accepting votes.
        FINALIZED: Closed with a computed verdict.
        CANCELLED: Closed without a verdict (proposal rejected).
    """

    ACTIVE = "active"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Check whether the session can no longer change."""
        return self != VotingSessionStatus.ACTIVE


class TimeoutBehavior(Enum):
    """What the deadline sweep does with an expired session."""

    FINALIZE_IMMEDIATELY = "finalize_immediately"
    EXTEND_ONCE = "extend_once"
    REJECT_PROPOSAL = "reject_proposal"


@dataclass(frozen=True, eq=True)
class VotingConfig:
    """Configuration a voting session runs under.

    Attributes:
        duration_hours: Length of the voting window.
        quorum_threshold: Minimum participation rate, in [0, 1].
        consensus_threshold: Minimum approve-weight share, in [0, 1].
        auto_finalize: Whether the deadline sweep may close the session.
        allowed_roles: Roles whose holders are eligible to vote.
        timeout_behavior: Sweep behavior once the deadline passes.
    """

    duration_hours: float = DEFAULT_DURATION_HOURS
    quorum_threshold: float = DEFAULT_QUORUM_THRESHOLD
    consensus_threshold: float = DEFAULT_CONSENSUS_THRESHOLD
    auto_finalize: bool = True
    allowed_roles: frozenset[AgentRole] = field(default=DEFAULT_ALLOWED_ROLES)
    timeout_behavior: TimeoutBehavior = TimeoutBehavior.EXTEND_ONCE

    def __post_init__(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any value is out of range.
        """
        if self.duration_hours <= 0:
            raise ValueError(
                f"duration_hours must be positive, got {self.duration_hours}"
            )
        if not 0.0 <= self.quorum_threshold <= 1.0:
            raise ValueError(
                f"quorum_threshold must be between 0 and 1, "
                f"got {self.quorum_threshold}"
            )
        if not 0.0 <= self.consensus_threshold <= 1.0:
            raise ValueError(
                f"consensus_threshold must be between 0 and 1, "
                f"got {self.consensus_threshold}"
            )
        if not self.allowed_roles:
            raise ValueError("allowed_roles must not be empty")

    @property
    def duration(self) -> timedelta:
        """Voting window as a timedelta."""
        return timedelta(hours=self.duration_hours)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "duration_hours": self.duration_hours,
            "quorum_threshold": self.quorum_threshold,
            "consensus_threshold": self.consensus_threshold,
            "auto_finalize": self.auto_finalize,
            "allowed_roles": sorted(role.value for role in self.allowed_roles),
            "timeout_behavior": self.timeout_behavior.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VotingConfig:
        """Rebuild a config from to_dict() output."""
        return cls(
            duration_hours=float(data["duration_hours"]),
            quorum_threshold=float(data["quorum_threshold"]),
            consensus_threshold=float(data["consensus_threshold"]),
            auto_finalize=bool(data["auto_finalize"]),
            allowed_roles=frozenset(AgentRole(r) for r in data["allowed_roles"]),
            timeout_behavior=TimeoutBehavior(data["timeout_behavior"]),
        )


@dataclass(frozen=True, eq=True)
class VotingConfigOverride:
    """Per-session overrides; None leaves the default in place."""

    duration_hours: float | None = None
    quorum_threshold: float | None = None
    consensus_threshold: float | None = None
    auto_finalize: bool | None = None
    allowed_roles: frozenset[AgentRole] | None = None
    timeout_behavior: TimeoutBehavior | None = None


def apply_overrides(
    defaults: VotingConfig,
    override: VotingConfigOverride | None,
) -> VotingConfig:
    """Merge an override onto a base config.

    Args:
        defaults: Base configuration.
        override: Values to replace, or None to keep the base.

    Returns:
        The merged (and re-validated) VotingConfig.

    Raises:
        ValueError: If the merged values are out of range.
    """
    if override is None:
        return defaults

    def pick(value: Any, fallback: Any) -> Any:
        return value if value is not None else fallback

    return VotingConfig(
        duration_hours=pick(override.duration_hours, defaults.duration_hours),
        quorum_threshold=pick(override.quorum_threshold, defaults.quorum_threshold),
        consensus_threshold=pick(
            override.consensus_threshold, defaults.consensus_threshold
        ),
        auto_finalize=pick(override.auto_finalize, defaults.auto_finalize),
        allowed_roles=pick(override.allowed_roles, defaults.allowed_roles),
        timeout_behavior=pick(override.timeout_behavior, defaults.timeout_behavior),
    )


@dataclass(frozen=True, eq=True)
class Vote:
    """A single weighted vote.

    Attributes:
        vote_id: Unique vote id.
        session_id: Session the vote belongs to.
        agent_id: Agent that cast the vote.
        decision: approve, reject or abstain.
        weight: Vote weight in [0.1, 2.0].
        justification: Optional free-text justification.
        cast_at: When the vote was cast (UTC).
    """

    vote_id: str
    session_id: str
    agent_id: str
    decision: VoteDecision
    weight: float
    cast_at: datetime
    justification: str | None = None

    def __post_init__(self) -> None:
        """Validate vote invariants."""
        if not MIN_VOTE_WEIGHT <= self.weight <= MAX_VOTE_WEIGHT:
            raise ValueError(
                f"Vote weight must be between {MIN_VOTE_WEIGHT} and "
                f"{MAX_VOTE_WEIGHT}, got {self.weight}"
            )

    @classmethod
    def create(
        cls,
        session_id: str,
        agent_id: str,
        decision: VoteDecision,
        weight: float,
        cast_at: datetime,
        justification: str | None = None,
    ) -> Vote:
        """Create a vote with a fresh UUIDv7 id."""
        return cls(
            vote_id=str(uuid7()),
            session_id=session_id,
            agent_id=agent_id,
            decision=decision,
            weight=weight,
            cast_at=cast_at,
            justification=justification,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "vote_id": self.vote_id,
            "session_id": self.session_id,
            "agent_id": self.agent_id,
            "decision": self.decision.value,
            "weight": self.weight,
            "justification": self.justification,
            "cast_at": self.cast_at.isoformat(),
        }


@dataclass(frozen=True, eq=True)
class VotingSession:
    """Voting session aggregate.

    Attributes:
        session_id: Unique session id.
        proposal_id: Proposal being voted on.
        config: Configuration the session runs under.
        started_at: When the session opened.
        deadline: When the voting window closes.
        eligible_agents: Agents allowed to vote, snapshotted at open.
        status: Lifecycle status.
        votes: Votes in cast order.
        finalized_at: When the session was finalized or cancelled.
        extension_count: Number of deadline extensions applied.
        cancel_reason: Why the session was cancelled, if it was.
    """

    session_id: str
    proposal_id: str
    config: VotingConfig
    started_at: datetime
    deadline: datetime
    eligible_agents: frozenset[str]
    status: VotingSessionStatus = VotingSessionStatus.ACTIVE
    votes: tuple[Vote, ...] = field(default_factory=tuple)
    finalized_at: datetime | None = None
    extension_count: int = 0
    cancel_reason: str | None = None

    def __post_init__(self) -> None:
        """Validate session invariants."""
        if self.deadline <= self.started_at:
            raise ValueError("Session deadline must be after started_at")
        voters = [v.agent_id for v in self.votes]
        if len(voters) != len(set(voters)):
            raise ValueError("A session may hold at most one vote per agent")
        if self.status.is_terminal() and self.finalized_at is None:
            raise ValueError("Terminated sessions must carry finalized_at")

    @classmethod
    def open(
        cls,
        proposal_id: str,
        config: VotingConfig,
        started_at: datetime,
        deadline: datetime,
        eligible_agents: frozenset[str],
        session_id: str | None = None,
    ) -> VotingSession:
        """Open a new active session.

        Args:
            proposal_id: Proposal being voted on.
            config: Effective configuration.
            started_at: Open timestamp.
            deadline: Close timestamp.
            eligible_agents: Eligibility snapshot.
            session_id: Optional id (defaults to a UUIDv7).

        Returns:
            New active VotingSession with no votes.
        """
        return cls(
            session_id=session_id or str(uuid7()),
            proposal_id=proposal_id,
            config=config,
            started_at=started_at,
            deadline=deadline,
            eligible_agents=frozenset(eligible_agents),
        )

    @property
    def is_active(self) -> bool:
        return self.status == VotingSessionStatus.ACTIVE

    @property
    def voted_agents(self) -> frozenset[str]:
        """Agents that have already voted."""
        return frozenset(v.agent_id for v in self.votes)

    def has_voted(self, agent_id: str) -> bool:
        return any(v.agent_id == agent_id for v in self.votes)

    def is_expired(self, now: datetime) -> bool:
        """Check whether the deadline has passed at the given time."""
        return now > self.deadline

    def with_vote(self, vote: Vote) -> VotingSession:
        """Create new session with a vote appended."""
        return replace(self, votes=(*self.votes, vote))

    def with_finalized(self, finalized_at: datetime) -> VotingSession:
        """Create new session in FINALIZED status."""
        return replace(
            self,
            status=VotingSessionStatus.FINALIZED,
            finalized_at=finalized_at,
        )

    def with_cancelled(self, cancelled_at: datetime, reason: str) -> VotingSession:
        """Create new session in CANCELLED status."""
        return replace(
            self,
            status=VotingSessionStatus.CANCELLED,
            finalized_at=cancelled_at,
            cancel_reason=reason,
        )

    def with_extended_deadline(self, deadline: datetime) -> VotingSession:
        """Create new session with a later deadline and one more extension."""
        return replace(
            self,
            deadline=deadline,
            extension_count=self.extension_count + 1,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary.

        This is also the snapshot recorded in the session's audit entry.
        """
        return {
            "session_id": self.session_id,
            "proposal_id": self.proposal_id,
            "status": self.status.value,
            "config": self.config.to_dict(),
            "started_at": self.started_at.isoformat(),
            "deadline": self.deadline.isoformat(),
            "eligible_agents": sorted(self.eligible_agents),
            "votes": [v.to_dict() for v in self.votes],
            "finalized_at": self.finalized_at.isoformat()
            if self.finalized_at
            else None,
            "extension_count": self.extension_count,
            "cancel_reason": self.cancel_reason,
        }
