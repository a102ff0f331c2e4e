"""Voting results projections.

VotingResults is a pure projection of a VotingSession; it is recomputed on
every read and never stored. SessionSummary adds the audit chain verdict
and the list of agents that did not vote.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.domain.models.voting_session import VotingSessionStatus


class VotingOutcome(Enum):
    """Verdict of a voting session.

    PENDING while the session is active; APPROVED only when a finalized
    session met both quorum and consensus; REJECTED otherwise.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True, eq=True)
class DecisionTally:
    """Vote count and summed weight for one decision."""

    count: int = 0
    weight: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "weight": self.weight}


@dataclass(frozen=True, eq=True)
class VotingResults:
    """Computed results of a voting session.

    Attributes:
        session_id: Session the results are for.
        proposal_id: Proposal voted on.
        status: Session status at computation time.
        total_eligible: Size of the eligibility snapshot.
        total_votes: Votes cast.
        participation_rate: total_votes / total_eligible (0 if nobody eligible).
        quorum_threshold: Required participation rate.
        quorum_met: participation_rate >= quorum_threshold.
        approve: Approve tally.
        reject: Reject tally.
        abstain: Abstain tally.
        consensus_percentage: 100 * approve weight / total weight.
        consensus_threshold: Required consensus, in percent.
        consensus_met: consensus_percentage >= consensus_threshold.
        result: Verdict.
        deadline: Session deadline.
        time_remaining_seconds: Seconds until the deadline (0 once passed).
        finalized_at: When the session closed, if it has.
    """

    session_id: str
    proposal_id: str
    status: VotingSessionStatus
    total_eligible: int
    total_votes: int
    participation_rate: float
    quorum_threshold: float
    quorum_met: bool
    approve: DecisionTally
    reject: DecisionTally
    abstain: DecisionTally
    consensus_percentage: float
    consensus_threshold: float
    consensus_met: bool
    result: VotingOutcome
    deadline: datetime
    time_remaining_seconds: float
    finalized_at: datetime | None = None

    @property
    def total_weight(self) -> float:
        return self.approve.weight + self.reject.weight + self.abstain.weight

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "session_id": self.session_id,
            "proposal_id": self.proposal_id,
            "status": self.status.value,
            "total_eligible": self.total_eligible,
            "total_votes": self.total_votes,
            "participation_rate": self.participation_rate,
            "quorum_threshold": self.quorum_threshold,
            "quorum_met": self.quorum_met,
            "votes": {
                "approve": self.approve.to_dict(),
                "reject": self.reject.to_dict(),
                "abstain": self.abstain.to_dict(),
            },
            "consensus_percentage": self.consensus_percentage,
            "consensus_threshold": self.consensus_threshold,
            "consensus_met": self.consensus_met,
            "result": self.result.value,
            "deadline": self.deadline.isoformat(),
            "time_remaining_seconds": self.time_remaining_seconds,
            "finalized_at": self.finalized_at.isoformat()
            if self.finalized_at
            else None,
        }


@dataclass(frozen=True, eq=True)
class SessionSummary:
    """Minutes of a voting session.

    Attributes:
        results: Current results.
        audit_entries: Number of entries in the session's audit chain.
        audit_chain_valid: Whether the chain verified.
        non_voters: Eligible agents that have not voted, sorted.
    """

    results: VotingResults
    audit_entries: int
    audit_chain_valid: bool
    non_voters: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "results": self.results.to_dict(),
            "audit_entries": self.audit_entries,
            "audit_chain_valid": self.audit_chain_valid,
            "non_voters": list(self.non_voters),
        }
