"""Proposal domain model and phase transition table.

A proposal moves through the governance pipeline:

    (draft, proposal)
        -> (discussion, discussion)
        <-> (revision, revision)
        -> (voting, voting)
        -> (approved | rejected, resolution)
        -> (executed, execution)          [only from approved]

Status is the proposal's disposition; phase is the pipeline stage. Only the
(status, phase) pairs listed in VALID_STATE_PAIRS can ever be constructed,
so no other combination can reach a repository.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ProposalStatus(Enum):
    """Disposition of a proposal within or after a pipeline stage."""

    DRAFT = "draft"
    DISCUSSION = "discussion"
    REVISION = "revision"
    VOTING = "voting"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"


class GovernancePhase(Enum):
    """Pipeline stage a proposal is in."""

    PROPOSAL = "proposal"
    DISCUSSION = "discussion"
    REVISION = "revision"
    VOTING = "voting"
    RESOLUTION = "resolution"
    EXECUTION = "execution"


# The only (status, phase) combinations that may exist.
VALID_STATE_PAIRS: frozenset[tuple[ProposalStatus, GovernancePhase]] = frozenset(
    {
        (ProposalStatus.DRAFT, GovernancePhase.PROPOSAL),
        (ProposalStatus.DISCUSSION, GovernancePhase.DISCUSSION),
        (ProposalStatus.REVISION, GovernancePhase.REVISION),
        (ProposalStatus.VOTING, GovernancePhase.VOTING),
        (ProposalStatus.APPROVED, GovernancePhase.RESOLUTION),
        (ProposalStatus.REJECTED, GovernancePhase.RESOLUTION),
        (ProposalStatus.EXECUTED, GovernancePhase.EXECUTION),
    }
)


@dataclass(frozen=True, eq=True)
class PhaseTransition:
    """One edge of the phase transition table.

    Attributes:
        name: Operation name, used in error messages and logs.
        from_statuses: Statuses the proposal may be in for the edge to apply.
        to_status: Resulting status.
        to_phase: Resulting phase.
    """

    name: str
    from_statuses: frozenset[ProposalStatus]
    to_status: ProposalStatus
    to_phase: GovernancePhase


SUBMIT_FOR_DISCUSSION = PhaseTransition(
    name="submit_for_discussion",
    from_statuses=frozenset({ProposalStatus.DRAFT}),
    to_status=ProposalStatus.DISCUSSION,
    to_phase=GovernancePhase.DISCUSSION,
)
MOVE_TO_REVISION = PhaseTransition(
    name="move_to_revision",
    from_statuses=frozenset({ProposalStatus.DISCUSSION}),
    to_status=ProposalStatus.REVISION,
    to_phase=GovernancePhase.REVISION,
)
RETURN_TO_DISCUSSION = PhaseTransition(
    name="return_to_discussion",
    from_statuses=frozenset({ProposalStatus.REVISION}),
    to_status=ProposalStatus.DISCUSSION,
    to_phase=GovernancePhase.DISCUSSION,
)
MOVE_TO_VOTING = PhaseTransition(
    name="move_to_voting",
    from_statuses=frozenset({ProposalStatus.DISCUSSION, ProposalStatus.REVISION}),
    to_status=ProposalStatus.VOTING,
    to_phase=GovernancePhase.VOTING,
)
APPROVE = PhaseTransition(
    name="approve",
    from_statuses=frozenset({ProposalStatus.VOTING}),
    to_status=ProposalStatus.APPROVED,
    to_phase=GovernancePhase.RESOLUTION,
)
REJECT = PhaseTransition(
    name="reject",
    from_statuses=frozenset({ProposalStatus.VOTING}),
    to_status=ProposalStatus.REJECTED,
    to_phase=GovernancePhase.RESOLUTION,
)
MARK_EXECUTED = PhaseTransition(
    name="mark_executed",
    from_statuses=frozenset({ProposalStatus.APPROVED}),
    to_status=ProposalStatus.EXECUTED,
    to_phase=GovernancePhase.EXECUTION,
)

# Transitions that lead into each target phase, in preference order.
TRANSITIONS_BY_TARGET_PHASE: dict[GovernancePhase, tuple[PhaseTransition, ...]] = {
    GovernancePhase.PROPOSAL: (),
    GovernancePhase.DISCUSSION: (SUBMIT_FOR_DISCUSSION, RETURN_TO_DISCUSSION),
    GovernancePhase.REVISION: (MOVE_TO_REVISION,),
    GovernancePhase.VOTING: (MOVE_TO_VOTING,),
    GovernancePhase.RESOLUTION: (APPROVE, REJECT),
    GovernancePhase.EXECUTION: (MARK_EXECUTED,),
}

# Statuses from which a proposal may still be deleted.
DELETABLE_STATUSES: frozenset[ProposalStatus] = frozenset({ProposalStatus.DRAFT})

# Sequential ids: "P" followed by a zero-padded number (P001, P002, ...).
SEQUENTIAL_ID_PATTERN = re.compile(r"^P(\d+)$")


def format_sequential_id(number: int) -> str:
    """Render a sequential proposal id, padded to at least three digits."""
    return f"P{number:03d}"


def next_sequential_id(existing_ids: Iterable[str]) -> str:
    """Return the id after the highest sequential id among existing_ids."""
    highest = 0
    for proposal_id in existing_ids:
        match = SEQUENTIAL_ID_PATTERN.match(proposal_id)
        if match:
            highest = max(highest, int(match.group(1)))
    return format_sequential_id(highest + 1)


@dataclass(frozen=True, eq=True)
class Proposal:
    """A governance proposal.

    Attributes:
        id: Human-assigned or sequential id (e.g. "P001").
        title: Short title.
        author_id: Agent that authored the proposal.
        status: Current disposition.
        phase: Current pipeline stage.
        content: Free-form proposal body.
        metadata: Free-form metadata.
        voting_deadline: Deadline of the voting phase, once voting started.
        execution_data: Data recorded when the proposal was executed.
        created_at: Creation timestamp (UTC).
        updated_at: Timestamp of the last transition (UTC).
    """

    id: str
    title: str
    author_id: str
    created_at: datetime
    updated_at: datetime
    status: ProposalStatus = field(default=ProposalStatus.DRAFT)
    phase: GovernancePhase = field(default=GovernancePhase.PROPOSAL)
    content: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    voting_deadline: datetime | None = field(default=None)
    execution_data: dict[str, Any] | None = field(default=None)

    def __post_init__(self) -> None:
        """Validate proposal invariants."""
        if not self.id:
            raise ValueError("Proposal id must be non-empty")
        if (self.status, self.phase) not in VALID_STATE_PAIRS:
            raise ValueError(
                f"Invalid proposal state pair: ({self.status.value}, "
                f"{self.phase.value})"
            )

    @classmethod
    def create(
        cls,
        proposal_id: str,
        title: str,
        author_id: str,
        created_at: datetime,
        content: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Proposal:
        """Create a new proposal in (draft, proposal).

        Args:
            proposal_id: Id to assign.
            title: Short title.
            author_id: Authoring agent.
            created_at: Creation time, from the time authority.
            content: Optional proposal body.
            metadata: Optional metadata.

        Returns:
            New draft Proposal.
        """
        return cls(
            id=proposal_id,
            title=title,
            author_id=author_id,
            created_at=created_at,
            updated_at=created_at,
            content=dict(content or {}),
            metadata=dict(metadata or {}),
        )

    def with_transition(
        self,
        transition: PhaseTransition,
        updated_at: datetime,
        voting_deadline: datetime | None = None,
        execution_data: dict[str, Any] | None = None,
    ) -> Proposal:
        """Create new proposal with a transition applied.

        Guards are evaluated by the caller; this only applies the target
        (status, phase). Passing None for voting_deadline or execution_data
        keeps the existing value.

        Args:
            transition: The transition to apply.
            updated_at: Timestamp of the transition.
            voting_deadline: New voting deadline, if any.
            execution_data: Execution data, if any.

        Returns:
            New Proposal in the transition's target state.
        """
        return Proposal(
            id=self.id,
            title=self.title,
            author_id=self.author_id,
            status=transition.to_status,
            phase=transition.to_phase,
            content=dict(self.content),
            metadata=dict(self.metadata),
            voting_deadline=voting_deadline
            if voting_deadline is not None
            else self.voting_deadline,
            execution_data=execution_data
            if execution_data is not None
            else self.execution_data,
            created_at=self.created_at,
            updated_at=updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "author_id": self.author_id,
            "status": self.status.value,
            "phase": self.phase.value,
            "content": dict(self.content),
            "metadata": dict(self.metadata),
            "voting_deadline": self.voting_deadline.isoformat()
            if self.voting_deadline
            else None,
            "execution_data": self.execution_data,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True, eq=True)
class PhaseAdvanceCheck:
    """Answer to "can this proposal advance into that phase now?".

    Attributes:
        proposal_id: Proposal checked.
        target_phase: Phase asked about.
        can_advance: True when no guard failed.
        reasons: Failed guard descriptions, empty when can_advance.
    """

    proposal_id: str
    target_phase: GovernancePhase
    can_advance: bool
    reasons: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "target_phase": self.target_phase.value,
            "can_advance": self.can_advance,
            "reasons": list(self.reasons),
        }
