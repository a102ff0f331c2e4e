"""Phase state machine service - proposal status and phase transitions.

This service owns every change to a proposal's (status, phase). Each
mutating operation and the can_advance_phase() predicate evaluate the same
guard functions, so a predicate answer of "yes" means the operation will
not be refused by a guard.

The state machine and the voting engine depend on each other: moving into
voting opens a session through the engine, and the engine reports a
finalized verdict back here. The engine is attached after construction
(see src/bootstrap/governance.py).

Usage:
    machine = PhaseStateMachineService(proposal_repository, time_authority)
    machine.attach_voting_engine(engine)

    proposal = await machine.create_proposal("agent-1", "Adopt dark mode")
    await machine.submit_for_discussion(proposal.id)
    await machine.move_to_voting(proposal.id, deadline)
    results = await machine.finalize_voting(proposal.id)
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from structlog import get_logger

from src.application.ports.proposal_repository import ProposalRepositoryProtocol
from src.application.ports.time_authority import TimeAuthorityProtocol
from src.domain.errors.state_transition import (
    InvalidStateError,
    InvalidTransitionError,
    ProposalNotFoundError,
)
from src.domain.models.proposal import (
    APPROVE,
    DELETABLE_STATUSES,
    MARK_EXECUTED,
    MOVE_TO_REVISION,
    MOVE_TO_VOTING,
    REJECT,
    RETURN_TO_DISCUSSION,
    SUBMIT_FOR_DISCUSSION,
    TRANSITIONS_BY_TARGET_PHASE,
    GovernancePhase,
    PhaseAdvanceCheck,
    PhaseTransition,
    Proposal,
    ProposalStatus,
)
from src.domain.models.voting_results import VotingOutcome, VotingResults
from src.domain.models.voting_session import VotingConfigOverride

if TYPE_CHECKING:
    from src.application.services.voting_engine_service import VotingEngineService

logger = get_logger()

FINALIZE_VOTING = "finalize_voting"
DISCARD_REASON = "proposal could not be moved into voting"


def _status_reason(
    proposal: Proposal,
    required: Iterable[ProposalStatus],
) -> str | None:
    required = frozenset(required)
    if proposal.status in required:
        return None
    allowed = " or ".join(sorted(s.value for s in required))
    return f"status must be {allowed}, current status is {proposal.status.value}"


def transition_reasons(
    proposal: Proposal,
    transition: PhaseTransition,
    now: datetime,
    deadline: datetime | None = None,
) -> list[str]:
    """Evaluate the guards of a transition.

    Args:
        proposal: Proposal to check.
        transition: Transition to check.
        now: Current time.
        deadline: Proposed voting deadline (move_to_voting only).

    Returns:
        Descriptions of the failed guards; empty if the transition is allowed.
    """
    reasons: list[str] = []
    status_reason = _status_reason(proposal, transition.from_statuses)
    if status_reason is not None:
        reasons.append(status_reason)
    if transition is MOVE_TO_VOTING and deadline is not None and deadline <= now:
        reasons.append("voting deadline must be in the future")
    return reasons


class PhaseStateMachineService:
    """Owns proposal status/phase transitions.

    Attributes:
        _repository: Proposal storage.
        _time: Injected clock.
        _engine: Voting engine, attached after construction.
        _locks: Per-proposal transition locks.
    """

    def __init__(
        self,
        proposal_repository: ProposalRepositoryProtocol,
        time_authority: TimeAuthorityProtocol,
    ) -> None:
        """Initialize the state machine.

        Args:
            proposal_repository: Proposal storage.
            time_authority: Clock for transition timestamps.
        """
        self._repository = proposal_repository
        self._time = time_authority
        self._engine: VotingEngineService | None = None
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._create_lock = asyncio.Lock()

    def attach_voting_engine(self, engine: VotingEngineService) -> None:
        """Attach the voting engine used to open and finalize sessions."""
        self._engine = engine

    def _require_engine(self) -> VotingEngineService:
        if self._engine is None:
            raise RuntimeError("Voting engine has not been attached")
        return self._engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_proposal(self, proposal_id: str) -> Proposal:
        """Load a proposal.

        Raises:
            ProposalNotFoundError: If the id does not resolve.
        """
        proposal = await self._repository.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal

    async def can_advance_phase(
        self,
        proposal_id: str,
        target_phase: GovernancePhase,
        deadline: datetime | None = None,
    ) -> PhaseAdvanceCheck:
        """Check whether a proposal could move into a phase now.

        Uses the same guards as the mutating operations. For the voting
        phase the deadline guard is only evaluated when a deadline is given.

        Args:
            proposal_id: Proposal to check.
            target_phase: Phase to move into.
            deadline: Proposed voting deadline, for the voting phase.

        Returns:
            PhaseAdvanceCheck listing the failed guards.

        Raises:
            ProposalNotFoundError: If the id does not resolve.
        """
        proposal = await self.get_proposal(proposal_id)
        now = self._time.now()
        candidates = TRANSITIONS_BY_TARGET_PHASE[target_phase]

        if not candidates:
            reasons = [f"no transition leads into the {target_phase.value} phase"]
        elif target_phase == GovernancePhase.RESOLUTION:
            reasons = await self._finalize_reasons(proposal, now)
        else:
            matching = [t for t in candidates if proposal.status in t.from_statuses]
            if matching:
                reasons = transition_reasons(proposal, matching[0], now, deadline)
            else:
                merged = PhaseTransition(
                    name=candidates[0].name,
                    from_statuses=frozenset().union(
                        *(t.from_statuses for t in candidates)
                    ),
                    to_status=candidates[0].to_status,
                    to_phase=target_phase,
                )
                reasons = transition_reasons(proposal, merged, now, deadline)

        return PhaseAdvanceCheck(
            proposal_id=proposal_id,
            target_phase=target_phase,
            can_advance=not reasons,
            reasons=tuple(reasons),
        )

    # ------------------------------------------------------------------
    # Creation and deletion
    # ------------------------------------------------------------------

    async def create_proposal(
        self,
        author_id: str,
        title: str,
        content: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        proposal_id: str | None = None,
    ) -> Proposal:
        """Create a proposal in (draft, proposal).

        Args:
            author_id: Authoring agent.
            title: Short title.
            content: Optional proposal body.
            metadata: Optional metadata.
            proposal_id: Explicit id; the next sequential "P###" id if blank.

        Returns:
            The stored draft proposal.

        Raises:
            ValueError: If title or author_id is blank.
            InvalidStateError: If the id is already taken.
        """
        if not title or not title.strip():
            raise ValueError("Proposal title must be non-empty")
        if not author_id or not author_id.strip():
            raise ValueError("Proposal author_id must be non-empty")

        async with self._create_lock:
            candidate = (proposal_id or "").strip()
            if not candidate:
                candidate = await self._repository.next_sequential_id()

            existing = await self._repository.get(candidate)
            if existing is not None:
                raise InvalidStateError(
                    proposal_id=candidate,
                    operation="create",
                    current_status=existing.status,
                    message=f"Proposal {candidate} already exists",
                )

            proposal = Proposal.create(
                proposal_id=candidate,
                title=title.strip(),
                author_id=author_id.strip(),
                content=content,
                metadata=metadata,
                created_at=self._time.now(),
            )
            await self._repository.save(proposal)

        logger.info(
            "proposal_created",
            proposal_id=proposal.id,
            author_id=proposal.author_id,
        )
        return proposal

    async def delete_proposal(self, proposal_id: str) -> None:
        """Delete a draft proposal.

        Raises:
            ProposalNotFoundError: If the id does not resolve.
            InvalidStateError: If the proposal has left draft.
        """
        async with self._locks[proposal_id]:
            proposal = await self.get_proposal(proposal_id)
            if proposal.status not in DELETABLE_STATUSES:
                raise InvalidStateError(
                    proposal_id=proposal_id,
                    operation="delete",
                    current_status=proposal.status,
                    required_statuses=DELETABLE_STATUSES,
                )
            await self._repository.delete(proposal_id)

        logger.info("proposal_deleted", proposal_id=proposal_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def submit_for_discussion(self, proposal_id: str) -> Proposal:
        """(draft, proposal) -> (discussion, discussion)."""
        return await self._apply(proposal_id, SUBMIT_FOR_DISCUSSION)

    async def move_to_revision(self, proposal_id: str) -> Proposal:
        """(discussion, discussion) -> (revision, revision)."""
        return await self._apply(proposal_id, MOVE_TO_REVISION)

    async def return_to_discussion(self, proposal_id: str) -> Proposal:
        """(revision, revision) -> (discussion, discussion)."""
        return await self._apply(proposal_id, RETURN_TO_DISCUSSION)

    async def move_to_voting(
        self,
        proposal_id: str,
        deadline: datetime,
        config: VotingConfigOverride | None = None,
    ) -> Proposal:
        """Move a proposal into voting and open its voting session.

        The session is opened before the proposal is saved in
        (voting, voting), so a proposal in voting always has a session. If
        the save fails, the session is discarded and the error re-raised,
        leaving the proposal free to enter voting again.

        Args:
            proposal_id: Proposal to move.
            deadline: Voting deadline; must be in the future.
            config: Per-session configuration overrides.

        Returns:
            The proposal in (voting, voting) with the deadline stored.

        Raises:
            ProposalNotFoundError: If the id does not resolve.
            InvalidTransitionError: If status is not discussion or revision,
                or the deadline is not in the future.
            ActiveSessionExistsError: If a session is already active.
        """
        engine = self._require_engine()
        async with self._locks[proposal_id]:
            proposal = await self.get_proposal(proposal_id)
            now = self._time.now()
            self._raise_if_refused(
                proposal,
                MOVE_TO_VOTING.name,
                MOVE_TO_VOTING.from_statuses,
                transition_reasons(proposal, MOVE_TO_VOTING, now, deadline),
            )

            session = await engine.open_session(proposal, deadline, config)
            updated = proposal.with_transition(
                MOVE_TO_VOTING, updated_at=now, voting_deadline=deadline
            )
            try:
                await self._repository.save(updated)
            except Exception:
                await engine.discard_session(session.session_id, DISCARD_REASON)
                raise

        self._log_transition(proposal, updated, session_id=session.session_id)
        return updated

    async def finalize_voting(self, proposal_id: str) -> VotingResults:
        """Finalize the proposal's active voting session.

        The verdict is applied back to the proposal by the engine, giving
        (approved, resolution) or (rejected, resolution). A proposal still
        in voting whose latest session is already closed gets that
        session's verdict applied again instead.

        Returns:
            The final voting results.

        Raises:
            ProposalNotFoundError: If the id does not resolve.
            InvalidTransitionError: If status is not voting or the proposal
                has no voting session.
        """
        engine = self._require_engine()
        proposal = await self.get_proposal(proposal_id)
        self._raise_if_refused(
            proposal,
            FINALIZE_VOTING,
            APPROVE.from_statuses,
            await self._finalize_reasons(proposal, self._time.now()),
        )

        session = await engine.get_active_session(proposal_id)
        if session is None:
            latest = await engine.get_latest_session(proposal_id)
            if latest is not None and not latest.is_active:
                logger.warning(
                    "voting_verdict_missing",
                    proposal_id=proposal_id,
                    session_id=latest.session_id,
                )
                return await engine.reapply_verdict(latest.session_id)
            raise InvalidTransitionError(
                proposal_id=proposal_id,
                operation=FINALIZE_VOTING,
                current_status=proposal.status,
                required_statuses=APPROVE.from_statuses,
                detail="no active voting session",
            )
        return await engine.finalize(session.session_id)

    async def apply_voting_verdict(
        self,
        proposal_id: str,
        outcome: VotingOutcome,
    ) -> Proposal:
        """Apply a finalized verdict: voting -> approved or rejected.

        Raises:
            ValueError: If outcome is PENDING.
            InvalidTransitionError: If status is not voting.
        """
        if outcome == VotingOutcome.APPROVED:
            return await self._apply(proposal_id, APPROVE)
        if outcome == VotingOutcome.REJECTED:
            return await self._apply(proposal_id, REJECT)
        raise ValueError(f"Cannot apply a {outcome.value} verdict")

    async def mark_executed(
        self,
        proposal_id: str,
        execution_data: dict[str, Any] | None = None,
    ) -> Proposal:
        """(approved, resolution) -> (executed, execution)."""
        return await self._apply(
            proposal_id,
            MARK_EXECUTED,
            execution_data=dict(execution_data or {}),
        )

    async def update_voting_deadline(
        self,
        proposal_id: str,
        deadline: datetime,
    ) -> Proposal:
        """Record a new voting deadline after a session extension.

        Raises:
            InvalidStateError: If the proposal is not in voting.
        """
        async with self._locks[proposal_id]:
            proposal = await self.get_proposal(proposal_id)
            if proposal.status != ProposalStatus.VOTING:
                raise InvalidStateError(
                    proposal_id=proposal_id,
                    operation="update voting deadline of",
                    current_status=proposal.status,
                    required_statuses={ProposalStatus.VOTING},
                )
            updated = proposal.with_transition(
                MOVE_TO_VOTING,
                updated_at=self._time.now(),
                voting_deadline=deadline,
            )
            await self._repository.save(updated)
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _finalize_reasons(self, proposal: Proposal, now: datetime) -> list[str]:
        reasons = transition_reasons(proposal, APPROVE, now)
        if not reasons:
            engine = self._require_engine()
            session = await engine.get_active_session(proposal.id)
            if session is None:
                latest = await engine.get_latest_session(proposal.id)
                if latest is None:
                    reasons.append("no active voting session")
        return reasons

    async def _apply(
        self,
        proposal_id: str,
        transition: PhaseTransition,
        execution_data: dict[str, Any] | None = None,
    ) -> Proposal:
        async with self._locks[proposal_id]:
            proposal = await self.get_proposal(proposal_id)
            now = self._time.now()
            self._raise_if_refused(
                proposal,
                transition.name,
                transition.from_statuses,
                transition_reasons(proposal, transition, now),
            )
            updated = proposal.with_transition(
                transition, updated_at=now, execution_data=execution_data
            )
            await self._repository.save(updated)

        self._log_transition(proposal, updated)
        return updated

    @staticmethod
    def _raise_if_refused(
        proposal: Proposal,
        operation: str,
        required: frozenset[ProposalStatus],
        reasons: list[str],
    ) -> None:
        if not reasons:
            return
        status_ok = proposal.status in required
        raise InvalidTransitionError(
            proposal_id=proposal.id,
            operation=operation,
            current_status=proposal.status,
            required_statuses=required,
            detail="; ".join(reasons) if status_ok else None,
        )

    @staticmethod
    def _log_transition(
        before: Proposal,
        after: Proposal,
        **extra: Any,
    ) -> None:
        logger.info(
            "proposal_transitioned",
            proposal_id=after.id,
            from_status=before.status.value,
            from_phase=before.phase.value,
            to_status=after.status.value,
            to_phase=after.phase.value,
            **extra,
        )
