"""Voting engine service - weighted voting sessions.

The engine owns the VotingSession lifecycle: opening a session with an
eligibility snapshot, accepting one weighted vote per eligible agent,
projecting results, and closing the session exactly once.

Concurrency:
    Within one process, cast_vote(), finalize(), cancel() and extend()
    serialize on a per-session asyncio.Lock around their check-then-write
    sequence. The lock does not reach other processes; there the
    repository's atomic writes give the same guarantees:

    - add_vote() rejects a second vote from the same agent
    - finalize_cas() and cancel_cas() close a session once
    - add_vote() reads the audit chain tip under the session row lock

A session and each vote are stored together with their audit entry in one
repository write, so no vote counts without an entry and no entry exists
for a vote that was not stored.

Verdicts are applied to the proposal while the session lock is held. If
that fails after the session closed, finalize_voting() on the proposal
re-applies the closed session's verdict (reapply_verdict()).

Usage:
    engine = VotingEngineService(
        session_repository=sessions,
        agent_directory=directory,
        audit_ledger=ledger,
        state_machine=machine,
        time_authority=clock,
    )
    session = await engine.initiate("P001")
    await engine.cast_vote(session.session_id, "agent-1", VoteDecision.APPROVE)
    results = await engine.finalize(session.session_id)
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from structlog import get_logger

from src.application.ports.agent_directory import AgentDirectoryProtocol
from src.application.ports.time_authority import TimeAuthorityProtocol
from src.application.ports.voting_session_repository import (
    VotingSessionRepositoryProtocol,
)
from src.application.services.audit_ledger_service import AuditLedgerService
from src.domain.errors.state_transition import InvalidStateError
from src.domain.errors.voting import (
    ActiveSessionExistsError,
    AlreadyFinalizedError,
    DeadlinePassedError,
    DuplicateVoteError,
    NotEligibleError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from src.domain.models.audit_chain import ChainVerificationResult
from src.domain.models.proposal import Proposal, ProposalStatus
from src.domain.models.voting_results import (
    SessionSummary,
    VotingOutcome,
    VotingResults,
)
from src.domain.models.voting_session import (
    Vote,
    VoteDecision,
    VotingConfig,
    VotingConfigOverride,
    VotingSession,
    VotingSessionStatus,
    apply_overrides,
)
from src.domain.services.consensus_calculator import (
    compute_results,
    compute_vote_weight,
)

if TYPE_CHECKING:
    from src.application.services.phase_state_machine_service import (
        PhaseStateMachineService,
    )

logger = get_logger()

INITIATE_REQUIRED_STATUSES = frozenset({ProposalStatus.DISCUSSION})


class VotingEngineService:
    """Weighted voting engine.

    Attributes:
        _sessions: Voting session storage.
        _directory: Agent directory.
        _ledger: Audit ledger.
        _state_machine: Proposal state machine.
        _time: Injected clock.
        _defaults: Base configuration overrides are applied to.
        _locks: Per-session locks.
    """

    def __init__(
        self,
        session_repository: VotingSessionRepositoryProtocol,
        agent_directory: AgentDirectoryProtocol,
        audit_ledger: AuditLedgerService,
        state_machine: PhaseStateMachineService,
        time_authority: TimeAuthorityProtocol,
        defaults: VotingConfig | None = None,
    ) -> None:
        """Initialize the voting engine.

        Args:
            session_repository: Voting session storage.
            agent_directory: Source of agent roles and scores.
            audit_ledger: Ledger for session and vote entries.
            state_machine: Proposal state machine.
            time_authority: Clock.
            defaults: Base configuration (VotingConfig() if not provided).
        """
        self._sessions = session_repository
        self._directory = agent_directory
        self._ledger = audit_ledger
        self._state_machine = state_machine
        self._time = time_authority
        self._defaults = defaults or VotingConfig()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def defaults(self) -> VotingConfig:
        return self._defaults

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def initiate(
        self,
        proposal_id: str,
        config: VotingConfigOverride | None = None,
    ) -> VotingSession:
        """Start voting on a proposal in discussion.

        The deadline is now + the effective duration. The proposal is moved
        into voting through the state machine, which calls back into
        open_session().

        Args:
            proposal_id: Proposal to vote on.
            config: Per-session overrides of the defaults.

        Returns:
            The new active session.

        Raises:
            ProposalNotFoundError: If the proposal does not exist.
            InvalidStateError: If the proposal is not in discussion.
            ValueError: If the overrides produce an invalid config.
        """
        proposal = await self._state_machine.get_proposal(proposal_id)
        if proposal.status not in INITIATE_REQUIRED_STATUSES:
            raise InvalidStateError(
                proposal_id=proposal_id,
                operation="initiate voting on",
                current_status=proposal.status,
                required_statuses=INITIATE_REQUIRED_STATUSES,
            )

        effective = apply_overrides(self._defaults, config)
        deadline = self._time.now() + effective.duration
        await self._state_machine.move_to_voting(proposal_id, deadline, config)

        session = await self._sessions.get_active_for_proposal(proposal_id)
        if session is None:
            # Closed concurrently before it could be read back.
            raise SessionNotFoundError(proposal_id)
        return session

    async def open_session(
        self,
        proposal: Proposal,
        deadline: datetime,
        config: VotingConfigOverride | None = None,
    ) -> VotingSession:
        """Open a voting session for a proposal.

        Called by the state machine while it moves the proposal into voting.
        Snapshots every active agent holding an allowed role and stores the
        session together with its opening audit entry.

        Args:
            proposal: The proposal entering voting.
            deadline: Session deadline.
            config: Per-session overrides of the defaults.

        Returns:
            The persisted active session.

        Raises:
            ActiveSessionExistsError: If the proposal already has one.
        """
        effective = apply_overrides(self._defaults, config)
        log = logger.bind(operation="open_session", proposal_id=proposal.id)

        existing = await self._sessions.get_active_for_proposal(proposal.id)
        if existing is not None:
            raise ActiveSessionExistsError(proposal.id, existing.session_id)

        agents = await self._directory.list_active_agents(effective.allowed_roles)
        eligible = frozenset(
            agent.agent_id
            for agent in agents
            if agent.active and agent.has_any_role(effective.allowed_roles)
        )

        session = VotingSession.open(
            proposal_id=proposal.id,
            config=effective,
            started_at=self._time.now(),
            deadline=deadline,
            eligible_agents=eligible,
        )
        entry = await self._sessions.save(session, self._ledger.session_entry(session))

        log.info(
            "voting_session_opened",
            session_id=session.session_id,
            deadline=deadline.isoformat(),
            eligible_count=len(eligible),
            audit_hash=entry.hash,
        )
        return session

    async def discard_session(self, session_id: str, reason: str) -> VotingSession | None:
        """Cancel a session whose proposal never entered voting.

        Unlike cancel(), no verdict is applied: the proposal is left where
        it was. Used by the state machine when saving the proposal in
        voting fails after the session was opened. The caller holds the
        proposal lock, so no session lock is taken; the close is a
        compare-and-swap.

        Returns:
            The cancelled session, or None if it was no longer active.
        """
        discarded = await self._sessions.cancel_cas(session_id, self._time.now(), reason)

        logger.warning(
            "voting_session_discarded",
            session_id=session_id,
            reason=reason,
            discarded=discarded is not None,
        )
        return discarded

    async def cast_vote(
        self,
        session_id: str,
        agent_id: str,
        decision: VoteDecision,
        justification: str | None = None,
    ) -> Vote:
        """Cast a weighted vote.

        Guards, in order: session active, deadline not passed, agent
        eligible, agent has not voted yet. The vote and its audit entry are
        stored in one repository write.

        Args:
            session_id: Session to vote in.
            agent_id: Voting agent.
            decision: approve, reject or abstain.
            justification: Optional free text.

        Returns:
            The persisted vote.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionNotActiveError: If the session is closed.
            DeadlinePassedError: If the deadline has passed.
            NotEligibleError: If the agent is not in the eligibility snapshot.
            DuplicateVoteError: If the agent already voted.
        """
        log = logger.bind(
            operation="cast_vote",
            session_id=session_id,
            agent_id=agent_id,
        )

        async with self._locks[session_id]:
            session = await self.get_session(session_id)
            now = self._time.now()

            if not session.is_active:
                raise SessionNotActiveError(session_id, session.status)
            if session.is_expired(now):
                raise DeadlinePassedError(session_id, session.deadline, now)
            if agent_id not in session.eligible_agents:
                raise NotEligibleError(session_id, agent_id)
            if session.has_voted(agent_id):
                raise DuplicateVoteError(session_id, agent_id)

            agent = await self._directory.get_agent(agent_id)
            if agent is None:
                log.warning("voting_agent_record_missing")

            vote = Vote.create(
                session_id=session_id,
                agent_id=agent_id,
                decision=decision,
                weight=compute_vote_weight(agent),
                cast_at=now,
                justification=justification,
            )
            record = await self._sessions.add_vote(vote, self._ledger.vote_entry(vote))

        log.info(
            "vote_cast",
            vote_id=vote.vote_id,
            decision=decision.value,
            weight=vote.weight,
            audit_sequence=record.audit_entry.sequence,
        )
        return vote

    async def finalize(self, session_id: str) -> VotingResults:
        """Close a session and apply its verdict to the proposal.

        Exactly one of several concurrent finalize calls succeeds.

        Returns:
            The final results (result is approved or rejected).

        Raises:
            SessionNotFoundError: If the session does not exist.
            AlreadyFinalizedError: If the session is already finalized.
            SessionNotActiveError: If the session was cancelled.
        """
        async with self._locks[session_id]:
            session = await self.get_session(session_id)
            self._raise_if_closed(session)

            now = self._time.now()
            finalized = await self._sessions.finalize_cas(session_id, now)
            if finalized is None:
                self._raise_if_closed(await self.get_session(session_id))
                raise AlreadyFinalizedError(session_id)
            results = compute_results(finalized, now)

            await self._state_machine.apply_voting_verdict(
                finalized.proposal_id, results.result
            )

        logger.info(
            "voting_session_finalized",
            session_id=session_id,
            proposal_id=finalized.proposal_id,
            result=results.result.value,
            participation_rate=results.participation_rate,
            consensus_percentage=results.consensus_percentage,
        )
        return results

    async def cancel(self, session_id: str, reason: str) -> VotingResults:
        """Cancel an active session and reject its proposal.

        Returns:
            Results of the cancelled session (result is rejected).

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionNotActiveError: If the session is already closed.
        """
        async with self._locks[session_id]:
            session = await self.get_session(session_id)
            if not session.is_active:
                raise SessionNotActiveError(session_id, session.status)

            now = self._time.now()
            cancelled = await self._sessions.cancel_cas(session_id, now, reason)
            if cancelled is None:
                current = await self.get_session(session_id)
                raise SessionNotActiveError(session_id, current.status)
            results = compute_results(cancelled, now)

            await self._state_machine.apply_voting_verdict(
                cancelled.proposal_id, VotingOutcome.REJECTED
            )

        logger.warning(
            "voting_session_cancelled",
            session_id=session_id,
            proposal_id=cancelled.proposal_id,
            reason=reason,
        )
        return results

    async def reapply_verdict(self, session_id: str) -> VotingResults:
        """Apply a closed session's verdict to its proposal again.

        Repairs a proposal left in voting when applying the verdict failed
        after the session was finalized or cancelled. The results are
        computed as of the session's close time.

        Returns:
            The session's final results.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionNotActiveError: If the session is still active.
            InvalidTransitionError: If the proposal is no longer in voting.
        """
        async with self._locks[session_id]:
            session = await self.get_session(session_id)
            if session.is_active or session.finalized_at is None:
                raise SessionNotActiveError(session_id, session.status)

            results = compute_results(session, session.finalized_at)
            await self._state_machine.apply_voting_verdict(
                session.proposal_id, results.result
            )

        logger.warning(
            "voting_verdict_reapplied",
            session_id=session_id,
            proposal_id=session.proposal_id,
            status=session.status.value,
            result=results.result.value,
        )
        return results

    async def extend(
        self,
        session_id: str,
        by: timedelta | None = None,
    ) -> VotingSession:
        """Extend an active session's deadline, counting from now.

        Args:
            session_id: Session to extend.
            by: Extension length; the session's configured duration if None.

        Returns:
            The session with the new deadline.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionNotActiveError: If the session is closed.
            ValueError: If by is not positive.
        """
        if by is not None and by <= timedelta(0):
            raise ValueError(f"Extension must be positive, got {by}")

        async with self._locks[session_id]:
            session = await self.get_session(session_id)
            if not session.is_active:
                raise SessionNotActiveError(session_id, session.status)

            new_deadline = self._time.now() + (by or session.config.duration)
            extended = await self._sessions.extend_deadline(session_id, new_deadline)
            if extended is None:
                current = await self.get_session(session_id)
                raise SessionNotActiveError(session_id, current.status)

            await self._state_machine.update_voting_deadline(
                extended.proposal_id, new_deadline
            )

        logger.info(
            "voting_session_extended",
            session_id=session_id,
            previous_deadline=session.deadline.isoformat(),
            new_deadline=new_deadline.isoformat(),
            extension_count=extended.extension_count,
        )
        return extended

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_session(self, session_id: str) -> VotingSession:
        """Load a session.

        Raises:
            SessionNotFoundError: If the id does not resolve.
        """
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def get_active_session(self, proposal_id: str) -> VotingSession | None:
        """Return the proposal's active session, if any."""
        return await self._sessions.get_active_for_proposal(proposal_id)

    async def get_latest_session(self, proposal_id: str) -> VotingSession | None:
        """Return the proposal's most recently started session, in any status."""
        return await self._sessions.get_latest_for_proposal(proposal_id)

    async def get_results(self, session_id: str) -> VotingResults:
        """Project the session's current results.

        Raises:
            SessionNotFoundError: If the id does not resolve.
        """
        session = await self.get_session(session_id)
        return compute_results(session, self._time.now())

    async def get_session_summary(self, session_id: str) -> SessionSummary:
        """Summarize a session: results, audit chain verdict and non-voters.

        Raises:
            SessionNotFoundError: If the id does not resolve.
        """
        session = await self.get_session(session_id)
        results = compute_results(session, self._time.now())
        chain = await self._ledger.get_chain(session_id)
        verification = await self._ledger.verify(session_id, session)
        return SessionSummary(
            results=results,
            audit_entries=len(chain),
            audit_chain_valid=verification.is_valid,
            non_voters=tuple(sorted(session.eligible_agents - session.voted_agents)),
        )

    async def verify_session(self, session_id: str) -> ChainVerificationResult:
        """Verify a session's audit chain against its stored session and votes.

        Raises:
            SessionNotFoundError: If the id does not resolve.
        """
        session = await self.get_session(session_id)
        return await self._ledger.verify(session_id, session)

    @staticmethod
    def _raise_if_closed(session: VotingSession) -> None:
        if session.status == VotingSessionStatus.FINALIZED:
            raise AlreadyFinalizedError(session.session_id, session.finalized_at)
        if session.status == VotingSessionStatus.CANCELLED:
            raise SessionNotActiveError(session.session_id, session.status)
