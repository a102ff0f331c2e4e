"""Voting session repository port.

This module defines the abstract interface for voting session storage.

Developer Golden Rules:
1. FAIL LOUD - Repository raises on errors
2. ATOMIC VOTES - add_vote() rejects a second vote from the same agent
3. AUDITED WRITES - save() and add_vote() store the record and its audit
   chain entry in one write; neither is ever stored without the other
4. CAS FOR CLOSE - finalize_cas()/cancel_cas() flip ACTIVE exactly once

The atomic operations let two processes sharing one database keep the
single-vote, single-finalize and gap-free chain guarantees that the
engine's in-process locks give within one process.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from src.domain.models.audit_chain import AuditChainEntry, AuditEntryFactory
from src.domain.models.voting_session import Vote, VotingSession


@dataclass(frozen=True)
class VoteRecord:
    """Result of an audited vote write.

    Attributes:
        session: The session including the new vote.
        audit_entry: The chain entry stored with the vote.
    """

    session: VotingSession
    audit_entry: AuditChainEntry


class VotingSessionRepositoryProtocol(Protocol):
    """Protocol for voting session storage operations.

    Methods:
        save: Store a new session with its opening audit entry
        get: Retrieve a session (with its votes) by id
        get_active_for_proposal: The proposal's active session, if any
        get_latest_for_proposal: The proposal's most recently started session
        add_vote: Atomically append a vote with its audit entry
        finalize_cas: ACTIVE -> FINALIZED compare-and-swap
        cancel_cas: ACTIVE -> CANCELLED compare-and-swap
        extend_deadline: Move an active session's deadline
        list_expired_active: Active sessions whose deadline has passed
    """

    async def save(
        self,
        session: VotingSession,
        audit_entry: AuditEntryFactory,
    ) -> AuditChainEntry:
        """Store a new voting session and its opening audit entry.

        Args:
            session: The session to store.
            audit_entry: Builds the chain entry from the chain's current tip.

        Returns:
            The stored audit entry.

        Raises:
            ActiveSessionExistsError: If the proposal already has an active session.
            AuditSequenceConflictError: If another writer appended to the chain first.
        """
        ...

    async def get(self, session_id: str) -> VotingSession | None:
        """Retrieve a session and its votes.

        Args:
            session_id: The session id.

        Returns:
            The session if found, None otherwise.
        """
        ...

    async def get_active_for_proposal(self, proposal_id: str) -> VotingSession | None:
        """Retrieve the proposal's active session.

        Args:
            proposal_id: The proposal id.

        Returns:
            The active session if one exists, None otherwise.
        """
        ...

    async def get_latest_for_proposal(self, proposal_id: str) -> VotingSession | None:
        """Retrieve the proposal's most recently started session, in any status.

        Args:
            proposal_id: The proposal id.

        Returns:
            The latest session if the proposal has any, None otherwise.
        """
        ...

    async def add_vote(self, vote: Vote, audit_entry: AuditEntryFactory) -> VoteRecord:
        """Atomically append a vote and its audit entry to its session.

        The chain tip is read and the entry stored while the session is
        locked, so concurrent writers append in cast order.

        Args:
            vote: The vote to append.
            audit_entry: Builds the chain entry from the chain's current tip.

        Returns:
            The session including the new vote, and the stored entry.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionNotActiveError: If the session is no longer active.
            DuplicateVoteError: If the agent already voted in the session.
            AuditSequenceConflictError: If another writer appended to the chain first.
        """
        ...

    async def finalize_cas(
        self,
        session_id: str,
        finalized_at: datetime,
    ) -> VotingSession | None:
        """Flip an ACTIVE session to FINALIZED.

        Args:
            session_id: The session id.
            finalized_at: Finalization time.

        Returns:
            The finalized session if the swap happened, None if the session
            was not ACTIVE.
        """
        ...

    async def cancel_cas(
        self,
        session_id: str,
        cancelled_at: datetime,
        reason: str,
    ) -> VotingSession | None:
        """Flip an ACTIVE session to CANCELLED.

        Args:
            session_id: The session id.
            cancelled_at: Cancellation time.
            reason: Cancellation reason.

        Returns:
            The cancelled session if the swap happened, None if the session
            was not ACTIVE.
        """
        ...

    async def extend_deadline(
        self,
        session_id: str,
        new_deadline: datetime,
    ) -> VotingSession | None:
        """Move an ACTIVE session's deadline and bump its extension count.

        Args:
            session_id: The session id.
            new_deadline: The new deadline.

        Returns:
            The updated session, or None if the session was not ACTIVE.
        """
        ...

    async def list_expired_active(self, now: datetime) -> list[VotingSession]:
        """List ACTIVE sessions whose deadline is before now.

        Args:
            now: Reference time.

        Returns:
            Expired active sessions, oldest deadline first.
        """
        ...
