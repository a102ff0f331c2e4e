"""Voting session repository stub implementation.

In-memory implementation of VotingSessionRepositoryProtocol for development
and testing. Atomic operations are simulated with an asyncio.Lock; in
production, PostgreSQL's unique constraint, SELECT ... FOR UPDATE and
UPDATE ... WHERE status = 'active' RETURNING provide true atomicity.

Audited writes append to an AuditLedgerRepositoryStub under the same lock,
before the record itself is stored, so a failed append stores nothing.

It is NOT suitable for production use.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from src.application.ports.voting_session_repository import (
    VoteRecord,
    VotingSessionRepositoryProtocol,
)
from src.domain.errors.voting import (
    ActiveSessionExistsError,
    DuplicateVoteError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from src.domain.models.audit_chain import AuditChainEntry, AuditEntryFactory
from src.domain.models.voting_session import Vote, VotingSession
from src.infrastructure.stubs.audit_ledger_repository_stub import (
    AuditLedgerRepositoryStub,
)


class VotingSessionRepositoryStub(VotingSessionRepositoryProtocol):
    """In-memory stub implementation of VotingSessionRepositoryProtocol.

    Attributes:
        _sessions: Dictionary mapping session_id to VotingSession.
        _audit: Audit chain storage written together with sessions and votes.
    """

    def __init__(self, audit_repository: AuditLedgerRepositoryStub | None = None) -> None:
        """Initialize the stub with empty storage.

        Args:
            audit_repository: Chain storage shared with the audit ledger
                service. A private one is created if not provided.
        """
        self._sessions: dict[str, VotingSession] = {}
        self._audit = audit_repository or AuditLedgerRepositoryStub()
        # Lock for simulating atomic writes
        self._cas_lock = asyncio.Lock()

    @property
    def audit_repository(self) -> AuditLedgerRepositoryStub:
        return self._audit

    async def save(
        self,
        session: VotingSession,
        audit_entry: AuditEntryFactory,
    ) -> AuditChainEntry:
        """Store a new session and its opening audit entry.

        Raises:
            ValueError: If the session id already exists.
            ActiveSessionExistsError: If the proposal already has an active session.
            AuditSequenceConflictError: If the chain already has entries.
        """
        async with self._cas_lock:
            if session.session_id in self._sessions:
                raise ValueError(f"Session already exists: {session.session_id}")
            active = self._find_active(session.proposal_id)
            if session.is_active and active is not None:
                raise ActiveSessionExistsError(session.proposal_id, active.session_id)
            entry = await self._append_entry(session.session_id, audit_entry)
            self._sessions[session.session_id] = session
            return entry

    async def get(self, session_id: str) -> VotingSession | None:
        return self._sessions.get(session_id)

    async def get_active_for_proposal(self, proposal_id: str) -> VotingSession | None:
        return self._find_active(proposal_id)

    async def get_latest_for_proposal(self, proposal_id: str) -> VotingSession | None:
        latest: VotingSession | None = None
        for session in self._sessions.values():
            if session.proposal_id != proposal_id:
                continue
            # Later saves win ties on started_at.
            if latest is None or session.started_at >= latest.started_at:
                latest = session
        return latest

    async def add_vote(self, vote: Vote, audit_entry: AuditEntryFactory) -> VoteRecord:
        """Atomically append a vote (unique per session and agent) and its entry."""
        async with self._cas_lock:
            session = self._sessions.get(vote.session_id)
            if session is None:
                raise SessionNotFoundError(vote.session_id)
            if not session.is_active:
                raise SessionNotActiveError(vote.session_id, session.status)
            if session.has_voted(vote.agent_id):
                raise DuplicateVoteError(vote.session_id, vote.agent_id)
            updated = session.with_vote(vote)
            entry = await self._append_entry(vote.session_id, audit_entry)
            self._sessions[vote.session_id] = updated
            return VoteRecord(session=updated, audit_entry=entry)

    async def finalize_cas(
        self,
        session_id: str,
        finalized_at: datetime,
    ) -> VotingSession | None:
        async with self._cas_lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return None
            updated = session.with_finalized(finalized_at)
            self._sessions[session_id] = updated
            return updated

    async def cancel_cas(
        self,
        session_id: str,
        cancelled_at: datetime,
        reason: str,
    ) -> VotingSession | None:
        async with self._cas_lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return None
            updated = session.with_cancelled(cancelled_at, reason)
            self._sessions[session_id] = updated
            return updated

    async def extend_deadline(
        self,
        session_id: str,
        new_deadline: datetime,
    ) -> VotingSession | None:
        async with self._cas_lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return None
            updated = session.with_extended_deadline(new_deadline)
            self._sessions[session_id] = updated
            return updated

    async def list_expired_active(self, now: datetime) -> list[VotingSession]:
        expired = [s for s in self._sessions.values() if s.is_active and s.deadline < now]
        return sorted(expired, key=lambda s: s.deadline)

    async def _append_entry(
        self,
        chain_id: str,
        audit_entry: AuditEntryFactory,
    ) -> AuditChainEntry:
        entry = audit_entry(await self._audit.get_tip(chain_id))
        await self._audit.append(entry)
        return entry

    def _find_active(self, proposal_id: str) -> VotingSession | None:
        for session in self._sessions.values():
            if session.proposal_id == proposal_id and session.is_active:
                return session
        return None

    # Test helpers

    def overwrite_session(self, session: VotingSession) -> None:
        """Replace a stored session without an audit entry (tampering)."""
        self._sessions[session.session_id] = session

    def clear(self) -> None:
        """Clear all stored sessions."""
        self._sessions.clear()
