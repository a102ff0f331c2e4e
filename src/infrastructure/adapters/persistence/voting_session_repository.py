"""PostgreSQL voting session repository.

Sessions live in voting_sessions and their votes in governance_votes.
The guarantees the engine relies on across processes come from the
database rather than from in-process locks:

- UNIQUE (session_id, agent_id) on governance_votes: one vote per agent
- Partial unique index on voting_sessions (proposal_id) WHERE status =
  'active': one active session per proposal
- UPDATE ... WHERE status = 'active' RETURNING: a session closes once
- save() and add_vote() insert the chain entry in the same transaction as
  the record; add_vote() reads the chain tip while holding the session row
  lock (SELECT ... FOR UPDATE), so votes from any process append in order

Usage:
    repository = PostgresVotingSessionRepository(get_session_factory())
    record = await repository.add_vote(vote, vote_entry_factory(vote))
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from src.application.ports.voting_session_repository import VoteRecord
from src.domain.errors.persistence import (
    AuditSequenceConflictError,
    PersistenceFailureError,
)
from src.domain.errors.voting import (
    ActiveSessionExistsError,
    DuplicateVoteError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from src.domain.models.audit_chain import AuditChainEntry, AuditEntryFactory
from src.domain.models.voting_session import (
    Vote,
    VoteDecision,
    VotingConfig,
    VotingSession,
    VotingSessionStatus,
)
from src.infrastructure.adapters.persistence.audit_ledger_repository import (
    fetch_chain_tip,
    insert_chain_entry,
)

logger = get_logger()

_SESSION_COLUMNS = """
    session_id, proposal_id, status, config, started_at, deadline,
    eligible_agents, finalized_at, extension_count, cancel_reason
"""


def _json_value(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


def _row_to_vote(row: Any) -> Vote:
    return Vote(
        vote_id=row.vote_id,
        session_id=row.session_id,
        agent_id=row.agent_id,
        decision=VoteDecision(row.decision),
        weight=float(row.weight),
        cast_at=row.cast_at,
        justification=row.justification,
    )


def _row_to_session(row: Any, votes: tuple[Vote, ...]) -> VotingSession:
    return VotingSession(
        session_id=row.session_id,
        proposal_id=row.proposal_id,
        config=VotingConfig.from_dict(_json_value(row.config)),
        started_at=row.started_at,
        deadline=row.deadline,
        eligible_agents=frozenset(_json_value(row.eligible_agents)),
        status=VotingSessionStatus(row.status),
        votes=votes,
        finalized_at=row.finalized_at,
        extension_count=row.extension_count,
        cancel_reason=row.cancel_reason,
    )


class PostgresVotingSessionRepository:
    """VotingSessionRepositoryProtocol backed by PostgreSQL.

    Attributes:
        _session_factory: SQLAlchemy async session factory.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(
        self,
        session: VotingSession,
        audit_entry: AuditEntryFactory,
    ) -> AuditChainEntry:
        """Insert a new session, any votes it carries, and its chain entry.

        Raises:
            ActiveSessionExistsError: If the proposal already has an active session.
            AuditSequenceConflictError: If the chain already has that position.
            PersistenceFailureError: On any other storage failure.
        """
        log = logger.bind(
            operation="save_voting_session",
            session_id=session.session_id,
            proposal_id=session.proposal_id,
        )
        entry: AuditChainEntry | None = None
        try:
            async with self._session_factory() as db, db.begin():
                await db.execute(
                    text("""
                        INSERT INTO voting_sessions (
                            session_id, proposal_id, status, config,
                            started_at, deadline, eligible_agents,
                            finalized_at, extension_count, cancel_reason
                        ) VALUES (
                            :session_id, :proposal_id, :status,
                            CAST(:config AS JSONB), :started_at, :deadline,
                            CAST(:eligible_agents AS JSONB), :finalized_at,
                            :extension_count, :cancel_reason
                        )
                    """),
                    {
                        "session_id": session.session_id,
                        "proposal_id": session.proposal_id,
                        "status": session.status.value,
                        "config": json.dumps(session.config.to_dict()),
                        "started_at": session.started_at,
                        "deadline": session.deadline,
                        "eligible_agents": json.dumps(sorted(session.eligible_agents)),
                        "finalized_at": session.finalized_at,
                        "extension_count": session.extension_count,
                        "cancel_reason": session.cancel_reason,
                    },
                )
                for vote in session.votes:
                    await self._insert_vote(db, vote)
                entry = audit_entry(await fetch_chain_tip(db, session.session_id))
                await insert_chain_entry(db, entry)
        except IntegrityError as exc:
            active = await self.get_active_for_proposal(session.proposal_id)
            if active is not None and active.session_id != session.session_id:
                raise ActiveSessionExistsError(
                    session.proposal_id, active.session_id
                ) from exc
            if entry is not None:
                raise AuditSequenceConflictError(
                    entry.chain_id, entry.sequence, entry.entry_id
                ) from exc
            log.error("voting_session_insert_rejected", error=str(exc))
            raise PersistenceFailureError(
                "save_voting_session", session.session_id
            ) from exc
        except SQLAlchemyError as exc:
            log.error("voting_session_repository_failure", error=str(exc))
            raise PersistenceFailureError(
                "save_voting_session", session.session_id
            ) from exc
        return entry

    async def get(self, session_id: str) -> VotingSession | None:
        try:
            async with self._session_factory() as db:
                return await self._load(db, session_id)
        except SQLAlchemyError as exc:
            raise self._failure("get_voting_session", session_id, exc) from exc

    async def get_active_for_proposal(self, proposal_id: str) -> VotingSession | None:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    text("""
                        SELECT session_id FROM voting_sessions
                        WHERE proposal_id = :proposal_id AND status = 'active'
                    """),
                    {"proposal_id": proposal_id},
                )
                session_id = result.scalar()
                if session_id is None:
                    return None
                return await self._load(db, session_id)
        except SQLAlchemyError as exc:
            raise self._failure("get_active_session", proposal_id, exc) from exc

    async def get_latest_for_proposal(self, proposal_id: str) -> VotingSession | None:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    text("""
                        SELECT session_id FROM voting_sessions
                        WHERE proposal_id = :proposal_id
                        ORDER BY started_at DESC, session_id DESC
                        LIMIT 1
                    """),
                    {"proposal_id": proposal_id},
                )
                session_id = result.scalar()
                if session_id is None:
                    return None
                return await self._load(db, session_id)
        except SQLAlchemyError as exc:
            raise self._failure("get_latest_session", proposal_id, exc) from exc

    async def add_vote(self, vote: Vote, audit_entry: AuditEntryFactory) -> VoteRecord:
        """Append a vote and its chain entry while holding the session row lock."""
        entry: AuditChainEntry | None = None
        try:
            async with self._session_factory() as db, db.begin():
                session = await self._load(db, vote.session_id, for_update=True)
                if session is None:
                    raise SessionNotFoundError(vote.session_id)
                if not session.is_active:
                    raise SessionNotActiveError(vote.session_id, session.status)
                if session.has_voted(vote.agent_id):
                    raise DuplicateVoteError(vote.session_id, vote.agent_id)
                await self._insert_vote(db, vote)
                entry = audit_entry(await fetch_chain_tip(db, vote.session_id))
                await insert_chain_entry(db, entry)
                return VoteRecord(session=session.with_vote(vote), audit_entry=entry)
        except IntegrityError as exc:
            stored = await self.get(vote.session_id)
            if stored is not None and stored.has_voted(vote.agent_id):
                # Unique (session_id, agent_id) caught a concurrent writer
                raise DuplicateVoteError(vote.session_id, vote.agent_id) from exc
            if entry is not None:
                raise AuditSequenceConflictError(
                    entry.chain_id, entry.sequence, entry.entry_id
                ) from exc
            raise self._failure("add_vote", vote.vote_id, exc) from exc
        except SQLAlchemyError as exc:
            raise self._failure("add_vote", vote.vote_id, exc) from exc

    async def finalize_cas(
        self,
        session_id: str,
        finalized_at: datetime,
    ) -> VotingSession | None:
        return await self._close(
            "finalize_cas",
            session_id,
            VotingSessionStatus.FINALIZED,
            finalized_at,
            None,
        )

    async def cancel_cas(
        self,
        session_id: str,
        cancelled_at: datetime,
        reason: str,
    ) -> VotingSession | None:
        return await self._close(
            "cancel_cas",
            session_id,
            VotingSessionStatus.CANCELLED,
            cancelled_at,
            reason,
        )

    async def extend_deadline(
        self,
        session_id: str,
        new_deadline: datetime,
    ) -> VotingSession | None:
        try:
            async with self._session_factory() as db, db.begin():
                result = await db.execute(
                    text("""
                        UPDATE voting_sessions
                        SET deadline = :deadline,
                            extension_count = extension_count + 1
                        WHERE session_id = :session_id AND status = 'active'
                        RETURNING session_id
                    """),
                    {"session_id": session_id, "deadline": new_deadline},
                )
                if result.scalar() is None:
                    return None
                return await self._load(db, session_id)
        except SQLAlchemyError as exc:
            raise self._failure("extend_deadline", session_id, exc) from exc

    async def list_expired_active(self, now: datetime) -> list[VotingSession]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    text("""
                        SELECT session_id FROM voting_sessions
                        WHERE status = 'active' AND deadline < :now
                        ORDER BY deadline, session_id
                    """),
                    {"now": now},
                )
                session_ids = [row.session_id for row in result.fetchall()]
                sessions = []
                for session_id in session_ids:
                    session = await self._load(db, session_id)
                    if session is not None:
                        sessions.append(session)
                return sessions
        except SQLAlchemyError as exc:
            raise self._failure("list_expired_active", None, exc) from exc

    async def _close(
        self,
        operation: str,
        session_id: str,
        status: VotingSessionStatus,
        closed_at: datetime,
        reason: str | None,
    ) -> VotingSession | None:
        try:
            async with self._session_factory() as db, db.begin():
                result = await db.execute(
                    text("""
                        UPDATE voting_sessions
                        SET status = :status,
                            finalized_at = :closed_at,
                            cancel_reason = :reason
                        WHERE session_id = :session_id AND status = 'active'
                        RETURNING session_id
                    """),
                    {
                        "session_id": session_id,
                        "status": status.value,
                        "closed_at": closed_at,
                        "reason": reason,
                    },
                )
                if result.scalar() is None:
                    return None
                return await self._load(db, session_id)
        except SQLAlchemyError as exc:
            raise self._failure(operation, session_id, exc) from exc

    async def _load(
        self,
        db: AsyncSession,
        session_id: str,
        for_update: bool = False,
    ) -> VotingSession | None:
        lock_clause = " FOR UPDATE" if for_update else ""
        result = await db.execute(
            text(
                f"SELECT {_SESSION_COLUMNS} FROM voting_sessions "
                f"WHERE session_id = :session_id{lock_clause}"
            ),
            {"session_id": session_id},
        )
        row = result.fetchone()
        if row is None:
            return None
        vote_result = await db.execute(
            text("""
                SELECT vote_id, session_id, agent_id, decision, weight,
                       justification, cast_at
                FROM governance_votes
                WHERE session_id = :session_id
                ORDER BY cast_at, vote_id
            """),
            {"session_id": session_id},
        )
        votes = tuple(_row_to_vote(v) for v in vote_result.fetchall())
        return _row_to_session(row, votes)

    @staticmethod
    async def _insert_vote(db: AsyncSession, vote: Vote) -> None:
        await db.execute(
            text("""
                INSERT INTO governance_votes (
                    vote_id, session_id, agent_id, decision, weight,
                    justification, cast_at
                ) VALUES (
                    :vote_id, :session_id, :agent_id, :decision, :weight,
                    :justification, :cast_at
                )
            """),
            {
                "vote_id": vote.vote_id,
                "session_id": vote.session_id,
                "agent_id": vote.agent_id,
                "decision": vote.decision.value,
                "weight": vote.weight,
                "justification": vote.justification,
                "cast_at": vote.cast_at,
            },
        )

    @staticmethod
    def _failure(
        operation: str,
        entity_id: str | None,
        exc: SQLAlchemyError,
    ) -> PersistenceFailureError:
        logger.error(
            "voting_session_repository_failure",
            operation=operation,
            entity_id=entity_id,
            error=str(exc),
        )
        return PersistenceFailureError(operation, entity_id)
