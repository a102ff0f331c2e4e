"""PostgreSQL proposal repository.

Stores proposals in governance_proposals. The (status, phase) CHECK
constraint in the migration mirrors the domain's valid state pairs, so an
off-table row cannot be written even by a buggy caller.

Usage:
    repository = PostgresProposalRepository(get_session_factory())
    proposal = await repository.get("P001")
"""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from src.domain.errors.persistence import PersistenceFailureError
from src.domain.models.proposal import (
    GovernancePhase,
    Proposal,
    ProposalStatus,
    format_sequential_id,
)

logger = get_logger()


def _json_value(value: Any) -> Any:
    """Decode a JSONB column that the driver handed back as text."""
    return json.loads(value) if isinstance(value, str) else value


def _row_to_proposal(row: Any) -> Proposal:
    return Proposal(
        id=row.id,
        title=row.title,
        author_id=row.author_id,
        status=ProposalStatus(row.status),
        phase=GovernancePhase(row.phase),
        content=_json_value(row.content) or {},
        metadata=_json_value(row.metadata) or {},
        voting_deadline=row.voting_deadline,
        execution_data=_json_value(row.execution_data),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class PostgresProposalRepository:
    """ProposalRepositoryProtocol backed by PostgreSQL.

    Attributes:
        _session_factory: SQLAlchemy async session factory.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, proposal_id: str) -> Proposal | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    text("""
                        SELECT id, title, author_id, status, phase, content,
                               metadata, voting_deadline, execution_data,
                               created_at, updated_at
                        FROM governance_proposals
                        WHERE id = :id
                    """),
                    {"id": proposal_id},
                )
                row = result.fetchone()
        except SQLAlchemyError as exc:
            raise self._failure("get_proposal", proposal_id, exc) from exc
        return _row_to_proposal(row) if row is not None else None

    async def save(self, proposal: Proposal) -> None:
        """Insert or update a proposal (upsert on id)."""
        params = {
            "id": proposal.id,
            "title": proposal.title,
            "author_id": proposal.author_id,
            "status": proposal.status.value,
            "phase": proposal.phase.value,
            "content": json.dumps(proposal.content),
            "metadata": json.dumps(proposal.metadata),
            "voting_deadline": proposal.voting_deadline,
            "execution_data": (
                json.dumps(proposal.execution_data)
                if proposal.execution_data is not None
                else None
            ),
            "created_at": proposal.created_at,
            "updated_at": proposal.updated_at,
        }
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    text("""
                        INSERT INTO governance_proposals (
                            id, title, author_id, status, phase, content,
                            metadata, voting_deadline, execution_data,
                            created_at, updated_at
                        ) VALUES (
                            :id, :title, :author_id, :status, :phase,
                            CAST(:content AS JSONB), CAST(:metadata AS JSONB),
                            :voting_deadline, CAST(:execution_data AS JSONB),
                            :created_at, :updated_at
                        )
                        ON CONFLICT (id) DO UPDATE SET
                            title = EXCLUDED.title,
                            status = EXCLUDED.status,
                            phase = EXCLUDED.phase,
                            content = EXCLUDED.content,
                            metadata = EXCLUDED.metadata,
                            voting_deadline = EXCLUDED.voting_deadline,
                            execution_data = EXCLUDED.execution_data,
                            updated_at = EXCLUDED.updated_at
                    """),
                    params,
                )
        except SQLAlchemyError as exc:
            raise self._failure("save_proposal", proposal.id, exc) from exc

    async def delete(self, proposal_id: str) -> bool:
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    text("DELETE FROM governance_proposals WHERE id = :id"),
                    {"id": proposal_id},
                )
        except SQLAlchemyError as exc:
            raise self._failure("delete_proposal", proposal_id, exc) from exc
        return bool(result.rowcount)

    async def next_sequential_id(self) -> str:
        """Next P-number after the highest stored one (P001 when none)."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    text("""
                        SELECT COALESCE(MAX(CAST(SUBSTRING(id FROM 2) AS INTEGER)), 0)
                        FROM governance_proposals
                        WHERE id ~ '^P[0-9]+$'
                    """)
                )
                highest = result.scalar() or 0
        except SQLAlchemyError as exc:
            raise self._failure("next_sequential_id", None, exc) from exc
        return format_sequential_id(int(highest) + 1)

    @staticmethod
    def _failure(
        operation: str,
        entity_id: str | None,
        exc: SQLAlchemyError,
    ) -> PersistenceFailureError:
        logger.error(
            "proposal_repository_failure",
            operation=operation,
            entity_id=entity_id,
            error=str(exc),
        )
        return PersistenceFailureError(operation, entity_id)
