"""PostgreSQL audit ledger repository.

Append-only storage for audit_chain_entries. The primary key on
(chain_id, sequence) rejects a second writer racing for the same position,
and the entry data is kept as the exact canonical JSON text that was hashed
so that a read-back entry recomputes to the same hash.

fetch_chain_tip() and insert_chain_entry() run on a caller's session so the
voting session repository can store a session or vote and its chain entry
in one transaction.
"""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from src.domain.errors.persistence import (
    AuditSequenceConflictError,
    PersistenceFailureError,
)
from src.domain.events.hash_utils import canonical_json
from src.domain.models.audit_chain import AuditChainEntry, AuditEntryType

logger = get_logger()

_ENTRY_COLUMNS = """
    chain_id, sequence, entry_id, entry_type, entry_timestamp, data,
    previous_hash, hash
"""


def _row_to_entry(row: Any) -> AuditChainEntry:
    return AuditChainEntry(
        entry_id=row.entry_id,
        chain_id=row.chain_id,
        sequence=row.sequence,
        entry_type=AuditEntryType(row.entry_type),
        timestamp=row.entry_timestamp,
        data=json.loads(row.data),
        previous_hash=row.previous_hash,
        hash=row.hash,
    )


async def fetch_chain_tip(db: AsyncSession, chain_id: str) -> AuditChainEntry | None:
    """Read the last entry of a chain within the caller's transaction."""
    result = await db.execute(
        text(
            f"SELECT {_ENTRY_COLUMNS} FROM audit_chain_entries "
            "WHERE chain_id = :chain_id "
            "ORDER BY sequence DESC LIMIT 1"
        ),
        {"chain_id": chain_id},
    )
    row = result.fetchone()
    return _row_to_entry(row) if row is not None else None


async def insert_chain_entry(db: AsyncSession, entry: AuditChainEntry) -> None:
    """Insert an entry within the caller's transaction.

    Raises:
        IntegrityError: If (chain_id, sequence) is already taken.
    """
    await db.execute(
        text("""
            INSERT INTO audit_chain_entries (
                chain_id, sequence, entry_id, entry_type,
                entry_timestamp, data, previous_hash, hash
            ) VALUES (
                :chain_id, :sequence, :entry_id, :entry_type,
                :entry_timestamp, :data, :previous_hash, :hash
            )
        """),
        {
            "chain_id": entry.chain_id,
            "sequence": entry.sequence,
            "entry_id": entry.entry_id,
            "entry_type": entry.entry_type.value,
            "entry_timestamp": entry.timestamp,
            "data": canonical_json(entry.data),
            "previous_hash": entry.previous_hash,
            "hash": entry.hash,
        },
    )


class PostgresAuditLedgerRepository:
    """AuditLedgerRepositoryProtocol backed by PostgreSQL.

    Append-only: no update or delete path.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, entry: AuditChainEntry) -> None:
        """Insert an entry at its sequence position.

        Raises:
            AuditSequenceConflictError: If the position is taken.
            PersistenceFailureError: If the write fails.
        """
        try:
            async with self._session_factory() as session, session.begin():
                await insert_chain_entry(session, entry)
        except IntegrityError as exc:
            logger.warning(
                "audit_sequence_conflict",
                chain_id=entry.chain_id,
                sequence=entry.sequence,
            )
            raise AuditSequenceConflictError(
                entry.chain_id, entry.sequence, entry.entry_id
            ) from exc
        except SQLAlchemyError as exc:
            raise self._failure("append_audit_entry", entry.entry_id, exc) from exc

    async def list_chain(self, chain_id: str) -> list[AuditChainEntry]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    text(
                        f"SELECT {_ENTRY_COLUMNS} FROM audit_chain_entries "
                        "WHERE chain_id = :chain_id ORDER BY sequence"
                    ),
                    {"chain_id": chain_id},
                )
                rows = result.fetchall()
        except SQLAlchemyError as exc:
            raise self._failure("list_audit_chain", chain_id, exc) from exc
        return [_row_to_entry(row) for row in rows]

    async def get_tip(self, chain_id: str) -> AuditChainEntry | None:
        try:
            async with self._session_factory() as session:
                return await fetch_chain_tip(session, chain_id)
        except SQLAlchemyError as exc:
            raise self._failure("get_audit_tip", chain_id, exc) from exc

    @staticmethod
    def _failure(
        operation: str,
        entity_id: str,
        exc: SQLAlchemyError,
    ) -> PersistenceFailureError:
        logger.error(
            "audit_ledger_repository_failure",
            operation=operation,
            entity_id=entity_id,
            error=str(exc),
        )
        return PersistenceFailureError(operation, entity_id)
