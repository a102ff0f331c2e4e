"""Audit ledger repository stub implementation.

In-memory, append-only implementation of AuditLedgerRepositoryProtocol for
development and testing. The overwrite_entry() helper exists only so tests
can simulate tampering with stored entries.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from typing import Any

from src.application.ports.audit_ledger_repository import (
    AuditLedgerRepositoryProtocol,
)
from src.domain.errors.persistence import AuditSequenceConflictError
from src.domain.models.audit_chain import AuditChainEntry


class AuditLedgerRepositoryStub(AuditLedgerRepositoryProtocol):
    """In-memory stub implementation of AuditLedgerRepositoryProtocol.

    Attributes:
        _chains: Dictionary mapping chain_id to its entries in sequence order.
    """

    def __init__(self) -> None:
        """Initialize the stub with empty storage."""
        self._chains: defaultdict[str, list[AuditChainEntry]] = defaultdict(list)

    async def append(self, entry: AuditChainEntry) -> None:
        """Append an entry; its sequence must equal the chain length.

        Raises:
            AuditSequenceConflictError: If the sequence is already taken.
        """
        chain = self._chains[entry.chain_id]
        if entry.sequence != len(chain):
            raise AuditSequenceConflictError(
                entry.chain_id, entry.sequence, entry.entry_id
            )
        chain.append(entry)

    async def list_chain(self, chain_id: str) -> list[AuditChainEntry]:
        return list(self._chains.get(chain_id, []))

    async def get_tip(self, chain_id: str) -> AuditChainEntry | None:
        chain = self._chains.get(chain_id)
        return chain[-1] if chain else None

    # Test helpers

    def overwrite_entry(self, chain_id: str, index: int, **changes: Any) -> None:
        """Replace fields of a stored entry without rehashing (tampering)."""
        chain = self._chains[chain_id]
        chain[index] = replace(chain[index], **changes)

    def clear(self) -> None:
        """Clear all chains."""
        self._chains.clear()
