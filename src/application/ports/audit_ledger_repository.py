"""Audit ledger repository port.

This module defines the abstract interface for audit chain storage. The
repository is append-only: there is no update or delete operation.
"""

from __future__ import annotations

from typing import Protocol

from src.domain.models.audit_chain import AuditChainEntry


class AuditLedgerRepositoryProtocol(Protocol):
    """Protocol for audit chain storage operations.

    Methods:
        append: Store a new entry at the end of its chain
        list_chain: All entries of a chain in sequence order
        get_tip: The last entry of a chain
    """

    async def append(self, entry: AuditChainEntry) -> None:
        """Append an entry to its chain.

        Args:
            entry: The entry to store. entry.sequence must be the chain's
                current length.

        Raises:
            AuditSequenceConflictError: If the sequence is already taken.
            PersistenceFailureError: If the write fails.
        """
        ...

    async def list_chain(self, chain_id: str) -> list[AuditChainEntry]:
        """List a chain's entries ordered by sequence.

        Args:
            chain_id: The chain (session) id.

        Returns:
            The entries, empty if the chain does not exist.
        """
        ...

    async def get_tip(self, chain_id: str) -> AuditChainEntry | None:
        """Return the last entry of a chain.

        Args:
            chain_id: The chain (session) id.

        Returns:
            The last entry, or None for an empty chain.
        """
        ...
