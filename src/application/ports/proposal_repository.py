"""Proposal repository port.

This module defines the abstract interface for proposal storage.

Developer Golden Rules:
1. FAIL LOUD - Repository raises PersistenceFailureError on storage errors
2. NO GUARDS - The state machine checks transitions; the repository stores
"""

from __future__ import annotations

from typing import Protocol

from src.domain.models.proposal import Proposal


class ProposalRepositoryProtocol(Protocol):
    """Protocol for proposal storage operations.

    Methods:
        get: Retrieve a proposal by id
        save: Insert or replace a proposal
        delete: Remove a proposal
        next_sequential_id: Next free "P###" id
    """

    async def get(self, proposal_id: str) -> Proposal | None:
        """Retrieve a proposal by id.

        Args:
            proposal_id: The proposal id.

        Returns:
            The proposal if found, None otherwise.
        """
        ...

    async def save(self, proposal: Proposal) -> None:
        """Insert or replace a proposal.

        Args:
            proposal: The proposal to store.

        Raises:
            PersistenceFailureError: If the write fails.
        """
        ...

    async def delete(self, proposal_id: str) -> bool:
        """Remove a proposal.

        Args:
            proposal_id: The proposal id.

        Returns:
            True if a proposal was removed, False if none existed.
        """
        ...

    async def next_sequential_id(self) -> str:
        """Return the next sequential id.

        The next id is "P" followed by the highest existing numeric suffix
        plus one, zero-padded to three digits (P001, P002, ...).

        Returns:
            The next free sequential id.
        """
        ...
