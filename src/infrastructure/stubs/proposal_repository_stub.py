"""Proposal repository stub implementation.

In-memory implementation of ProposalRepositoryProtocol for development and
testing. It is NOT suitable for production use.
"""

from __future__ import annotations

from src.application.ports.proposal_repository import ProposalRepositoryProtocol
from src.domain.models.proposal import Proposal, next_sequential_id


class ProposalRepositoryStub(ProposalRepositoryProtocol):
    """In-memory stub implementation of ProposalRepositoryProtocol.

    Attributes:
        _proposals: Dictionary mapping proposal id to Proposal.
    """

    def __init__(self) -> None:
        """Initialize the stub with empty storage."""
        self._proposals: dict[str, Proposal] = {}

    async def get(self, proposal_id: str) -> Proposal | None:
        return self._proposals.get(proposal_id)

    async def save(self, proposal: Proposal) -> None:
        self._proposals[proposal.id] = proposal

    async def delete(self, proposal_id: str) -> bool:
        return self._proposals.pop(proposal_id, None) is not None

    async def next_sequential_id(self) -> str:
        return next_sequential_id(self._proposals)

    # Test helpers

    def add_proposal(self, proposal: Proposal) -> None:
        """Store a proposal directly, bypassing the state machine."""
        self._proposals[proposal.id] = proposal

    def clear(self) -> None:
        """Clear all stored proposals."""
        self._proposals.clear()
