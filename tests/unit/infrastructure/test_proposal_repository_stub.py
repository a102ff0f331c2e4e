"""Unit tests for ProposalRepositoryStub."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.domain.models.proposal import Proposal
from src.infrastructure.stubs.proposal_repository_stub import ProposalRepositoryStub

CREATED_AT = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _proposal(proposal_id: str, title: str = "Title") -> Proposal:
    return Proposal.create(
        proposal_id=proposal_id,
        title=title,
        author_id="agent-1",
        created_at=CREATED_AT,
    )


@pytest.mark.asyncio
async def test_save_get_delete() -> None:
    repository = ProposalRepositoryStub()
    proposal = _proposal("P001")

    await repository.save(proposal)

    assert await repository.get("P001") == proposal
    assert await repository.delete("P001") is True
    assert await repository.delete("P001") is False
    assert await repository.get("P001") is None


@pytest.mark.asyncio
async def test_next_sequential_id_ignores_custom_ids() -> None:
    repository = ProposalRepositoryStub()
    assert await repository.next_sequential_id() == "P001"

    repository.add_proposal(_proposal("P007", "Seventh"))
    repository.add_proposal(_proposal("budget-2026", "Budget"))

    assert await repository.next_sequential_id() == "P008"


@pytest.mark.asyncio
async def test_clear() -> None:
    repository = ProposalRepositoryStub()
    repository.add_proposal(_proposal("P001"))

    repository.clear()

    assert await repository.next_sequential_id() == "P001"
