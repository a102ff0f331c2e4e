"""Integration tests for the PostgreSQL governance repositories.

Runs each adapter against a real PostgreSQL database migrated from
migrations/, then drives a complete voting session through the wired
services to check that audit hashes survive the database round trip.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.application.services.audit_ledger_service import AuditLedgerService
from src.bootstrap.governance import build_governance_services
from src.config.voting_config import DEFAULT_VOTING_DEFAULTS
from src.domain.errors.voting import (
    ActiveSessionExistsError,
    AlreadyFinalizedError,
    DuplicateVoteError,
    SessionNotActiveError,
)
from src.domain.models.audit_chain import (
    AuditChainEntry,
    AuditEntryType,
    session_entry_factory,
    vote_entry_factory,
)
from src.domain.models.proposal import MOVE_TO_VOTING, SUBMIT_FOR_DISCUSSION, Proposal
from src.domain.models.voting_results import VotingOutcome
from src.domain.models.voting_session import (
    Vote,
    VoteDecision,
    VotingConfig,
    VotingSession,
    VotingSessionStatus,
)
from src.infrastructure.adapters.persistence import (
    PostgresAuditLedgerRepository,
    PostgresProposalRepository,
    PostgresVotingSessionRepository,
)
from src.infrastructure.stubs import AgentDirectoryStub
from tests.helpers import FakeTimeAuthority

pytestmark = pytest.mark.integration

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)

SessionFactory = async_sessionmaker[AsyncSession]


async def _voting_proposal(
    session_factory: SessionFactory, proposal_id: str = "P001"
) -> Proposal:
    repository = PostgresProposalRepository(session_factory)
    proposal = Proposal.create(
        proposal_id=proposal_id,
        title="Adopt dark mode",
        author_id="agent-1",
        created_at=NOW,
    )
    proposal = proposal.with_transition(SUBMIT_FOR_DISCUSSION, updated_at=NOW)
    proposal = proposal.with_transition(
        MOVE_TO_VOTING, updated_at=NOW, voting_deadline=NOW + timedelta(hours=1)
    )
    await repository.save(proposal)
    return proposal


def _session(proposal_id: str = "P001", hours: int = 1) -> VotingSession:
    return VotingSession.open(
        proposal_id=proposal_id,
        config=VotingConfig(),
        started_at=NOW,
        deadline=NOW + timedelta(hours=hours),
        eligible_agents=frozenset({"agent-1", "agent-2", "agent-3"}),
    )


def _vote(session_id: str, agent_id: str = "agent-1") -> Vote:
    return Vote.create(
        session_id=session_id,
        agent_id=agent_id,
        decision=VoteDecision.APPROVE,
        weight=1.15,
        cast_at=NOW + timedelta(minutes=1),
        justification="Agreed",
    )


class TestPostgresProposalRepository:
    @pytest.mark.asyncio
    async def test_round_trip(self, session_factory: SessionFactory) -> None:
        repository = PostgresProposalRepository(session_factory)
        proposal = Proposal.create(
            proposal_id="P001",
            title="Budget",
            author_id="agent-1",
            content={"body": "Spend less", "items": [1, 2]},
            metadata={"tags": ["finance"]},
            created_at=NOW,
        )

        await repository.save(proposal)

        assert await repository.get("P001") == proposal
        assert await repository.get("P404") is None

    @pytest.mark.asyncio
    async def test_voting_deadline_persisted(self, session_factory: SessionFactory) -> None:
        proposal = await _voting_proposal(session_factory)
        repository = PostgresProposalRepository(session_factory)

        stored = await repository.get(proposal.id)

        assert stored is not None
        assert stored.voting_deadline == NOW + timedelta(hours=1)
        assert stored == proposal

    @pytest.mark.asyncio
    async def test_next_sequential_id(self, session_factory: SessionFactory) -> None:
        repository = PostgresProposalRepository(session_factory)
        assert await repository.next_sequential_id() == "P001"

        for proposal_id in ("P009", "budget-2026"):
            await repository.save(
                Proposal.create(
                    proposal_id=proposal_id, title="T", author_id="a", created_at=NOW
                )
            )

        assert await repository.next_sequential_id() == "P010"

    @pytest.mark.asyncio
    async def test_delete(self, session_factory: SessionFactory) -> None:
        repository = PostgresProposalRepository(session_factory)
        await repository.save(
            Proposal.create(proposal_id="P001", title="T", author_id="a", created_at=NOW)
        )

        assert await repository.delete("P001") is True
        assert await repository.delete("P001") is False


async def _save(
    repository: PostgresVotingSessionRepository, session: VotingSession
) -> AuditChainEntry:
    return await repository.save(session, session_entry_factory(session))


async def _add(repository: PostgresVotingSessionRepository, vote: Vote) -> VotingSession:
    record = await repository.add_vote(vote, vote_entry_factory(vote))
    return record.session


class TestPostgresVotingSessionRepository:
    @pytest.mark.asyncio
    async def test_save_and_load(self, session_factory: SessionFactory) -> None:
        await _voting_proposal(session_factory)
        repository = PostgresVotingSessionRepository(session_factory)
        session = _session()

        entry = await _save(repository, session)

        assert await repository.get(session.session_id) == session
        assert await repository.get_active_for_proposal("P001") == session
        assert entry.sequence == 0
        assert entry.entry_type == AuditEntryType.SESSION
        ledger = PostgresAuditLedgerRepository(session_factory)
        assert await ledger.list_chain(session.session_id) == [entry]

    @pytest.mark.asyncio
    async def test_one_active_session_per_proposal(
        self, session_factory: SessionFactory
    ) -> None:
        await _voting_proposal(session_factory)
        repository = PostgresVotingSessionRepository(session_factory)
        first = _session()
        await _save(repository, first)
        second = _session()

        with pytest.raises(ActiveSessionExistsError) as exc_info:
            await _save(repository, second)
        assert exc_info.value.session_id == first.session_id
        ledger = PostgresAuditLedgerRepository(session_factory)
        assert await ledger.list_chain(second.session_id) == []

    @pytest.mark.asyncio
    async def test_get_latest_for_proposal(self, session_factory: SessionFactory) -> None:
        await _voting_proposal(session_factory)
        repository = PostgresVotingSessionRepository(session_factory)
        first = _session()
        await _save(repository, first)
        await repository.cancel_cas(first.session_id, NOW, "restart")
        second = VotingSession.open(
            proposal_id="P001",
            config=VotingConfig(),
            started_at=NOW + timedelta(minutes=5),
            deadline=NOW + timedelta(hours=2),
            eligible_agents=frozenset({"agent-1"}),
        )
        await _save(repository, second)

        latest = await repository.get_latest_for_proposal("P001")

        assert latest is not None and latest.session_id == second.session_id
        assert await repository.get_latest_for_proposal("P404") is None

    @pytest.mark.asyncio
    async def test_add_vote(self, session_factory: SessionFactory) -> None:
        await _voting_proposal(session_factory)
        repository = PostgresVotingSessionRepository(session_factory)
        session = _session()
        opening = await _save(repository, session)
        vote = _vote(session.session_id)

        record = await repository.add_vote(vote, vote_entry_factory(vote))

        assert record.session.votes == (vote,)
        assert await repository.get(session.session_id) == record.session
        assert record.audit_entry.sequence == 1
        assert record.audit_entry.previous_hash == opening.hash
        assert record.audit_entry.entry_id == vote.vote_id

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_vote_stored_once(
        self, session_factory: SessionFactory
    ) -> None:
        await _voting_proposal(session_factory)
        repository = PostgresVotingSessionRepository(session_factory)
        session = _session()
        await _save(repository, session)

        results = await asyncio.gather(
            _add(repository, _vote(session.session_id)),
            _add(repository, _vote(session.session_id)),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateVoteError)
        stored = await repository.get(session.session_id)
        assert stored is not None and len(stored.votes) == 1
        ledger = PostgresAuditLedgerRepository(session_factory)
        assert len(await ledger.list_chain(session.session_id)) == 2

    @pytest.mark.asyncio
    async def test_votes_from_separate_repositories_keep_chain_linked(
        self, session_factory: SessionFactory
    ) -> None:
        await _voting_proposal(session_factory)
        first = PostgresVotingSessionRepository(session_factory)
        second = PostgresVotingSessionRepository(session_factory)
        session = _session()
        await _save(first, session)

        await asyncio.gather(
            _add(first, _vote(session.session_id, "agent-1")),
            _add(second, _vote(session.session_id, "agent-2")),
            _add(first, _vote(session.session_id, "agent-3")),
        )

        stored = await first.get(session.session_id)
        ledger = AuditLedgerService(PostgresAuditLedgerRepository(session_factory))
        verification = await ledger.verify(session.session_id, stored)
        assert verification.is_valid
        assert verification.entries_checked == 4

    @pytest.mark.asyncio
    async def test_finalize_cas_once(self, session_factory: SessionFactory) -> None:
        await _voting_proposal(session_factory)
        repository = PostgresVotingSessionRepository(session_factory)
        session = _session()
        await _save(repository, session)

        results = await asyncio.gather(
            repository.finalize_cas(session.session_id, NOW + timedelta(hours=2)),
            repository.finalize_cas(session.session_id, NOW + timedelta(hours=2)),
        )

        assert sum(r is not None for r in results) == 1
        assert await repository.cancel_cas(session.session_id, NOW, "late") is None
        with pytest.raises(SessionNotActiveError):
            await _add(repository, _vote(session.session_id))

    @pytest.mark.asyncio
    async def test_cancel_and_extend(self, session_factory: SessionFactory) -> None:
        await _voting_proposal(session_factory)
        repository = PostgresVotingSessionRepository(session_factory)
        session = _session()
        await _save(repository, session)

        extended = await repository.extend_deadline(
            session.session_id, NOW + timedelta(hours=5)
        )
        cancelled = await repository.cancel_cas(session.session_id, NOW, "withdrawn")

        assert extended is not None
        assert extended.extension_count == 1
        assert cancelled is not None
        assert cancelled.status == VotingSessionStatus.CANCELLED
        assert cancelled.cancel_reason == "withdrawn"
        assert cancelled.deadline == NOW + timedelta(hours=5)

    @pytest.mark.asyncio
    async def test_list_expired_active(self, session_factory: SessionFactory) -> None:
        await _voting_proposal(session_factory, "P001")
        await _voting_proposal(session_factory, "P002")
        repository = PostgresVotingSessionRepository(session_factory)
        expired = _session("P001", hours=1)
        running = _session("P002", hours=10)
        await _save(repository, expired)
        await _save(repository, running)

        result = await repository.list_expired_active(NOW + timedelta(hours=2))

        assert [s.session_id for s in result] == [expired.session_id]


class TestPostgresAuditLedgerRepository:
    @pytest.mark.asyncio
    async def test_append_list_tip(self, session_factory: SessionFactory) -> None:
        repository = PostgresAuditLedgerRepository(session_factory)
        first = AuditChainEntry.build(
            entry_id="session-s1",
            chain_id="s1",
            sequence=0,
            entry_type=AuditEntryType.SESSION,
            timestamp=NOW,
            data={"weight": 1.15, "nested": {"b": 2, "a": 1}},
        )
        second = AuditChainEntry.build(
            entry_id="vote-1",
            chain_id="s1",
            sequence=1,
            entry_type=AuditEntryType.VOTE,
            timestamp=NOW + timedelta(seconds=1),
            data={"agent_id": "agent-1"},
            previous_hash=first.hash,
        )

        await repository.append(first)
        await repository.append(second)

        chain = await repository.list_chain("s1")
        assert chain == [first, second]
        assert all(e.recompute_hash() == e.hash for e in chain)
        assert await repository.get_tip("s1") == second
        assert await repository.get_tip("other") is None


@pytest.mark.asyncio
async def test_full_session_over_postgres(session_factory: SessionFactory) -> None:
    clock = FakeTimeAuthority()
    directory = AgentDirectoryStub()
    for agent_id in ("agent-1", "agent-2", "agent-3"):
        directory.add_agent(agent_id)
    services = build_governance_services(
        proposal_repository=PostgresProposalRepository(session_factory),
        session_repository=PostgresVotingSessionRepository(session_factory),
        audit_repository=PostgresAuditLedgerRepository(session_factory),
        agent_directory=directory,
        time_authority=clock,
        defaults=DEFAULT_VOTING_DEFAULTS,
    )

    proposal = await services.state_machine.create_proposal("agent-1", "Ship it")
    await services.state_machine.submit_for_discussion(proposal.id)
    session = await services.voting_engine.initiate(proposal.id)
    for agent_id in ("agent-1", "agent-2"):
        clock.advance(seconds=10)
        await services.voting_engine.cast_vote(
            session.session_id, agent_id, VoteDecision.APPROVE
        )

    results = await services.voting_engine.finalize(session.session_id)

    assert results.result == VotingOutcome.APPROVED
    with pytest.raises(AlreadyFinalizedError):
        await services.voting_engine.finalize(session.session_id)
    verification = await services.voting_engine.verify_session(session.session_id)
    assert verification.is_valid
    assert verification.entries_checked == 3
