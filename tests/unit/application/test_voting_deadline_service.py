"""Unit tests for VotingDeadlineService."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.application.services.voting_deadline_service import (
    DEADLINE_CANCEL_REASON,
    DeadlineSweepReport,
)
from src.bootstrap.governance import GovernanceServices
from src.domain.models.proposal import GovernancePhase, ProposalStatus
from src.domain.models.voting_session import (
    TimeoutBehavior,
    VoteDecision,
    VotingConfigOverride,
    VotingSession,
    VotingSessionStatus,
)
from tests.helpers import FakeTimeAuthority


async def _open(
    governance: GovernanceServices,
    behavior: TimeoutBehavior,
    auto_finalize: bool = True,
    duration_hours: float = 1,
) -> VotingSession:
    machine = governance.state_machine
    proposal = await machine.create_proposal("agent-1", f"Expires via {behavior.value}")
    await machine.submit_for_discussion(proposal.id)
    return await governance.voting_engine.initiate(
        proposal.id,
        VotingConfigOverride(
            duration_hours=duration_hours,
            timeout_behavior=behavior,
            auto_finalize=auto_finalize,
        ),
    )


async def _proposal_status(
    governance: GovernanceServices, session: VotingSession
) -> ProposalStatus:
    proposal = await governance.state_machine.get_proposal(session.proposal_id)
    return proposal.status


class TestProcessExpiredSessions:
    @pytest.mark.asyncio
    async def test_nothing_expired(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        session = await _open(governance, TimeoutBehavior.FINALIZE_IMMEDIATELY)
        fake_time_authority.set_time(session.deadline)

        report = await governance.deadline_service.process_expired_sessions()

        assert report == DeadlineSweepReport()
        assert report.processed_count == 0

    @pytest.mark.asyncio
    async def test_finalize_immediately(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        session = await _open(governance, TimeoutBehavior.FINALIZE_IMMEDIATELY)
        for agent_id in ("agent-1", "agent-2", "agent-3"):
            await governance.voting_engine.cast_vote(
                session.session_id, agent_id, VoteDecision.APPROVE
            )
        fake_time_authority.advance(delta=timedelta(hours=2))

        report = await governance.deadline_service.process_expired_sessions()

        assert report.finalized == [session.session_id]
        assert await _proposal_status(governance, session) == ProposalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_reject_proposal_cancels(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        session = await _open(governance, TimeoutBehavior.REJECT_PROPOSAL)
        fake_time_authority.advance(delta=timedelta(hours=2))

        report = await governance.deadline_service.process_expired_sessions()

        assert report.cancelled == [session.session_id]
        stored = await governance.voting_engine.get_session(session.session_id)
        assert stored.status == VotingSessionStatus.CANCELLED
        assert stored.cancel_reason == DEADLINE_CANCEL_REASON
        assert await _proposal_status(governance, session) == ProposalStatus.REJECTED

    @pytest.mark.asyncio
    async def test_extend_once_then_finalize(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        session = await _open(governance, TimeoutBehavior.EXTEND_ONCE)
        fake_time_authority.advance(delta=timedelta(hours=2))

        first = await governance.deadline_service.process_expired_sessions()

        assert first.extended == [session.session_id]
        extended = await governance.voting_engine.get_session(session.session_id)
        assert extended.is_active
        assert extended.deadline == fake_time_authority.now() + timedelta(hours=24)
        assert extended.extension_count == 1

        fake_time_authority.advance(delta=timedelta(hours=25))
        second = await governance.deadline_service.process_expired_sessions()

        assert second.finalized == [session.session_id]
        assert await _proposal_status(governance, session) == ProposalStatus.REJECTED

    @pytest.mark.asyncio
    async def test_extensions_follow_voting_phase_configuration(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        governance.phase_configurations.update(
            GovernancePhase.VOTING,
            allowed_extensions=2,
            extension_duration=timedelta(hours=6),
        )
        session = await _open(governance, TimeoutBehavior.EXTEND_ONCE)

        for expected_count in (1, 2):
            fake_time_authority.advance(delta=timedelta(hours=7))
            report = await governance.deadline_service.process_expired_sessions()
            assert report.extended == [session.session_id]
            stored = await governance.voting_engine.get_session(session.session_id)
            assert stored.extension_count == expected_count
            assert stored.deadline == fake_time_authority.now() + timedelta(hours=6)

        fake_time_authority.advance(delta=timedelta(hours=7))
        report = await governance.deadline_service.process_expired_sessions()

        assert report.finalized == [session.session_id]

    @pytest.mark.asyncio
    async def test_no_extensions_allowed_finalizes(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        governance.phase_configurations.update(
            GovernancePhase.VOTING, allowed_extensions=0
        )
        session = await _open(governance, TimeoutBehavior.EXTEND_ONCE)
        fake_time_authority.advance(delta=timedelta(hours=2))

        report = await governance.deadline_service.process_expired_sessions()

        assert report.finalized == [session.session_id]
        assert report.extended == []

    @pytest.mark.asyncio
    async def test_manual_progression_skips_expired_sessions(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        governance.phase_configurations.update(
            GovernancePhase.VOTING, requires_manual_progression=True
        )
        session = await _open(governance, TimeoutBehavior.FINALIZE_IMMEDIATELY)
        fake_time_authority.advance(delta=timedelta(hours=2))

        report = await governance.deadline_service.process_expired_sessions()

        assert report.skipped == [session.session_id]
        assert (await governance.voting_engine.get_session(session.session_id)).is_active

    @pytest.mark.asyncio
    async def test_auto_finalize_disabled_skips(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        session = await _open(
            governance, TimeoutBehavior.FINALIZE_IMMEDIATELY, auto_finalize=False
        )
        fake_time_authority.advance(delta=timedelta(hours=2))

        report = await governance.deadline_service.process_expired_sessions()

        assert report.skipped == [session.session_id]
        assert report.processed_count == 0
        stored = await governance.voting_engine.get_session(session.session_id)
        assert stored.is_active

    @pytest.mark.asyncio
    async def test_mixed_sweep(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        finalize = await _open(governance, TimeoutBehavior.FINALIZE_IMMEDIATELY)
        reject = await _open(governance, TimeoutBehavior.REJECT_PROPOSAL)
        still_open = await _open(
            governance, TimeoutBehavior.REJECT_PROPOSAL, duration_hours=10
        )
        fake_time_authority.advance(delta=timedelta(hours=2))

        report = await governance.deadline_service.process_expired_sessions()

        assert report.finalized == [finalize.session_id]
        assert report.cancelled == [reject.session_id]
        assert report.processed_count == 2
        assert report.failed == {}
        assert (
            await governance.voting_engine.get_session(still_open.session_id)
        ).is_active

    @pytest.mark.asyncio
    async def test_failure_is_reported_and_sweep_continues(
        self,
        governance: GovernanceServices,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        broken = await _open(governance, TimeoutBehavior.FINALIZE_IMMEDIATELY)
        healthy = await _open(governance, TimeoutBehavior.FINALIZE_IMMEDIATELY)
        await governance.proposal_repository.delete(broken.proposal_id)
        fake_time_authority.advance(delta=timedelta(hours=2))

        report = await governance.deadline_service.process_expired_sessions()

        assert list(report.failed) == [broken.session_id]
        assert report.finalized == [healthy.session_id]

    def test_report_to_dict(self) -> None:
        report = DeadlineSweepReport(finalized=["s1"], failed={"s2": "boom"})

        assert report.to_dict() == {
            "finalized": ["s1"],
            "extended": [],
            "cancelled": [],
            "skipped": [],
            "failed": {"s2": "boom"},
        }
