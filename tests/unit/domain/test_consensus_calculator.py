"""Unit tests for the consensus calculator domain service.

Covers the weighting rule, tallies, participation and consensus math, and
the verdict mapping, including the empty-session edge cases.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from src.domain.models.agent import AgentRecord, AgentRole, PerformanceMetrics
from src.domain.models.voting_results import VotingOutcome
from src.domain.models.voting_session import (
    MAX_VOTE_WEIGHT,
    MIN_VOTE_WEIGHT,
    Vote,
    VoteDecision,
    VotingConfig,
    VotingSession,
    VotingSessionStatus,
)
from src.domain.services.consensus_calculator import (
    compute_results,
    compute_vote_weight,
    consensus_percentage,
    determine_outcome,
    participation_rate,
    tally_votes,
)

STARTED_AT = datetime(2026, 1, 1, tzinfo=timezone.utc)
DEADLINE = STARTED_AT + timedelta(hours=48)


def _agent(
    roles: set[AgentRole],
    quality: float | None = None,
    consensus: float | None = None,
) -> AgentRecord:
    return AgentRecord(
        agent_id="agent-1",
        roles=frozenset(roles),
        metrics=PerformanceMetrics(quality_score=quality, consensus_score=consensus),
    )


def _vote(agent_id: str, decision: VoteDecision, weight: float) -> Vote:
    return Vote(
        vote_id=f"vote-{agent_id}",
        session_id="s-1",
        agent_id=agent_id,
        decision=decision,
        weight=weight,
        cast_at=STARTED_AT + timedelta(minutes=1),
    )


def _session(votes: tuple[Vote, ...] = (), eligible: int = 5) -> VotingSession:
    return VotingSession(
        session_id="s-1",
        proposal_id="P001",
        config=VotingConfig(),
        started_at=STARTED_AT,
        deadline=DEADLINE,
        eligible_agents=frozenset(f"agent-{i}" for i in range(1, eligible + 1)),
        votes=votes,
    )


class TestComputeVoteWeight:
    def test_base_role_uses_metrics(self) -> None:
        agent = _agent({AgentRole.VOTER}, quality=0.8, consensus=0.6)
        assert compute_vote_weight(agent) == pytest.approx(1.21)

    def test_reviewer_multiplier(self) -> None:
        agent = _agent({AgentRole.REVIEWER}, quality=0.8, consensus=0.6)
        assert compute_vote_weight(agent) == pytest.approx(1.452)

    def test_reviewer_and_mediator_multipliers_stack(self) -> None:
        agent = _agent(
            {AgentRole.REVIEWER, AgentRole.MEDIATOR}, quality=1.0, consensus=1.0
        )
        assert compute_vote_weight(agent) == pytest.approx(1.716)

    def test_missing_scores_default_to_half(self) -> None:
        agent = _agent({AgentRole.VOTER})
        assert compute_vote_weight(agent) == pytest.approx(1.15)

    def test_one_missing_score_defaults_independently(self) -> None:
        agent = _agent({AgentRole.VOTER}, quality=1.0)
        assert compute_vote_weight(agent) == pytest.approx(1.0 + 0.75 * 0.3)

    def test_unknown_agent_gets_default_weight(self) -> None:
        assert compute_vote_weight(None) == pytest.approx(1.15)

    @given(
        quality=st.one_of(st.none(), st.floats(min_value=0.0, max_value=1.0)),
        consensus=st.one_of(st.none(), st.floats(min_value=0.0, max_value=1.0)),
        roles=st.sets(st.sampled_from(list(AgentRole))),
    )
    def test_weight_always_within_bounds(
        self,
        quality: float | None,
        consensus: float | None,
        roles: set[AgentRole],
    ) -> None:
        weight = compute_vote_weight(_agent(roles, quality, consensus))
        assert MIN_VOTE_WEIGHT <= weight <= MAX_VOTE_WEIGHT


class TestTallyAndRates:
    def test_tally_has_every_decision(self) -> None:
        tallies = tally_votes([])
        assert set(tallies) == set(VoteDecision)
        assert all(t.count == 0 and t.weight == 0.0 for t in tallies.values())

    def test_tally_sums_counts_and_weights(self) -> None:
        tallies = tally_votes(
            [
                _vote("a", VoteDecision.APPROVE, 1.0),
                _vote("b", VoteDecision.APPROVE, 1.2),
                _vote("c", VoteDecision.REJECT, 0.8),
            ]
        )
        assert tallies[VoteDecision.APPROVE].count == 2
        assert tallies[VoteDecision.APPROVE].weight == pytest.approx(2.2)
        assert tallies[VoteDecision.REJECT].count == 1
        assert tallies[VoteDecision.ABSTAIN].count == 0

    def test_participation_with_nobody_eligible_is_zero(self) -> None:
        assert participation_rate(0, 0) == 0.0

    def test_consensus_with_no_weight_is_zero(self) -> None:
        assert consensus_percentage(0.0, 0.0) == 0.0

    def test_consensus_percentage(self) -> None:
        assert consensus_percentage(2.2, 4.0) == pytest.approx(55.0)


class TestDetermineOutcome:
    def test_active_is_pending(self) -> None:
        outcome = determine_outcome(VotingSessionStatus.ACTIVE, True, True)
        assert outcome == VotingOutcome.PENDING

    def test_finalized_needs_quorum_and_consensus(self) -> None:
        finalized = VotingSessionStatus.FINALIZED
        assert determine_outcome(finalized, True, True) == VotingOutcome.APPROVED
        assert determine_outcome(finalized, True, False) == VotingOutcome.REJECTED
        assert determine_outcome(finalized, False, True) == VotingOutcome.REJECTED

    def test_cancelled_is_rejected(self) -> None:
        outcome = determine_outcome(VotingSessionStatus.CANCELLED, True, True)
        assert outcome == VotingOutcome.REJECTED


class TestComputeResults:
    def _example_votes(self) -> tuple[Vote, ...]:
        return (
            _vote("agent-1", VoteDecision.APPROVE, 1.0),
            _vote("agent-2", VoteDecision.APPROVE, 1.2),
            _vote("agent-3", VoteDecision.REJECT, 0.8),
            _vote("agent-4", VoteDecision.ABSTAIN, 1.0),
        )

    def test_five_eligible_four_votes_while_active(self) -> None:
        results = compute_results(_session(self._example_votes()), STARTED_AT)

        assert results.total_eligible == 5
        assert results.total_votes == 4
        assert results.participation_rate == pytest.approx(0.8)
        assert results.approve.weight == pytest.approx(2.2)
        assert results.consensus_percentage == pytest.approx(55.0)
        assert results.quorum_met is True
        assert results.consensus_met is False
        assert results.consensus_threshold == pytest.approx(70.0)
        assert results.result == VotingOutcome.PENDING

    def test_five_eligible_four_votes_once_finalized(self) -> None:
        session = _session(self._example_votes()).with_finalized(DEADLINE)
        results = compute_results(session, DEADLINE)

        assert results.result == VotingOutcome.REJECTED
        assert results.finalized_at == DEADLINE

    def test_empty_session(self) -> None:
        results = compute_results(_session(), STARTED_AT)

        assert results.participation_rate == 0.0
        assert results.consensus_percentage == 0.0
        assert results.quorum_met is False
        assert results.consensus_met is False
        assert results.result == VotingOutcome.PENDING

    def test_empty_session_finalizes_rejected(self) -> None:
        results = compute_results(_session().with_finalized(DEADLINE), DEADLINE)
        assert results.result == VotingOutcome.REJECTED

    def test_no_eligible_agents(self) -> None:
        results = compute_results(_session(eligible=0), STARTED_AT)
        assert results.total_eligible == 0
        assert results.participation_rate == 0.0

    def test_unanimous_approval_is_approved(self) -> None:
        votes = tuple(
            _vote(f"agent-{i}", VoteDecision.APPROVE, 1.0) for i in range(1, 4)
        )
        session = _session(votes).with_finalized(DEADLINE)
        assert compute_results(session, DEADLINE).result == VotingOutcome.APPROVED

    def test_time_remaining(self) -> None:
        now = DEADLINE - timedelta(hours=1)
        assert compute_results(_session(), now).time_remaining_seconds == 3600.0
        late = DEADLINE + timedelta(hours=1)
        assert compute_results(_session(), late).time_remaining_seconds == 0.0

    def test_to_dict_shape(self) -> None:
        data = compute_results(_session(self._example_votes()), STARTED_AT).to_dict()

        assert data["result"] == "pending"
        assert data["votes"]["approve"]["count"] == 2
        assert data["votes"]["abstain"]["count"] == 1
