"""Consensus calculation domain service.

Pure functions that turn a voting session's weighted votes into a verdict,
plus the rule that assigns each vote its weight. Nothing here touches
storage or the clock: the caller passes "now" explicitly, so the same
inputs always give the same results.

Weighting rule:
    base   = clamp(1.0 + ((quality + consensus) / 2) * 0.3, 0.1, 2.0)
    weight = clamp(base * 1.2 [reviewer] * 1.1 [mediator], 0.1, 2.0)
Scores absent from the agent record count as 0.5.

Consensus is the approve weight's share of ALL weight cast, abstentions
included, so abstaining lowers consensus without counting against quorum.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from src.domain.models.agent import AgentRecord, AgentRole
from src.domain.models.voting_results import (
    DecisionTally,
    VotingOutcome,
    VotingResults,
)
from src.domain.models.voting_session import (
    MAX_VOTE_WEIGHT,
    MIN_VOTE_WEIGHT,
    Vote,
    VoteDecision,
    VotingSession,
    VotingSessionStatus,
)

DEFAULT_METRIC_SCORE = 0.5
PERFORMANCE_WEIGHT_FACTOR = 0.3
REVIEWER_MULTIPLIER = 1.2
MEDIATOR_MULTIPLIER = 1.1


def _clamp(value: float) -> float:
    return max(MIN_VOTE_WEIGHT, min(MAX_VOTE_WEIGHT, value))


def compute_vote_weight(agent: AgentRecord | None) -> float:
    """Compute the weight of a vote cast by the given agent.

    Args:
        agent: The caster's directory record, or None if the directory
            no longer knows the agent (defaults apply, no role multipliers).

    Returns:
        Weight in [0.1, 2.0].
    """
    if agent is None:
        quality = consensus = DEFAULT_METRIC_SCORE
        roles: frozenset[AgentRole] = frozenset()
    else:
        quality = agent.metrics.quality_score
        consensus = agent.metrics.consensus_score
        quality = DEFAULT_METRIC_SCORE if quality is None else quality
        consensus = DEFAULT_METRIC_SCORE if consensus is None else consensus
        roles = agent.roles

    weight = _clamp(1.0 + ((quality + consensus) / 2) * PERFORMANCE_WEIGHT_FACTOR)

    if AgentRole.REVIEWER in roles:
        weight *= REVIEWER_MULTIPLIER
    if AgentRole.MEDIATOR in roles:
        weight *= MEDIATOR_MULTIPLIER

    return _clamp(weight)


def tally_votes(
    votes: Iterable[Vote],
) -> dict[VoteDecision, DecisionTally]:
    """Sum vote counts and weights per decision.

    Returns:
        A tally for every decision, zero where nobody voted that way.
    """
    counts = {decision: 0 for decision in VoteDecision}
    weights = {decision: 0.0 for decision in VoteDecision}
    for vote in votes:
        counts[vote.decision] += 1
        weights[vote.decision] += vote.weight
    return {
        decision: DecisionTally(count=counts[decision], weight=weights[decision])
        for decision in VoteDecision
    }


def participation_rate(total_votes: int, total_eligible: int) -> float:
    """Fraction of eligible agents that voted; 0 when nobody is eligible."""
    if total_eligible <= 0:
        return 0.0
    return total_votes / total_eligible


def consensus_percentage(approve_weight: float, total_weight: float) -> float:
    """Approve weight as a percentage of all weight cast; 0 with no weight."""
    if total_weight <= 0:
        return 0.0
    return 100.0 * approve_weight / total_weight


def determine_outcome(
    status: VotingSessionStatus,
    quorum_met: bool,
    consensus_met: bool,
) -> VotingOutcome:
    """Map session status and threshold verdicts to an outcome."""
    if status == VotingSessionStatus.ACTIVE:
        return VotingOutcome.PENDING
    if status == VotingSessionStatus.CANCELLED:
        return VotingOutcome.REJECTED
    if quorum_met and consensus_met:
        return VotingOutcome.APPROVED
    return VotingOutcome.REJECTED


def compute_results(session: VotingSession, now: datetime) -> VotingResults:
    """Project a session into its current results.

    Args:
        session: The voting session.
        now: Current time, used for time_remaining_seconds.

    Returns:
        VotingResults for the session as of now.
    """
    tallies = tally_votes(session.votes)
    approve = tallies[VoteDecision.APPROVE]
    reject = tallies[VoteDecision.REJECT]
    abstain = tallies[VoteDecision.ABSTAIN]

    total_eligible = len(session.eligible_agents)
    total_votes = len(session.votes)
    rate = participation_rate(total_votes, total_eligible)
    total_weight = approve.weight + reject.weight + abstain.weight
    consensus = consensus_percentage(approve.weight, total_weight)

    quorum_threshold = session.config.quorum_threshold
    consensus_threshold = session.config.consensus_threshold * 100.0
    quorum_met = rate >= quorum_threshold
    consensus_met = consensus >= consensus_threshold

    remaining = max(0.0, (session.deadline - now).total_seconds())

    return VotingResults(
        session_id=session.session_id,
        proposal_id=session.proposal_id,
        status=session.status,
        total_eligible=total_eligible,
        total_votes=total_votes,
        participation_rate=rate,
        quorum_threshold=quorum_threshold,
        quorum_met=quorum_met,
        approve=approve,
        reject=reject,
        abstain=abstain,
        consensus_percentage=consensus,
        consensus_threshold=consensus_threshold,
        consensus_met=consensus_met,
        result=determine_outcome(session.status, quorum_met, consensus_met),
        deadline=session.deadline,
        time_remaining_seconds=remaining,
        finalized_at=session.finalized_at,
    )
