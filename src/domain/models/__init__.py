"""Domain models for the governance core.

Contains value objects and aggregates that represent proposals, voting
sessions and the audit chain. These models are immutable and contain no
infrastructure dependencies.
"""

from src.domain.models.agent import AgentRecord, AgentRole, PerformanceMetrics
from src.domain.models.audit_chain import (
    AuditChainEntry,
    AuditEntryType,
    ChainVerificationResult,
)
from src.domain.models.proposal import (
    VALID_STATE_PAIRS,
    GovernancePhase,
    PhaseAdvanceCheck,
    PhaseTransition,
    Proposal,
    ProposalStatus,
)
from src.domain.models.voting_results import (
    DecisionTally,
    SessionSummary,
    VotingOutcome,
    VotingResults,
)
from src.domain.models.voting_session import (
    TimeoutBehavior,
    Vote,
    VoteDecision,
    VotingConfig,
    VotingConfigOverride,
    VotingSession,
    VotingSessionStatus,
    apply_overrides,
)

__all__: list[str] = [
    "AgentRecord",
    "AgentRole",
    "AuditChainEntry",
    "AuditEntryType",
    "ChainVerificationResult",
    "DecisionTally",
    "GovernancePhase",
    "PerformanceMetrics",
    "PhaseAdvanceCheck",
    "PhaseTransition",
    "Proposal",
    "ProposalStatus",
    "SessionSummary",
    "TimeoutBehavior",
    "VALID_STATE_PAIRS",
    "Vote",
    "VoteDecision",
    "VotingConfig",
    "VotingConfigOverride",
    "VotingOutcome",
    "VotingResults",
    "VotingSession",
    "VotingSessionStatus",
    "apply_overrides",
]
