"""Application services - Use case orchestration.

This module contains application services that orchestrate domain
operations and coordinate with infrastructure adapters.

Available services:
- PhaseStateMachineService: Proposal lifecycle and phase transitions
- VotingEngineService: Voting sessions, weighted votes, finalization
- VotingDeadlineService: Closes expired sessions per timeout behavior
- AuditLedgerService: Per-session hash-chained audit trail
- TimeAuthorityService: UTC clock with drift detection
"""

from src.application.services.audit_ledger_service import AuditLedgerService
from src.application.services.phase_state_machine_service import (
    PhaseStateMachineService,
    transition_reasons,
)
from src.application.services.time_authority_service import TimeAuthorityService
from src.application.services.voting_deadline_service import (
    DeadlineSweepReport,
    VotingDeadlineService,
)
from src.application.services.voting_engine_service import VotingEngineService

__all__: list[str] = [
    "AuditLedgerService",
    "DeadlineSweepReport",
    "PhaseStateMachineService",
    "TimeAuthorityService",
    "VotingDeadlineService",
    "VotingEngineService",
    "transition_reasons",
]
