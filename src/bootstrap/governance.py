"""Bootstrap wiring for the governance core.

Builds the phase state machine, voting engine, audit ledger and deadline
sweeper over either in-memory stubs or the PostgreSQL repositories, and
resolves the state machine <-> engine cycle by attaching the engine after
both exist.

Environment Variables:
- GOVERNANCE_STORAGE: "memory" (default) or "postgres"
- DATABASE_URL: Required when GOVERNANCE_STORAGE=postgres
- VOTING_*: Voting defaults, see src.config.voting_config

Usage:
    from src.bootstrap.governance import get_governance_services

    services = get_governance_services()
    proposal = await services.state_machine.create_proposal("agent-1", "Title")
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from structlog import get_logger

from src.application.ports.agent_directory import AgentDirectoryProtocol
from src.application.ports.audit_ledger_repository import (
    AuditLedgerRepositoryProtocol,
)
from src.application.ports.proposal_repository import ProposalRepositoryProtocol
from src.application.ports.time_authority import TimeAuthorityProtocol
from src.application.ports.voting_session_repository import (
    VotingSessionRepositoryProtocol,
)
from src.application.services.audit_ledger_service import AuditLedgerService
from src.application.services.phase_state_machine_service import (
    PhaseStateMachineService,
)
from src.application.services.time_authority_service import TimeAuthorityService
from src.application.services.voting_deadline_service import (
    DeadlineSweepReport,
    VotingDeadlineService,
)
from src.application.services.voting_engine_service import VotingEngineService
from src.config.phase_config import PhaseConfigurationRegistry
from src.config.voting_config import VotingDefaults
from src.infrastructure.observability import correlation_scope
from src.infrastructure.stubs import (
    AgentDirectoryStub,
    AuditLedgerRepositoryStub,
    ProposalRepositoryStub,
    VotingSessionRepositoryStub,
)

logger = get_logger()

STORAGE_ENV = "GOVERNANCE_STORAGE"
STORAGE_MEMORY = "memory"
STORAGE_POSTGRES = "postgres"


@dataclass(frozen=True)
class GovernanceServices:
    """Wired governance services and the repositories behind them."""

    state_machine: PhaseStateMachineService
    voting_engine: VotingEngineService
    audit_ledger: AuditLedgerService
    deadline_service: VotingDeadlineService
    proposal_repository: ProposalRepositoryProtocol
    session_repository: VotingSessionRepositoryProtocol
    audit_repository: AuditLedgerRepositoryProtocol
    agent_directory: AgentDirectoryProtocol
    time_authority: TimeAuthorityProtocol
    phase_configurations: PhaseConfigurationRegistry


def build_governance_services(
    proposal_repository: ProposalRepositoryProtocol,
    session_repository: VotingSessionRepositoryProtocol,
    audit_repository: AuditLedgerRepositoryProtocol,
    agent_directory: AgentDirectoryProtocol,
    time_authority: TimeAuthorityProtocol | None = None,
    defaults: VotingDefaults | None = None,
) -> GovernanceServices:
    """Wire the governance services over the given collaborators.

    Args:
        proposal_repository: Proposal storage.
        session_repository: Voting session storage.
        audit_repository: Audit chain storage.
        agent_directory: Source of agent roles and metrics.
        time_authority: Clock (system UTC clock when None).
        defaults: Voting defaults (read from the environment when None).

    Returns:
        GovernanceServices with the engine attached to the state machine.
    """
    clock = time_authority or TimeAuthorityService()
    voting_defaults = defaults or VotingDefaults.from_environment()

    state_machine = PhaseStateMachineService(proposal_repository, clock)
    audit_ledger = AuditLedgerService(audit_repository)
    engine = VotingEngineService(
        session_repository=session_repository,
        agent_directory=agent_directory,
        audit_ledger=audit_ledger,
        state_machine=state_machine,
        time_authority=clock,
        defaults=voting_defaults.to_voting_config(),
    )
    state_machine.attach_voting_engine(engine)
    phases = PhaseConfigurationRegistry.from_voting_defaults(voting_defaults)
    deadline_service = VotingDeadlineService(
        engine, session_repository, clock, phases
    )

    return GovernanceServices(
        state_machine=state_machine,
        voting_engine=engine,
        audit_ledger=audit_ledger,
        deadline_service=deadline_service,
        proposal_repository=proposal_repository,
        session_repository=session_repository,
        audit_repository=audit_repository,
        agent_directory=agent_directory,
        time_authority=clock,
        phase_configurations=phases,
    )


def build_in_memory_services(
    agent_directory: AgentDirectoryProtocol | None = None,
    time_authority: TimeAuthorityProtocol | None = None,
    defaults: VotingDefaults | None = None,
) -> GovernanceServices:
    """Wire the governance services over in-memory stubs.

    The session stub writes audit entries into the same chain storage the
    audit ledger reads.
    """
    audit_repository = AuditLedgerRepositoryStub()
    return build_governance_services(
        proposal_repository=ProposalRepositoryStub(),
        session_repository=VotingSessionRepositoryStub(audit_repository),
        audit_repository=audit_repository,
        agent_directory=agent_directory or AgentDirectoryStub(),
        time_authority=time_authority,
        defaults=defaults,
    )


def build_postgres_services(
    agent_directory: AgentDirectoryProtocol,
    time_authority: TimeAuthorityProtocol | None = None,
    defaults: VotingDefaults | None = None,
) -> GovernanceServices:
    """Wire the governance services over the PostgreSQL repositories.

    Raises:
        ValueError: If DATABASE_URL is not configured.
    """
    # Imported here so memory-only deployments never create an engine
    from src.bootstrap.database import get_session_factory
    from src.infrastructure.adapters.persistence import (
        PostgresAuditLedgerRepository,
        PostgresProposalRepository,
        PostgresVotingSessionRepository,
    )

    session_factory = get_session_factory()
    return build_governance_services(
        proposal_repository=PostgresProposalRepository(session_factory),
        session_repository=PostgresVotingSessionRepository(session_factory),
        audit_repository=PostgresAuditLedgerRepository(session_factory),
        agent_directory=agent_directory,
        time_authority=time_authority,
        defaults=defaults,
    )


async def sweep_expired_sessions(services: GovernanceServices) -> DeadlineSweepReport:
    """Run one deadline sweep under its own correlation id."""
    with correlation_scope():
        report = await services.deadline_service.process_expired_sessions()
        logger.info(
            "deadline_sweep_completed",
            processed=report.processed_count,
            failed=len(report.failed),
        )
        return report


_services: GovernanceServices | None = None


def get_governance_services() -> GovernanceServices:
    """Get the process-wide governance services.

    Storage is chosen by GOVERNANCE_STORAGE. The agent directory defaults to
    the in-memory stub; deployments with a real directory should call
    set_governance_services() with their own wiring.

    Raises:
        ValueError: If GOVERNANCE_STORAGE names an unknown backend.
    """
    global _services
    if _services is None:
        storage = os.environ.get(STORAGE_ENV, STORAGE_MEMORY).strip().lower()
        if storage == STORAGE_MEMORY:
            _services = build_in_memory_services()
        elif storage == STORAGE_POSTGRES:
            _services = build_postgres_services(AgentDirectoryStub())
        else:
            raise ValueError(
                f"{STORAGE_ENV} must be '{STORAGE_MEMORY}' or "
                f"'{STORAGE_POSTGRES}', got '{storage}'"
            )
        logger.info("governance_services_created", storage=storage)
    return _services


def set_governance_services(services: GovernanceServices) -> None:
    """Set custom governance services for testing."""
    global _services
    _services = services


def reset_governance_services() -> None:
    """Reset the singleton for testing."""
    global _services
    _services = None


async def shutdown_governance_services() -> None:
    """Forget the process-wide services and dispose the database engine.

    Safe to call when the services were never built or use memory storage.
    """
    # Imported here so memory-only deployments never import the driver
    from src.bootstrap.database import dispose_database_engine

    reset_governance_services()
    await dispose_database_engine()
    logger.info("governance_services_shut_down")
