"""Infrastructure stubs for development and testing.

This module provides in-memory implementations of the application ports
for use in development and testing environments.

Available stubs:
- AgentDirectoryStub: Agents registered in memory
- ProposalRepositoryStub: In-memory proposal storage
- VotingSessionRepositoryStub: In-memory sessions with lock-simulated CAS
- AuditLedgerRepositoryStub: In-memory append-only audit chains

WARNING: These stubs are NOT for production use.
Production implementations are in src/infrastructure/adapters/.
"""

from src.infrastructure.stubs.agent_directory_stub import AgentDirectoryStub
from src.infrastructure.stubs.audit_ledger_repository_stub import (
    AuditLedgerRepositoryStub,
)
from src.infrastructure.stubs.proposal_repository_stub import ProposalRepositoryStub
from src.infrastructure.stubs.voting_session_repository_stub import (
    VotingSessionRepositoryStub,
)

__all__: list[str] = [
    "AgentDirectoryStub",
    "AuditLedgerRepositoryStub",
    "ProposalRepositoryStub",
    "VotingSessionRepositoryStub",
]
