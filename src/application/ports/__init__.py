"""Application ports - Abstract interfaces for infrastructure adapters.

This module defines the contracts that infrastructure adapters must implement.
Ports enable dependency inversion and make the application layer testable.

Available ports:
- AgentDirectoryProtocol: Agent roles and performance scores
- ProposalRepositoryProtocol: Proposal storage
- VotingSessionRepositoryProtocol: Voting session and vote storage
- AuditLedgerRepositoryProtocol: Append-only audit chain storage
- TimeAuthorityProtocol: Injected clock
"""

from src.application.ports.agent_directory import AgentDirectoryProtocol
from src.application.ports.audit_ledger_repository import (
    AuditLedgerRepositoryProtocol,
)
from src.application.ports.proposal_repository import ProposalRepositoryProtocol
from src.application.ports.time_authority import TimeAuthorityProtocol
from src.application.ports.voting_session_repository import (
    VoteRecord,
    VotingSessionRepositoryProtocol,
)

__all__: list[str] = [
    "AgentDirectoryProtocol",
    "AuditLedgerRepositoryProtocol",
    "ProposalRepositoryProtocol",
    "TimeAuthorityProtocol",
    "VoteRecord",
    "VotingSessionRepositoryProtocol",
]
