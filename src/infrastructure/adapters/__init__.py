"""Infrastructure adapters for the governance core.

Adapters implement the ports defined in the application layer,
providing concrete implementations for external services.
"""

from src.infrastructure.adapters.persistence import (
    PostgresAuditLedgerRepository,
    PostgresProposalRepository,
    PostgresVotingSessionRepository,
)

__all__: list[str] = [
    "PostgresAuditLedgerRepository",
    "PostgresProposalRepository",
    "PostgresVotingSessionRepository",
]
