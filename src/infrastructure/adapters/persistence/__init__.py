"""PostgreSQL repository adapters.

Production implementations of the repository ports, built on SQLAlchemy's
async engine with the asyncpg driver. Schema: migrations/.
"""

from src.infrastructure.adapters.persistence.audit_ledger_repository import (
    PostgresAuditLedgerRepository,
)
from src.infrastructure.adapters.persistence.proposal_repository import (
    PostgresProposalRepository,
)
from src.infrastructure.adapters.persistence.voting_session_repository import (
    PostgresVotingSessionRepository,
)

__all__: list[str] = [
    "PostgresAuditLedgerRepository",
    "PostgresProposalRepository",
    "PostgresVotingSessionRepository",
]
