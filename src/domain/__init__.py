"""
Domain layer - Pure business logic for the governance core.

This layer contains:
- Domain models (Proposal, VotingSession, Vote, AuditChainEntry)
- Domain services (vote weighting, consensus calculation)
- Audit chain hashing
- Domain exceptions

CRITICAL: This layer must NOT import from application, infrastructure, or api.
Only stdlib, typing and uuid6 imports are allowed.
"""

from src.domain.exceptions import GovernanceError
from src.domain.models import Proposal, VotingSession

__all__: list[str] = [
    "GovernanceError",
    "Proposal",
    "VotingSession",
]
