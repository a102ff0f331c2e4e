"""Domain errors for the governance core.

Provides specific exception classes for different failure scenarios.
All exceptions inherit from GovernanceError.
"""

from src.domain.errors.persistence import (
    AuditSequenceConflictError,
    PersistenceFailureError,
)
from src.domain.errors.state_transition import (
    InvalidStateError,
    InvalidTransitionError,
    ProposalNotFoundError,
)
from src.domain.errors.voting import (
    ActiveSessionExistsError,
    AlreadyFinalizedError,
    DeadlinePassedError,
    DuplicateVoteError,
    NotEligibleError,
    SessionNotActiveError,
    SessionNotFoundError,
    VotingError,
)

__all__: list[str] = [
    "ActiveSessionExistsError",
    "AlreadyFinalizedError",
    "AuditSequenceConflictError",
    "DeadlinePassedError",
    "DuplicateVoteError",
    "InvalidStateError",
    "InvalidTransitionError",
    "NotEligibleError",
    "PersistenceFailureError",
    "ProposalNotFoundError",
    "SessionNotActiveError",
    "SessionNotFoundError",
    "VotingError",
]
