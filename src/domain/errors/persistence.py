"""Persistence failure errors.

Storage adapters translate driver exceptions into these errors. The core
never retries a failed write itself: retrying a vote write with side
effects could record a vote twice, so a safe retry needs an idempotency key
held by the caller. The one exception is an audit append that lost a race
for its sequence number: nothing was written, so the ledger rebuilds the
entry on the new tip.
"""

from __future__ import annotations

from src.domain.exceptions import GovernanceError


class PersistenceFailureError(GovernanceError):
    """Raised when a repository read or write fails at the storage layer.

    Attributes:
        operation: Repository operation that failed (e.g. "add_vote").
        entity_id: Id of the record involved, if any.
    """

    def __init__(self, operation: str, entity_id: str | None = None) -> None:
        """Initialize persistence failure error.

        Args:
            operation: Repository operation that failed.
            entity_id: Id of the record involved, if any.
        """
        self.operation = operation
        self.entity_id = entity_id
        target = f" for {entity_id}" if entity_id else ""
        super().__init__(f"Persistence failure during {operation}{target}")


class AuditSequenceConflictError(PersistenceFailureError):
    """Raised when an audit entry's chain position was taken first.

    Attributes:
        chain_id: Chain the entry was appended to.
        sequence: The position that was already taken.
    """

    def __init__(self, chain_id: str, sequence: int, entry_id: str) -> None:
        self.chain_id = chain_id
        self.sequence = sequence
        super().__init__("append_audit_entry", entry_id)
