"""State transition errors for the proposal phase state machine.

This module defines errors raised when a proposal operation is attempted
from a (status, phase) pair that does not permit it. None of these errors
are retried by the core - the caller must first bring the proposal into the
required state.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from src.domain.exceptions import GovernanceError

if TYPE_CHECKING:
    from src.domain.models.proposal import ProposalStatus


def _format_statuses(statuses: Iterable[ProposalStatus]) -> str:
    return " or ".join(sorted(s.value for s in statuses))


class ProposalNotFoundError(GovernanceError):
    """Raised when a proposal id does not resolve to a stored proposal.

    Attributes:
        proposal_id: The id that was looked up.
    """

    def __init__(self, proposal_id: str) -> None:
        """Initialize proposal not found error.

        Args:
            proposal_id: The id that was looked up.
        """
        self.proposal_id = proposal_id
        super().__init__(f"Proposal not found: {proposal_id}")


class InvalidTransitionError(GovernanceError):
    """Raised when a phase transition is attempted from the wrong status.

    The error names the operation and the statuses that would have
    allowed it, so the caller knows which precondition to satisfy.

    Attributes:
        proposal_id: Proposal the transition was attempted on.
        operation: Name of the transition operation (e.g. "move_to_revision").
        current_status: Status the proposal was in.
        required_statuses: Statuses from which the operation is legal.
        detail: Optional extra reason (e.g. deadline not in the future).
    """

    def __init__(
        self,
        proposal_id: str,
        operation: str,
        current_status: ProposalStatus,
        required_statuses: Iterable[ProposalStatus],
        detail: str | None = None,
    ) -> None:
        """Initialize invalid transition error.

        Args:
            proposal_id: Proposal the transition was attempted on.
            operation: Name of the transition operation.
            current_status: Status the proposal was in.
            required_statuses: Statuses from which the operation is legal.
            detail: Optional extra reason appended to the message.
        """
        self.proposal_id = proposal_id
        self.operation = operation
        self.current_status = current_status
        self.required_statuses = frozenset(required_statuses)
        self.detail = detail

        if detail is not None:
            message = f"Cannot {operation} proposal {proposal_id}: {detail}"
        else:
            message = (
                f"Cannot {operation} proposal {proposal_id}: status must be "
                f"{_format_statuses(self.required_statuses)}, "
                f"current status is {current_status.value}"
            )
        super().__init__(message)


class InvalidStateError(GovernanceError):
    """Raised when an operation requires the proposal to be in another state.

    Used for operations that are not phase transitions themselves
    (deletion, voting initiation, proposal creation with a taken id).

    Attributes:
        proposal_id: Proposal the operation was attempted on.
        operation: Name of the operation.
        current_status: Status the proposal was in (None if not applicable).
        required_statuses: Statuses from which the operation is legal.
    """

    def __init__(
        self,
        proposal_id: str,
        operation: str,
        current_status: ProposalStatus | None = None,
        required_statuses: Iterable[ProposalStatus] = (),
        message: str | None = None,
    ) -> None:
        """Initialize invalid state error.

        Args:
            proposal_id: Proposal the operation was attempted on.
            operation: Name of the operation.
            current_status: Status the proposal was in.
            required_statuses: Statuses from which the operation is legal.
            message: Optional message overriding the generated one.
        """
        self.proposal_id = proposal_id
        self.operation = operation
        self.current_status = current_status
        self.required_statuses = frozenset(required_statuses)

        if message is None:
            current = current_status.value if current_status else "unknown"
            message = (
                f"Cannot {operation} proposal {proposal_id}: status must be "
                f"{_format_statuses(self.required_statuses)}, "
                f"current status is {current}"
            )
        super().__init__(message)
