"""Base exception classes for the governance domain layer."""


class GovernanceError(Exception):
    """Base exception for all domain errors.

    All domain-specific exceptions MUST inherit from this class.
    This enables consistent error handling across the application and
    lets an outer transport layer map every governance failure to a
    client-facing response in one place.

    Subclasses:
    - InvalidTransitionError / InvalidStateError (phase state machine)
    - SessionNotActiveError, DeadlinePassedError, NotEligibleError,
      DuplicateVoteError, AlreadyFinalizedError (voting engine)
    - PersistenceFailureError (storage adapters)
    """

    def __init__(self, message: str = "") -> None:
        """Initialize the exception with an optional message.

        Args:
            message: Human-readable error description.
        """
        super().__init__(message)

    @property
    def reason(self) -> str:
        """Human-readable reason for the failure."""
        return str(self)
