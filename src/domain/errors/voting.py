"""Voting session domain errors.

All of these are terminal, caller-facing conditions. The voting engine
checks every guard before it mutates anything, so raising one of these
errors never leaves a half-applied vote or finalization behind.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from src.domain.exceptions import GovernanceError

if TYPE_CHECKING:
    from src.domain.models.voting_session import VotingSessionStatus


class VotingError(GovernanceError):
    """Base class for voting-related errors."""

    pass


class SessionNotFoundError(VotingError):
    """Raised when a voting session id does not resolve.

    Attributes:
        session_id: The id that was looked up.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Voting session not found: {session_id}")


class SessionNotActiveError(VotingError):
    """Raised when an operation needs an active session but it is closed.

    Attributes:
        session_id: Session the operation was attempted on.
        status: Current session status.
    """

    def __init__(self, session_id: str, status: VotingSessionStatus) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(f"Voting session {session_id} is {status.value}")


class DeadlinePassedError(VotingError):
    """Raised when a vote arrives after the session deadline.

    Attributes:
        session_id: Session the vote was cast in.
        deadline: The session deadline.
        attempted_at: When the vote was attempted.
    """

    def __init__(
        self,
        session_id: str,
        deadline: datetime,
        attempted_at: datetime,
    ) -> None:
        self.session_id = session_id
        self.deadline = deadline
        self.attempted_at = attempted_at
        super().__init__(
            f"Voting deadline for session {session_id} passed at "
            f"{deadline.isoformat()}"
        )


class NotEligibleError(VotingError):
    """Raised when an agent outside the eligibility snapshot tries to vote.

    Attributes:
        session_id: Session the vote was cast in.
        agent_id: Agent that attempted to vote.
    """

    def __init__(self, session_id: str, agent_id: str) -> None:
        self.session_id = session_id
        self.agent_id = agent_id
        super().__init__(
            f"Agent {agent_id} is not eligible to vote in session {session_id}"
        )


class DuplicateVoteError(VotingError):
    """Raised when an agent votes a second time in the same session.

    Attributes:
        session_id: Session the vote was cast in.
        agent_id: Agent that already voted.
    """

    def __init__(self, session_id: str, agent_id: str) -> None:
        self.session_id = session_id
        self.agent_id = agent_id
        super().__init__(
            f"Agent {agent_id} has already voted in session {session_id}"
        )


class AlreadyFinalizedError(VotingError):
    """Raised when finalize is called on a session that is already finalized.

    Attributes:
        session_id: The finalized session.
        finalized_at: When the first finalize happened, if known.
    """

    def __init__(self, session_id: str, finalized_at: datetime | None = None) -> None:
        self.session_id = session_id
        self.finalized_at = finalized_at
        super().__init__(f"Voting session {session_id} is already finalized")


class ActiveSessionExistsError(VotingError):
    """Raised when opening a second active session for the same proposal.

    Attributes:
        proposal_id: Proposal that already has an active session.
        session_id: The existing active session.
    """

    def __init__(self, proposal_id: str, session_id: str) -> None:
        self.proposal_id = proposal_id
        self.session_id = session_id
        super().__init__(
            f"Proposal {proposal_id} already has an active voting session "
            f"({session_id})"
        )
