"""Time Authority Service - production clock for the governance core.

Every timestamp recorded by the core (proposal transitions, session start
and deadline, vote cast times, audit entry timestamps) comes from this
service in production, or from FakeTimeAuthority in tests.
"""

from datetime import datetime, timezone

from src.application.ports.time_authority import TimeAuthorityProtocol


class TimeAuthorityService(TimeAuthorityProtocol):
    """System clock implementation of TimeAuthorityProtocol.

    Example:
        >>> service = TimeAuthorityService()
        >>> service.now().tzinfo is not None
        True
    """

    def now(self) -> datetime:
        """Return current UTC time."""
        return datetime.now(timezone.utc)
