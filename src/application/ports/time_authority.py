"""Time Authority Protocol - interface for consistent timestamp provisioning.

This port defines the contract for obtaining timestamps throughout the
governance core. Every service that needs a timestamp (vote cast times,
deadlines, finalization times, audit entry timestamps) MUST inject a
TimeAuthorityProtocol implementation instead of calling datetime.now()
directly.

Benefits:
1. **Consistency**: All services get time from single authority
2. **Testability**: Tests can inject FakeTimeAuthority for deterministic behavior
3. **Auditability**: Audit chain timestamps come from a single source
"""

from abc import ABC, abstractmethod
from datetime import datetime


class TimeAuthorityProtocol(ABC):
    """Abstract interface for time authority.

    Example usage:
        class MyService:
            def __init__(self, time_authority: TimeAuthorityProtocol) -> None:
                self._time = time_authority

            def process(self) -> None:
                now = self._time.now()  # NOT datetime.now()
                ...

    For production:
        Use TimeAuthorityService from src/application/services/

    For testing:
        Use FakeTimeAuthority from tests/helpers/fake_time_authority.py
    """

    @abstractmethod
    def now(self) -> datetime:
        """Return current time with timezone awareness.

        Returns:
            Current datetime with timezone information (UTC).
        """
        ...

