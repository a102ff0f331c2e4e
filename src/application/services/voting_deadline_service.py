"""Voting deadline sweep.

The core checks deadlines lazily: cast_vote() refuses late votes, but a
session whose deadline passes stays ACTIVE until someone closes it. This
service is the poller an external scheduler calls to close expired
sessions according to each session's timeout behavior:

- finalize_immediately: finalize the session
- extend_once: extend the deadline by the voting phase's extension_duration
  while the session has used fewer than allowed_extensions, then finalize
- reject_proposal: cancel the session, which rejects the proposal

Sessions with auto_finalize disabled are left for manual finalization, as
are all expired sessions while the voting phase requires manual progression.
A failure on one session is logged and reported; it never stops the sweep.

Usage:
    sweeper = VotingDeadlineService(engine, session_repository, clock, phases)
    report = await sweeper.process_expired_sessions()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from structlog import get_logger

from src.application.ports.time_authority import TimeAuthorityProtocol
from src.application.ports.voting_session_repository import (
    VotingSessionRepositoryProtocol,
)
from src.application.services.voting_engine_service import VotingEngineService
from src.config.phase_config import PhaseConfiguration, PhaseConfigurationRegistry
from src.domain.exceptions import GovernanceError
from src.domain.models.proposal import GovernancePhase
from src.domain.models.voting_session import TimeoutBehavior, VotingSession

logger = get_logger()

DEADLINE_CANCEL_REASON = "voting deadline passed"


@dataclass
class DeadlineSweepReport:
    """Outcome of one sweep.

    Attributes:
        finalized: Sessions finalized.
        extended: Sessions whose deadline was extended.
        cancelled: Sessions cancelled (proposal rejected).
        skipped: Expired sessions left for manual finalization.
        failed: Session id -> error message for sessions that failed.
    """

    finalized: list[str] = field(default_factory=list)
    extended: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def processed_count(self) -> int:
        return len(self.finalized) + len(self.extended) + len(self.cancelled)

    def to_dict(self) -> dict[str, Any]:
        return {
            "finalized": list(self.finalized),
            "extended": list(self.extended),
            "cancelled": list(self.cancelled),
            "skipped": list(self.skipped),
            "failed": dict(self.failed),
        }


class VotingDeadlineService:
    """Closes expired voting sessions per their timeout behavior."""

    def __init__(
        self,
        engine: VotingEngineService,
        session_repository: VotingSessionRepositoryProtocol,
        time_authority: TimeAuthorityProtocol,
        phases: PhaseConfigurationRegistry | None = None,
    ) -> None:
        """Initialize the sweeper.

        Args:
            engine: Voting engine that performs the closes.
            session_repository: Source of expired active sessions.
            time_authority: Clock.
            phases: Phase configurations; the voting entry sets the
                extension rules (built-in table if not provided).
        """
        self._engine = engine
        self._sessions = session_repository
        self._time = time_authority
        self._phases = phases or PhaseConfigurationRegistry()

    @property
    def voting_phase(self) -> PhaseConfiguration:
        return self._phases.get(GovernancePhase.VOTING)

    async def process_expired_sessions(self) -> DeadlineSweepReport:
        """Apply timeout behaviors to every expired active session.

        Returns:
            DeadlineSweepReport of what happened to each session.
        """
        now = self._time.now()
        expired = await self._sessions.list_expired_active(now)
        report = DeadlineSweepReport()
        log = logger.bind(operation="process_expired_sessions")
        voting = self.voting_phase

        for session in expired:
            if voting.requires_manual_progression or not session.config.auto_finalize:
                report.skipped.append(session.session_id)
                continue
            try:
                await self._handle_expired(session, voting, report)
            except GovernanceError as exc:
                log.error(
                    "expired_session_processing_failed",
                    session_id=session.session_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                report.failed[session.session_id] = str(exc)

        log.info(
            "expired_sessions_processed",
            expired_count=len(expired),
            finalized=len(report.finalized),
            extended=len(report.extended),
            cancelled=len(report.cancelled),
            skipped=len(report.skipped),
            failed=len(report.failed),
        )
        return report

    async def _handle_expired(
        self,
        session: VotingSession,
        voting: PhaseConfiguration,
        report: DeadlineSweepReport,
    ) -> None:
        behavior = session.config.timeout_behavior

        if behavior == TimeoutBehavior.REJECT_PROPOSAL:
            await self._engine.cancel(session.session_id, DEADLINE_CANCEL_REASON)
            report.cancelled.append(session.session_id)
            return

        if behavior == TimeoutBehavior.EXTEND_ONCE and voting.can_extend(
            session.extension_count
        ):
            await self._engine.extend(session.session_id, voting.extension_duration)
            report.extended.append(session.session_id)
            return

        await self._engine.finalize(session.session_id)
        report.finalized.append(session.session_id)
