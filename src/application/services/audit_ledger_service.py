"""Audit ledger service - hash-chained record of voting sessions and votes.

Each voting session owns one chain. Entry 0 snapshots the session when it
opens; each following entry snapshots one vote in cast order. Hashes are
computed when an entry is written and stored with it, so verify() only
needs the stored entries to detect tampering with the chain itself. When
given the stored session, verify() also checks that the session and every
stored vote match the entry recorded for them.

The voting engine does not call the append methods: it hands
session_entry()/vote_entry() factories to the voting session repository,
which stores each record and its entry in one write. The append methods
serve chains written on their own.

The ledger is a single-authority bookkeeping log: it detects retroactive
edits, it does not prevent a storage owner from rewriting a whole chain.

Usage:
    ledger = AuditLedgerService(repository=repo)
    await ledger.append_session_entry(session)
    await ledger.append_vote_entry(vote)
    result = await ledger.verify(session.session_id, session)
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

from structlog import get_logger

from src.application.ports.audit_ledger_repository import (
    AuditLedgerRepositoryProtocol,
)
from src.domain.errors.persistence import AuditSequenceConflictError
from src.domain.events.hash_utils import GENESIS_HASH, canonical_json
from src.domain.models.audit_chain import (
    AuditChainEntry,
    AuditEntryFactory,
    AuditEntryType,
    ChainVerificationResult,
    session_entry_factory,
    session_entry_id,
    vote_entry_factory,
)
from src.domain.models.voting_session import Vote, VotingSession

logger = get_logger()

REASON_HASH_MISMATCH = "hash_mismatch"
REASON_LINK_BROKEN = "link_broken"
REASON_RECORD_MISMATCH = "record_mismatch"
REASON_RECORD_MISSING = "record_missing"

# Session fields fixed at open; later status, vote and deadline changes are
# not part of the opening snapshot.
SESSION_IDENTITY_FIELDS = (
    "session_id",
    "proposal_id",
    "config",
    "started_at",
    "eligible_agents",
)

MAX_APPEND_ATTEMPTS = 3


class AuditLedgerService:
    """Append-only, hash-linked audit ledger.

    Appends to the same chain are serialized with a per-chain asyncio.Lock
    so that two concurrent appends in one process never chain onto the same
    tip. A writer in another process can still take the tip's successor
    first; the repository then raises AuditSequenceConflictError and the
    append is rebuilt on the new tip.

    Attributes:
        _repository: Audit chain storage.
        _locks: Per-chain append locks.
    """

    def __init__(self, repository: AuditLedgerRepositoryProtocol) -> None:
        """Initialize the audit ledger.

        Args:
            repository: Audit chain storage.
        """
        self._repository = repository
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def session_entry(self, session: VotingSession) -> AuditEntryFactory:
        """Entry factory for a session's opening snapshot."""
        return session_entry_factory(session)

    def vote_entry(self, vote: Vote) -> AuditEntryFactory:
        """Entry factory for a cast vote."""
        return vote_entry_factory(vote)

    async def append_session_entry(self, session: VotingSession) -> AuditChainEntry:
        """Record the opening snapshot of a voting session.

        Args:
            session: The newly opened session.

        Returns:
            The stored entry.
        """
        return await self._append(session.session_id, self.session_entry(session))

    async def append_vote_entry(self, vote: Vote) -> AuditChainEntry:
        """Record a cast vote on its session's chain.

        Args:
            vote: The persisted vote.

        Returns:
            The stored entry.
        """
        return await self._append(vote.session_id, self.vote_entry(vote))

    async def get_chain(self, session_id: str) -> list[AuditChainEntry]:
        """Return a session's chain: session entry, then votes in cast order."""
        return await self._repository.list_chain(session_id)

    async def verify(
        self,
        session_id: str,
        session: VotingSession | None = None,
    ) -> ChainVerificationResult:
        """Verify a session's chain.

        Each entry's hash is recomputed from its recorded fields and
        compared with the stored hash; each entry's previous_hash must
        equal the stored hash of the entry before it (GENESIS_HASH for
        entry 0).

        When the stored session is given, entry 0 must snapshot that
        session's identity fields and every later entry must match the
        stored vote with its id. A stored vote with no entry, or an entry
        with no stored vote, is reported as record_missing.

        Args:
            session_id: The session whose chain to verify.
            session: The stored session and its votes, for the record check.

        Returns:
            ChainVerificationResult naming the first bad entry, if any.
        """
        log = logger.bind(operation="verify_audit_chain", session_id=session_id)
        entries = await self._repository.list_chain(session_id)
        votes = {v.vote_id: v for v in session.votes} if session is not None else {}

        expected_previous = GENESIS_HASH
        for index, entry in enumerate(entries):
            reason: str | None = None
            if entry.recompute_hash() != entry.hash:
                reason = REASON_HASH_MISMATCH
            elif entry.previous_hash != expected_previous:
                reason = REASON_LINK_BROKEN
            elif session is not None:
                reason = _record_reason(index, entry, session, votes)

            if reason is not None:
                return _mismatch(
                    log, session_id, index, index + 1, entry.entry_id, reason
                )
            expected_previous = entry.hash

        if session is not None and (not entries or votes):
            # The record exists but its entry was never written.
            missing_id = (
                session_entry_id(session_id) if not entries else next(iter(votes))
            )
            return _mismatch(
                log,
                session_id,
                len(entries),
                len(entries),
                missing_id,
                REASON_RECORD_MISSING,
            )

        log.debug("audit_chain_verified", entries_checked=len(entries))
        return ChainVerificationResult(
            chain_id=session_id,
            is_valid=True,
            entries_checked=len(entries),
        )

    async def _append(
        self,
        chain_id: str,
        audit_entry: AuditEntryFactory,
    ) -> AuditChainEntry:
        async with self._locks[chain_id]:
            for attempt in range(1, MAX_APPEND_ATTEMPTS + 1):
                entry = audit_entry(await self._repository.get_tip(chain_id))
                try:
                    await self._repository.append(entry)
                    break
                except AuditSequenceConflictError:
                    if attempt == MAX_APPEND_ATTEMPTS:
                        raise
                    logger.warning(
                        "audit_append_retry",
                        chain_id=chain_id,
                        sequence=entry.sequence,
                        attempt=attempt,
                    )

        logger.info(
            "audit_entry_appended",
            chain_id=chain_id,
            entry_id=entry.entry_id,
            entry_type=entry.entry_type.value,
            sequence=entry.sequence,
            hash=entry.hash,
        )
        return entry


def _record_reason(
    index: int,
    entry: AuditChainEntry,
    session: VotingSession,
    votes: dict[str, Vote],
) -> str | None:
    """Compare entry with the stored record it snapshots.

    Matched votes are removed from votes, so what remains afterwards has no
    entry.
    """
    if index == 0:
        if entry.entry_type != AuditEntryType.SESSION:
            return REASON_RECORD_MISSING
        stored = session.to_dict()
        for name in SESSION_IDENTITY_FIELDS:
            if canonical_json(entry.data.get(name)) != canonical_json(stored[name]):
                return REASON_RECORD_MISMATCH
        return None

    vote = votes.pop(entry.entry_id, None)
    if entry.entry_type != AuditEntryType.VOTE or vote is None:
        return REASON_RECORD_MISSING
    if canonical_json(vote.to_dict()) != canonical_json(entry.data):
        return REASON_RECORD_MISMATCH
    return None


def _mismatch(
    log: Any,
    session_id: str,
    index: int,
    entries_checked: int,
    entry_id: str,
    reason: str,
) -> ChainVerificationResult:
    log.warning(
        "audit_chain_mismatch",
        index=index,
        entry_id=entry_id,
        reason=reason,
    )
    return ChainVerificationResult(
        chain_id=session_id,
        is_valid=False,
        entries_checked=entries_checked,
        first_mismatch_index=index,
        reason=reason,
    )
