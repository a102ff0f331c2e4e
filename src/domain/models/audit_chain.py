"""Audit chain entry model.

Each voting session has its own hash chain. Entry 0 snapshots the session
at open; every following entry snapshots one vote, in cast order. An
entry's hash covers its id, type, timestamp, data and previous_hash, so
changing any recorded field, or reordering entries, breaks verification.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.domain.events.hash_utils import (
    GENESIS_HASH,
    compute_entry_hash,
    is_valid_sha256_hex,
)

if TYPE_CHECKING:
    from src.domain.models.voting_session import Vote, VotingSession

SESSION_ENTRY_PREFIX = "session-"


class AuditEntryType(Enum):
    """Kind of record an audit entry snapshots."""

    SESSION = "session"
    VOTE = "vote"


@dataclass(frozen=True, eq=True)
class AuditChainEntry:
    """One immutable entry of a session's audit chain.

    Attributes:
        entry_id: "session-<session_id>" for the session entry, else the vote id.
        chain_id: Session id the chain belongs to.
        sequence: 0-based position in the chain.
        entry_type: session or vote.
        timestamp: When the snapshotted record was created.
        data: Canonical snapshot of the record.
        previous_hash: Hash of the previous entry (GENESIS_HASH for entry 0).
        hash: SHA-256 over the entry's hashed fields.
    """

    entry_id: str
    chain_id: str
    sequence: int
    entry_type: AuditEntryType
    timestamp: datetime
    data: dict[str, Any] = field(hash=False)
    previous_hash: str
    hash: str

    def __post_init__(self) -> None:
        """Validate entry invariants."""
        if self.sequence < 0:
            raise ValueError(f"sequence must be >= 0, got {self.sequence}")
        if not is_valid_sha256_hex(self.previous_hash):
            raise ValueError("previous_hash must be a lowercase SHA-256 hex digest")
        if not is_valid_sha256_hex(self.hash):
            raise ValueError("hash must be a lowercase SHA-256 hex digest")

    @classmethod
    def build(
        cls,
        entry_id: str,
        chain_id: str,
        sequence: int,
        entry_type: AuditEntryType,
        timestamp: datetime,
        data: dict[str, Any],
        previous_hash: str = GENESIS_HASH,
    ) -> AuditChainEntry:
        """Build an entry and compute its hash.

        Args:
            entry_id: Entry id.
            chain_id: Session id.
            sequence: Position in the chain.
            entry_type: session or vote.
            timestamp: Record timestamp.
            data: Snapshot of the record.
            previous_hash: Hash of the current chain tip.

        Returns:
            AuditChainEntry with hash populated.
        """
        return cls(
            entry_id=entry_id,
            chain_id=chain_id,
            sequence=sequence,
            entry_type=entry_type,
            timestamp=timestamp,
            data=data,
            previous_hash=previous_hash,
            hash=compute_entry_hash(
                entry_id=entry_id,
                entry_type=entry_type.value,
                timestamp=timestamp,
                data=data,
                previous_hash=previous_hash,
            ),
        )

    @classmethod
    def link(
        cls,
        tip: AuditChainEntry | None,
        entry_id: str,
        chain_id: str,
        entry_type: AuditEntryType,
        timestamp: datetime,
        data: dict[str, Any],
    ) -> AuditChainEntry:
        """Build the entry that follows tip on its chain.

        Args:
            tip: Current last entry of the chain, None for an empty chain.
            entry_id: Entry id.
            chain_id: Session id.
            entry_type: session or vote.
            timestamp: Record timestamp.
            data: Snapshot of the record.

        Returns:
            Entry at position tip.sequence + 1 (0 for an empty chain).

        Raises:
            ValueError: If tip belongs to another chain.
        """
        if tip is not None and tip.chain_id != chain_id:
            raise ValueError(
                f"Tip belongs to chain {tip.chain_id}, not {chain_id}"
            )
        return cls.build(
            entry_id=entry_id,
            chain_id=chain_id,
            sequence=0 if tip is None else tip.sequence + 1,
            entry_type=entry_type,
            timestamp=timestamp,
            data=data,
            previous_hash=GENESIS_HASH if tip is None else tip.hash,
        )

    def recompute_hash(self) -> str:
        """Recompute the hash from the entry's recorded fields."""
        return compute_entry_hash(
            entry_id=self.entry_id,
            entry_type=self.entry_type.value,
            timestamp=self.timestamp,
            data=self.data,
            previous_hash=self.previous_hash,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "id": self.entry_id,
            "chain_id": self.chain_id,
            "sequence": self.sequence,
            "type": self.entry_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "previous_hash": self.previous_hash,
            "hash": self.hash,
        }


# Builds the next entry of a chain from its current tip (None when empty).
# Repositories call it while they hold the write that stores the record, so
# the record and its audit entry are committed together.
AuditEntryFactory = Callable[[AuditChainEntry | None], AuditChainEntry]


def session_entry_id(session_id: str) -> str:
    return f"{SESSION_ENTRY_PREFIX}{session_id}"


def session_entry_factory(session: VotingSession) -> AuditEntryFactory:
    """Factory for the opening snapshot of a session (entry 0)."""
    data = session.to_dict()

    def build(tip: AuditChainEntry | None) -> AuditChainEntry:
        return AuditChainEntry.link(
            tip,
            entry_id=session_entry_id(session.session_id),
            chain_id=session.session_id,
            entry_type=AuditEntryType.SESSION,
            timestamp=session.started_at,
            data=data,
        )

    return build


def vote_entry_factory(vote: Vote) -> AuditEntryFactory:
    """Factory for the snapshot of one cast vote."""
    data = vote.to_dict()

    def build(tip: AuditChainEntry | None) -> AuditChainEntry:
        return AuditChainEntry.link(
            tip,
            entry_id=vote.vote_id,
            chain_id=vote.session_id,
            entry_type=AuditEntryType.VOTE,
            timestamp=vote.cast_at,
            data=data,
        )

    return build


@dataclass(frozen=True, eq=True)
class ChainVerificationResult:
    """Outcome of verifying a session's audit chain.

    Attributes:
        chain_id: Session id verified.
        is_valid: True when every entry's hash and link checked out and the
            stored records match their entries.
        entries_checked: Number of entries inspected.
        first_mismatch_index: Index of the first bad entry, if any.
        reason: "hash_mismatch", "link_broken", "record_mismatch" or
            "record_missing" for the first bad entry.
    """

    chain_id: str
    is_valid: bool
    entries_checked: int
    first_mismatch_index: int | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "is_valid": self.is_valid,
            "entries_checked": self.entries_checked,
            "first_mismatch_index": self.first_mismatch_index,
            "reason": self.reason,
        }
