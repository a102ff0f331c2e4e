"""
Audit chain hashing for the governance core.

Voting sessions and votes are recorded as hash-chained audit entries.
"""

from src.domain.events.hash_utils import (
    GENESIS_HASH,
    canonical_json,
    compute_entry_hash,
)

__all__: list[str] = ["GENESIS_HASH", "canonical_json", "compute_entry_hash"]
