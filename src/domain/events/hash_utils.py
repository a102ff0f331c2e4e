"""Hash utilities for the voting audit chain.

This module provides deterministic hashing for audit chain entries. Every
entry is hashed with SHA-256 over a canonical JSON rendering of its fields,
and each entry records the hash of its predecessor, so any retroactive edit
is detectable by recomputation.
"""

from __future__ import annotations

import hashlib
import json
import math
import unicodedata
from datetime import datetime
from typing import Any

# Genesis hash: 64 zeros representing "no previous entry".
# This is the previous_hash of entry 0 of every chain.
GENESIS_HASH: str = "0" * 64


def _sanitize_for_json(data: Any) -> Any:
    """Recursively sanitize data for deterministic JSON serialization.

    This function:
    - Normalizes Unicode strings using NFKC form
    - Rejects NaN, Infinity, and -Infinity float values
    - Renders datetimes as ISO 8601 strings
    - Recursively processes nested structures

    Args:
        data: Any JSON-serializable data.

    Returns:
        Sanitized data safe for deterministic JSON serialization.

    Raises:
        ValueError: If data contains NaN, Infinity, or -Infinity values.
    """
    if isinstance(data, str):
        return unicodedata.normalize("NFKC", data)
    elif isinstance(data, float):
        if math.isnan(data) or math.isinf(data):
            raise ValueError(
                f"Cannot serialize non-finite float value: {data!r}. "
                "NaN and Infinity are not valid JSON."
            )
        return data
    elif isinstance(data, datetime):
        return data.isoformat()
    elif isinstance(data, dict):
        return {_sanitize_for_json(k): _sanitize_for_json(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [_sanitize_for_json(item) for item in data]
    else:
        return data


def canonical_json(data: Any) -> str:
    """Produce deterministic JSON representation for hashing.

    The output is sorted by key (recursively), compact, not ASCII-escaped,
    NFKC-normalized, and rejects non-finite floats.

    Args:
        data: Any JSON-serializable data (dict, list, str, number, bool, None)

    Returns:
        Canonical JSON string suitable for hashing.

    Raises:
        ValueError: If data contains NaN, Infinity, or -Infinity values.

    Example:
        >>> canonical_json({"b": 1, "a": 2})
        '{"a":2,"b":1}'
    """
    sanitized = _sanitize_for_json(data)

    return json.dumps(
        sanitized,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compute_entry_hash(
    entry_id: str,
    entry_type: str,
    timestamp: datetime | str,
    data: dict[str, Any],
    previous_hash: str,
) -> str:
    """Compute SHA-256 hash of an audit chain entry.

    The hash covers exactly the fields that identify and order an entry:
    - id: Entry id ("session-<session_id>" or the vote id)
    - type: "session" or "vote"
    - timestamp: Record timestamp (ISO format)
    - data: Snapshot of the record (canonical JSON)
    - previous_hash: Hash of the preceding entry

    Chain bookkeeping (chain_id, sequence) is excluded; the link through
    previous_hash already fixes an entry's position.

    Args:
        entry_id: Entry id.
        entry_type: Entry type value.
        timestamp: Record timestamp.
        data: Record snapshot.
        previous_hash: Hash of the preceding entry.

    Returns:
        Lowercase hexadecimal SHA-256 hash (64 characters).
    """
    if isinstance(timestamp, datetime):
        timestamp = timestamp.isoformat()

    hashable: dict[str, Any] = {
        "id": entry_id,
        "type": entry_type,
        "timestamp": timestamp,
        "data": data,
        "previous_hash": previous_hash,
    }

    canonical = canonical_json(hashable)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def is_valid_sha256_hex(value: str) -> bool:
    """Check if a string is a valid lowercase SHA-256 hexadecimal hash."""
    if len(value) != 64:
        return False
    try:
        int(value, 16)
        return value == value.lower()
    except ValueError:
        return False
