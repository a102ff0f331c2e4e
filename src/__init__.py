"""
Agora - Proposal Governance Core

Moves proposals through a multi-phase approval pipeline, runs weighted
agent voting sessions, and records every session and vote in a
hash-chained audit ledger so decisions stay verifiable after the fact.

Guiding rules:
- Only legal (status, phase) pairs are ever persisted
- One agent, one vote; a session is terminated exactly once
- Every ledger entry is hashed when it is written, never when it is read
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
