"""Domain services for the governance core.

Domain services contain business logic that doesn't naturally fit in entities
or value objects. They must NOT depend on infrastructure.

Available services:
- compute_vote_weight: Vote weighting rule
- compute_results: Weighted voting results projection
"""

from src.domain.services.consensus_calculator import (
    compute_results,
    compute_vote_weight,
    consensus_percentage,
    determine_outcome,
    participation_rate,
    tally_votes,
)

__all__ = [
    "compute_results",
    "compute_vote_weight",
    "consensus_percentage",
    "determine_outcome",
    "participation_rate",
    "tally_votes",
]
