"""Pairwise match decision.

This module implements the rule cascade that decides whether a
candidate record is a duplicate of the record being deduplicated.
"""

from recdedup.scoring.comparators import author_match, scaled_distance
from recdedup.scoring.matcher import MatchReason, MatchResult, MatchScorer

__all__ = [
    # Comparators
    "author_match",
    "scaled_distance",
    # Cascade
    "MatchScorer",
    "MatchResult",
    "MatchReason",
]
