"""Candidate lookup for duplicate detection.

Main Components
---------------
- CandidateSearch: key lookups with pre-filters and scan ceilings
- HotKeyCache: per-process LRU set of keys with too many candidates
"""

from recdedup.candidates.hot_keys import HotKeyCache
from recdedup.candidates.search import KEY_TYPES, CandidateSearch

__all__ = [
    "CandidateSearch",
    "HotKeyCache",
    "KEY_TYPES",
]
