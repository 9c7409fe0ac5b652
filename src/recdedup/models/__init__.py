"""Shared data types for recdedup.

Domain-specific types live closer to their consumers:
- Audit types → recdedup.audit.models
- Match results → recdedup.scoring.matcher
"""

from recdedup.models.identifiers import id_sort_key, new_dedup_id, source_from_id
from recdedup.models.records import KEY_FIELDS, DedupGroup, Record

__all__ = [
    # Record models
    "Record",
    "DedupGroup",
    "KEY_FIELDS",
    # Identifiers
    "new_dedup_id",
    "source_from_id",
    "id_sort_key",
]
