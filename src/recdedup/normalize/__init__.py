"""Key normalization and candidate key extraction."""

from recdedup.normalize._helpers import (
    isbn10_to_13,
    normalize_for_match,
    normalize_isbn,
    normalize_issn,
    normalize_key,
    strip_accents,
)
from recdedup.normalize.keys import create_title_key, keys_changed, update_candidate_keys

__all__ = [
    "create_title_key",
    "update_candidate_keys",
    "keys_changed",
    "normalize_key",
    "normalize_for_match",
    "normalize_isbn",
    "normalize_issn",
    "isbn10_to_13",
    "strip_accents",
]
