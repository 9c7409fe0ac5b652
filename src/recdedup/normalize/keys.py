"""Candidate key extraction.

Derives the three candidate key categories stored on a record for
indexed lookup: a title key, normalized ISBN-13s, and other unique
identifiers.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from typing import TYPE_CHECKING

from recdedup.formats.base import MetadataRecord
from recdedup.models.records import Record
from recdedup.normalize._helpers import normalize_key

if TYPE_CHECKING:
    from recdedup.engine.config import DedupConfig

__all__ = ["create_title_key", "keys_changed", "update_candidate_keys"]


def create_title_key(
    title: str | None,
    full_title_prefixes: Sequence[str] = (),
    *,
    max_long_words: int = 3,
    max_chars: int = 35,
    full_max_chars: int = 100,
    truncate: int = 200,
) -> str:
    """Build the title candidate key.

    Words are appended one at a time until the word that makes the number
    of long words (more than 3 characters) exceed ``max_long_words`` or
    the character count exceed ``max_chars``. Titles starting with one
    of ``full_title_prefixes`` only stop once ``full_max_chars`` is
    exceeded. The concatenation is truncated to ``truncate`` characters
    and normalized.

    Parameters
    ----------
    title : str | None
        Filing title.
    full_title_prefixes : Sequence[str], optional
        Normalized title beginnings that need a longer key.
    max_long_words : int, optional
        Long word budget.
    max_chars : int, optional
        Character budget.
    full_max_chars : int, optional
        Character budget for titles with a full title prefix.
    truncate : int, optional
        Hard length limit before normalization.

    Returns
    -------
    str
        Title key, empty if the title is absent.

    Examples
    --------
    >>> create_title_key("Design Patterns: Elements of Reusable Object-Oriented Software")
    'designpatternselementsofreusable'
    """
    if not title:
        return ""

    full = False
    if full_title_prefixes:
        normalized_title = normalize_key(title)
        full = any(normalized_title.startswith(p) for p in full_title_prefixes if p)

    parts: list[str] = []
    long_words = 0
    key_len = 0
    for word in title.split(" "):
        parts.append(word)
        if len(word) > 3:
            long_words += 1
        key_len += len(word)
        if full:
            if key_len > full_max_chars:
                break
        elif long_words > max_long_words or key_len > max_chars:
            break

    return normalize_key("".join(parts)[:truncate])


def keys_changed(old: Sequence[str], new: Sequence[str]) -> bool:
    """Whether a stored key list differs from a freshly computed one."""
    return len(old) != len(new) or set(old) != set(new)


def update_candidate_keys(
    record: Record,
    metadata: MetadataRecord,
    config: DedupConfig,
) -> tuple[Record, bool]:
    """Recompute the candidate keys of a record.

    Parameters
    ----------
    record : Record
        Stored record. It is not modified.
    metadata : MetadataRecord
        Parsed metadata of ``record``.
    config : DedupConfig
        Title key budget, full title prefixes and ID key length limit.

    Returns
    -------
    tuple[Record, bool]
        Copy of the record with updated keys, and whether any key list
        changed. Empty key lists are stored as empty (and omitted from
        the stored document).
    """
    title_key = create_title_key(
        metadata.get_title(for_filing=True),
        config.full_title_prefixes,
        max_long_words=config.title_key_max_long_words,
        max_chars=config.title_key_max_chars,
        full_max_chars=config.title_key_full_max_chars,
        truncate=config.title_key_truncate,
    )
    title_keys = [title_key] if title_key else []
    isbn_keys = list(dict.fromkeys(metadata.get_isbns()))
    id_keys = list(
        dict.fromkeys(key[: config.id_key_max_length] for key in metadata.get_unique_ids())
    )

    changed = (
        keys_changed(record.title_keys, title_keys)
        or keys_changed(record.isbn_keys, isbn_keys)
        or keys_changed(record.id_keys, id_keys)
    )
    updated = dataclasses.replace(
        record,
        title_keys=title_keys,
        isbn_keys=isbn_keys,
        id_keys=id_keys,
    )
    return updated, changed
