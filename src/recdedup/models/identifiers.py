"""Identifier helpers for records and dedup groups."""

import re
import uuid

_TRAILING_DIGITS_RE = re.compile(r"(\d+)$")


def new_dedup_id() -> str:
    """Generate a fresh dedup group id.

    Returns
    -------
    str
        Random UUID4 string.
    """
    return str(uuid.uuid4())


def source_from_id(record_id: str) -> str:
    """Extract the source prefix from a source-prefixed record id.

    Parameters
    ----------
    record_id : str
        Record id of the form ``"<source>.<local id>"``.

    Returns
    -------
    str
        Source id, or an empty string if the id carries no prefix.
    """
    source, sep, _ = record_id.partition(".")
    return source if sep else ""


def id_sort_key(record_id: str) -> tuple[int, int, str]:
    """Sort key that orders ids by their numeric suffix.

    Ids ending in digits sort numerically by that suffix ("part2" before
    "part10"); ids without a numeric suffix sort after them by string.

    Parameters
    ----------
    record_id : str
        Record id.

    Returns
    -------
    tuple[int, int, str]
        Sortable key.
    """
    match = _TRAILING_DIGITS_RE.search(record_id)
    if match:
        return (0, int(match.group(1)), record_id)
    return (1, 0, record_id)
