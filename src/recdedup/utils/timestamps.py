"""Timestamp utilities for recdedup.

Stored records and dedup groups carry ISO8601 UTC strings so that both the
in-memory and the SQLite store can persist them as plain JSON.
"""

import time
from datetime import UTC, datetime

__all__ = ["get_iso_timestamp", "seconds_since"]


def get_iso_timestamp() -> str:
    """Get current UTC timestamp in ISO8601 format with microseconds.

    Returns
    -------
    str
        ISO8601 timestamp with microseconds (e.g., "2026-02-03T12:34:56.123456Z").
    """
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def seconds_since(start: float) -> float:
    """Return wall-clock seconds elapsed since a ``time.perf_counter()`` reading.

    Parameters
    ----------
    start : float
        Value previously returned by ``time.perf_counter()``.

    Returns
    -------
    float
        Elapsed seconds.
    """
    return time.perf_counter() - start
