"""Shared utility functions for recdedup."""

from recdedup.utils.timestamps import get_iso_timestamp, seconds_since

__all__ = [
    "get_iso_timestamp",
    "seconds_since",
]
