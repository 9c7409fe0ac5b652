"""Registry-based factory for metadata record instantiation.

New formats are added by extending ``FORMAT_REGISTRY``; selection by
format tag happens once per record here and nowhere else.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from recdedup.formats.base import MetadataRecord
from recdedup.formats.canonical import CanonicalRecord
from recdedup.formats.marc import MarcRecord
from recdedup.models.records import Record

# format tag → callable that returns a MetadataRecord
FORMAT_REGISTRY: dict[str, Callable[[Any], MetadataRecord]] = {
    "canonical": CanonicalRecord,
    "marc": MarcRecord,
}


def create_metadata_record(record: Record) -> MetadataRecord:
    """Instantiate the MetadataRecord variant for a stored record.

    Parameters
    ----------
    record : Record
        Stored record. ``normalized_data`` is used when present, else
        ``original_data``; a JSON string payload is decoded first.

    Returns
    -------
    MetadataRecord
        Ready-to-use metadata accessor.

    Raises
    ------
    ValueError
        If ``record.format`` is not in the registry or the payload is
        malformed.
    """
    factory = FORMAT_REGISTRY.get(record.format)
    if factory is None:
        valid = ", ".join(sorted(FORMAT_REGISTRY))
        raise ValueError(f"Unknown record format: {record.format!r}. Valid formats: {valid}")

    payload = record.metadata
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            message = f"Record {record.id} has malformed {record.format} payload: {e}"
            raise ValueError(message) from e
    if payload is None:
        payload = {}
    return factory(payload)
