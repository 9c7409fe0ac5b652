"""Metadata record formats.

Main Components
---------------
- MetadataRecord: read protocol consumed by key extraction and scoring
- CanonicalRecord, MarcRecord: reference formats
- create_metadata_record: registry factory
- FormatMapper: per-source format mapping
"""

from recdedup.formats.base import MetadataRecord
from recdedup.formats.canonical import CanonicalRecord
from recdedup.formats.factory import FORMAT_REGISTRY, create_metadata_record
from recdedup.formats.mapping import EMPTY_FORMAT_KEY, FormatMapper
from recdedup.formats.marc import ControlField, DataField, MarcRecord

__all__ = [
    # Protocol
    "MetadataRecord",
    # Formats
    "CanonicalRecord",
    "MarcRecord",
    "ControlField",
    "DataField",
    # Factory
    "FORMAT_REGISTRY",
    "create_metadata_record",
    # Mapping
    "FormatMapper",
    "EMPTY_FORMAT_KEY",
]
