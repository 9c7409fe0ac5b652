"""Dedup group maintenance.

Main Components
---------------
- DedupGroupManager: group lifecycle, linking and integrity checks
- ComponentPartDeduplicator: all-or-nothing linking of component parts
"""

from recdedup.clustering.components import ComponentPartDeduplicator
from recdedup.clustering.groups import DedupGroupManager

__all__ = [
    "DedupGroupManager",
    "ComponentPartDeduplicator",
]
