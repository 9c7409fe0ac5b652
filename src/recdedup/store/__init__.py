"""Document stores for records and dedup groups.

Main Components
---------------
- Store: protocol consumed by the dedup engine
- MemoryStore: in-process store for tests and small runs
- SQLiteStore: file-backed store with per-thread connections
"""

from recdedup.store.base import INDEXED_FIELDS, Filter, Store, matches_filter
from recdedup.store.memory import MemoryStore
from recdedup.store.sqlite import SQLiteStore

__all__ = [
    "Store",
    "Filter",
    "INDEXED_FIELDS",
    "matches_filter",
    "MemoryStore",
    "SQLiteStore",
]
