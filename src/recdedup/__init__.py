"""Incremental deduplication of harvested bibliographic records.

This package provides:
- Data models (recdedup.models) — records and dedup groups
- Formats (recdedup.formats) — metadata access over parsed records
- Normalization (recdedup.normalize) — title, ISBN and other-ID keys
- Candidates (recdedup.candidates) — key lookups and hot-key ceilings
- Scoring (recdedup.scoring) — the rule-based match cascade
- Clustering (recdedup.clustering) — dedup groups and component parts
- Store (recdedup.store) — in-memory and SQLite document stores
- Engine (recdedup.engine) — per-record handler and batch runner
- Audit (recdedup.audit) — structured JSONL event logging
- CLI (recdedup.cli) — command-line interface
- Public API (recdedup.api) — high-level convenience functions
"""

__version__ = "0.1.0"
__license__ = "MIT"

from recdedup.api import ParseError, open_store, read_jsonl, write_jsonl
from recdedup.engine import (
    ConfigError,
    DedupConfig,
    DedupHandler,
    RunResult,
    load_config,
    run_check_dedup,
    run_deduplication,
)
from recdedup.models import DedupGroup, Record

__all__ = [
    "__version__",
    "__license__",
    "ConfigError",
    "DedupConfig",
    "DedupGroup",
    "DedupHandler",
    "ParseError",
    "Record",
    "RunResult",
    "load_config",
    "open_store",
    "read_jsonl",
    "run_check_dedup",
    "run_deduplication",
    "write_jsonl",
]
