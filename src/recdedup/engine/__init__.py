"""Dedup orchestration engine.

This package provides the per-record handler, the batch runner and the
configuration and result types they share.
"""

from recdedup.engine.config import (
    ConfigError,
    DedupConfig,
    RunResult,
    SourceSettings,
    load_config,
)
from recdedup.engine.handler import DedupHandler
from recdedup.engine.runner import (
    import_records,
    mark_for_update,
    run_check_dedup,
    run_deduplication,
)

__all__ = [
    "ConfigError",
    "DedupConfig",
    "DedupHandler",
    "RunResult",
    "SourceSettings",
    "import_records",
    "load_config",
    "mark_for_update",
    "run_check_dedup",
    "run_deduplication",
]
