"""Structured event logging for dedup runs.

Main Components
---------------
- AuditLogger: JSONL event logger shared by the dedup components
- LogEvent: event envelope
"""

from recdedup.audit.helpers import generate_run_id, get_package_version
from recdedup.audit.logger import AuditLogger
from recdedup.audit.models import LOG_EVENT_SCHEMA, LOG_LEVELS, LogEvent

__all__ = [
    "AuditLogger",
    "LogEvent",
    "LOG_EVENT_SCHEMA",
    "LOG_LEVELS",
    "generate_run_id",
    "get_package_version",
]
