"""Data models for structured dedup event logging."""

from dataclasses import dataclass
from typing import Any

__all__ = ["LOG_EVENT_SCHEMA", "LOG_LEVELS", "LogEvent"]

# Ordered from most to least verbose
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARN", "ERROR")


@dataclass
class LogEvent:
    """Structured log event.

    Attributes
    ----------
    ts : str
        ISO8601 timestamp with microseconds (UTC).
    run_id : str
        Unique run identifier.
    level : str
        Log level ("DEBUG", "INFO", "WARN", "ERROR").
    event : str
        Event type identifier (e.g., "too_many_candidates").
    data : dict[str, Any]
        Event-specific data payload.
    stage : str | None
        Current stage identifier ("deduplicate", "check_dedup", ...).
    rid : str | None
        Record identifier if event is record-specific.
    """

    ts: str
    run_id: str
    level: str
    event: str
    data: dict[str, Any]
    stage: str | None = None
    rid: str | None = None


# JSON schema of one serialised LogEvent line
LOG_EVENT_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["ts", "run_id", "level", "event", "data", "stage", "rid"],
    "additionalProperties": False,
    "properties": {
        "ts": {"type": "string", "pattern": "Z$"},
        "run_id": {"type": "string", "minLength": 1},
        "level": {"enum": list(LOG_LEVELS)},
        "event": {"type": "string", "minLength": 1},
        "data": {"type": "object"},
        "stage": {"type": ["string", "null"]},
        "rid": {"type": ["string", "null"]},
    },
}
