"""Structured audit logger for JSONL event logging.

Provides append-only structured event logging to JSONL files with
a persistent file handle. Dedup workers share one logger, so writes
are serialised with a lock.
"""

import json
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any

from recdedup.audit.models import LOG_LEVELS, LogEvent
from recdedup.utils import get_iso_timestamp

__all__ = ["AuditLogger"]


class AuditLogger:
    """JSONL audit logger with persistent file handle.

    Writes structured log events to a JSONL file (one JSON object per line).
    Events below ``min_level`` are dropped before serialisation.

    Attributes
    ----------
    run_id : str
        Unique run identifier.
    log_path : Path
        Path to JSONL log file.
    min_level : str
        Least severe level that is written.
    current_stage : str | None
        Current stage name for context.
    """

    def __init__(self, run_id: str, log_path: Path, min_level: str = "INFO") -> None:
        """Initialize audit logger and open file handle.

        Parameters
        ----------
        run_id : str
            Unique run identifier.
        log_path : Path
            Path to JSONL log file.
        min_level : str, optional
            Least severe level to write, by default "INFO".

        Raises
        ------
        ValueError
            If ``min_level`` is not a known level.
        """
        if min_level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {min_level!r}. Valid levels: {LOG_LEVELS}")

        self.run_id = run_id
        self.log_path = log_path
        self.min_level = min_level
        self.current_stage: str | None = None
        self._lock = threading.Lock()

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.log_path.open("a", encoding="utf-8")

    def __enter__(self) -> "AuditLogger":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager and close file."""
        self.close()

    def close(self) -> None:
        """Flush and close the log file handle."""
        with self._lock:
            if not self._file.closed:
                self._file.flush()
                self._file.close()

    def set_stage(self, stage: str | None) -> None:
        """Set current stage context.

        Parameters
        ----------
        stage : str | None
            Stage name or None to clear.
        """
        self.current_stage = stage

    def enabled_for(self, level: str) -> bool:
        """Return True when events of ``level`` would be written."""
        return LOG_LEVELS.index(level) >= LOG_LEVELS.index(self.min_level)

    def event(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        level: str = "INFO",
        stage: str | None = None,
        rid: str | None = None,
    ) -> None:
        """Write structured event to log.

        Parameters
        ----------
        event_type : str
            Event type identifier (e.g., "dangling_reference").
        data : dict[str, Any] | None, optional
            Event-specific data payload.
        level : str, optional
            Log level ("DEBUG", "INFO", "WARN", "ERROR").
        stage : str | None, optional
            Stage identifier, uses current_stage if not provided.
        rid : str | None, optional
            Record identifier if event is record-specific.
        """
        if not self.enabled_for(level):
            return

        if data is None:
            data = {}

        if stage is None:
            stage = self.current_stage

        log_event = LogEvent(
            ts=get_iso_timestamp(),
            run_id=self.run_id,
            level=level,
            event=event_type,
            data=data,
            stage=stage,
            rid=rid,
        )

        self._write_event(log_event)

    def _write_event(self, event: LogEvent) -> None:
        """Write event to JSONL file and flush."""
        line = json.dumps(asdict(event), ensure_ascii=False, separators=(",", ":"), default=str)
        with self._lock:
            self._file.write(line)
            self._file.write("\n")
            self._file.flush()

    def run_started(self, command: list[str], parameters: dict[str, Any]) -> None:
        """Log run_started event.

        Parameters
        ----------
        command : list[str]
            Command-line arguments.
        parameters : dict[str, Any]
            Configuration parameters.
        """
        self.event(
            "run_started",
            data={"command": command, "parameters": parameters},
        )

    def run_finished(
        self,
        status: str,
        duration_seconds: float,
        records_processed: int | None = None,
    ) -> None:
        """Log run_finished event.

        Parameters
        ----------
        status : str
            Run status ("success", "failed", "partial", "interrupted").
        duration_seconds : float
            Total execution time in seconds.
        records_processed : int | None, optional
            Total records processed.
        """
        data: dict[str, Any] = {
            "status": status,
            "duration_seconds": duration_seconds,
        }
        if records_processed is not None:
            data["records_processed"] = records_processed

        self.event("run_finished", data=data)

    def stage_started(self, stage: str, source_id: str | None = None) -> None:
        """Log stage_started event and make ``stage`` the current context.

        Parameters
        ----------
        stage : str
            Stage identifier.
        source_id : str | None, optional
            Data source the stage is working on.
        """
        self.set_stage(stage)

        data: dict[str, Any] = {}
        if source_id is not None:
            data["source_id"] = source_id

        self.event("stage_started", data=data, stage=stage)

    def stage_finished(
        self,
        stage: str,
        duration_seconds: float,
        counters: dict[str, int] | None = None,
    ) -> None:
        """Log stage_finished event.

        Parameters
        ----------
        stage : str
            Stage identifier.
        duration_seconds : float
            Stage execution time in seconds.
        counters : dict[str, int] | None, optional
            Stage-specific counters.
        """
        data: dict[str, Any] = {"duration_seconds": duration_seconds}
        if counters:
            data["counters"] = counters

        self.event("stage_finished", data=data, stage=stage)

    def progress(self, processed: int, rate: float, **counters: int) -> None:
        """Log a periodic progress event.

        Parameters
        ----------
        processed : int
            Records processed so far.
        rate : float
            Records per second since the stage started.
        **counters : int
            Additional stage counters (e.g., ``deduplicated``).
        """
        data: dict[str, Any] = {"processed": processed, "records_per_sec": round(rate, 1)}
        data.update(counters)
        self.event("progress", data=data)

    def error(
        self,
        exception_class: str,
        message: str,
        stage: str | None = None,
        rid: str | None = None,
        traceback: str | None = None,
    ) -> None:
        """Log error event.

        Parameters
        ----------
        exception_class : str
            Exception class name.
        message : str
            Error message.
        stage : str | None, optional
            Stage where error occurred.
        rid : str | None, optional
            Record identifier if error is record-specific.
        traceback : str | None, optional
            Stack trace (only in debug mode).
        """
        data: dict[str, Any] = {
            "exception_class": exception_class,
            "message": message,
        }
        if traceback is not None:
            data["traceback"] = traceback

        self.event("error", data=data, stage=stage, level="ERROR", rid=rid)
