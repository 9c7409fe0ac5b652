"""Tests for audit logger module."""

import json
import threading
from pathlib import Path

import jsonschema
import pytest

from recdedup.audit.logger import AuditLogger
from recdedup.audit.models import LOG_EVENT_SCHEMA


@pytest.fixture
def logger(tmp_path: Path) -> AuditLogger:
    """Create a logger that auto-closes after test."""
    lg = AuditLogger(run_id="test_run", log_path=tmp_path / "events.jsonl")
    yield lg
    lg.close()


def _read_events(path: Path) -> list[dict]:
    """Read all JSONL events from file."""
    with path.open() as f:
        return [json.loads(line) for line in f if line.strip()]


@pytest.mark.unit
def test_logger_init_creates_file(logger: AuditLogger) -> None:
    """Test logger creates the log file and sets initial state."""
    assert logger.log_path.exists()
    assert logger.current_stage is None
    assert logger.run_id == "test_run"
    assert logger.min_level == "INFO"


@pytest.mark.unit
def test_logger_event_writes_valid_jsonl(logger: AuditLogger) -> None:
    """Test event() writes a valid JSONL line with correct envelope."""
    logger.event("test_event", data={"key": "value"}, level="WARN", rid="lib1.1")

    events = _read_events(logger.log_path)

    assert len(events) == 1
    evt = events[0]
    jsonschema.validate(instance=evt, schema=LOG_EVENT_SCHEMA)
    assert evt["run_id"] == "test_run"
    assert evt["event"] == "test_event"
    assert evt["level"] == "WARN"
    assert evt["data"] == {"key": "value"}
    assert evt["rid"] == "lib1.1"
    assert evt["ts"].endswith("Z")


@pytest.mark.unit
def test_logger_stage_context_inheritance(logger: AuditLogger) -> None:
    """Test stage set via set_stage propagates to events."""
    logger.set_stage("deduplicate")
    logger.event("ev1")
    logger.event("ev2", stage="override")
    logger.set_stage(None)
    logger.event("ev3")

    events = _read_events(logger.log_path)

    assert events[0]["stage"] == "deduplicate"
    assert events[1]["stage"] == "override"
    assert events[2]["stage"] is None


@pytest.mark.unit
@pytest.mark.parametrize(
    ("method", "kwargs", "expected_event", "expected_level"),
    [
        ("run_started", {"command": ["recdedup"], "parameters": {"k": 1}}, "run_started", "INFO"),
        ("run_finished", {"status": "success", "duration_seconds": 1.5}, "run_finished", "INFO"),
        ("stage_started", {"stage": "s1", "source_id": "lib1"}, "stage_started", "INFO"),
        (
            "stage_finished",
            {"stage": "s1", "duration_seconds": 2.0, "counters": {"n": 5}},
            "stage_finished",
            "INFO",
        ),
        ("progress", {"processed": 10, "rate": 3.25, "failed": 0}, "progress", "INFO"),
        ("error", {"exception_class": "ValueError", "message": "bad"}, "error", "ERROR"),
    ],
)
def test_logger_convenience_methods(
    logger: AuditLogger,
    method: str,
    kwargs: dict,
    expected_event: str,
    expected_level: str,
) -> None:
    """Test all convenience methods produce correct event type and level."""
    getattr(logger, method)(**kwargs)

    events = _read_events(logger.log_path)

    assert len(events) == 1
    assert events[0]["event"] == expected_event
    assert events[0]["level"] == expected_level
    jsonschema.validate(instance=events[0], schema=LOG_EVENT_SCHEMA)


@pytest.mark.unit
def test_stage_started_sets_current_stage(logger: AuditLogger) -> None:
    """Test stage_started makes the stage the context of later events."""
    logger.stage_started("deduplicate", source_id="lib1")
    logger.event("after")

    events = _read_events(logger.log_path)

    assert events[0]["data"] == {"source_id": "lib1"}
    assert events[1]["stage"] == "deduplicate"


@pytest.mark.unit
def test_progress_rounds_rate(logger: AuditLogger) -> None:
    """Test progress payload carries counters and a rounded rate."""
    logger.progress(1000, 123.456, deduplicated=12, failed=1)

    data = _read_events(logger.log_path)[0]["data"]

    assert data == {
        "processed": 1000,
        "records_per_sec": 123.5,
        "deduplicated": 12,
        "failed": 1,
    }


@pytest.mark.unit
def test_error_includes_traceback_only_when_given(logger: AuditLogger) -> None:
    """Test error events carry the traceback when one is supplied."""
    logger.error("KeyError", "missing", rid="lib1.1")
    logger.error("KeyError", "missing", traceback="Traceback ...")

    first, second = _read_events(logger.log_path)

    assert "traceback" not in first["data"]
    assert first["rid"] == "lib1.1"
    assert second["data"]["traceback"] == "Traceback ..."


@pytest.mark.unit
def test_logger_min_level_filters_events(tmp_path: Path) -> None:
    """Test events below the minimum level are not written."""
    log_path = tmp_path / "events.jsonl"

    with AuditLogger(run_id="r1", log_path=log_path, min_level="WARN") as lg:
        assert not lg.enabled_for("INFO")
        assert lg.enabled_for("ERROR")
        lg.event("debug", level="DEBUG")
        lg.event("info")
        lg.event("warn", level="WARN")
        lg.error("ValueError", "bad")

    assert [e["event"] for e in _read_events(log_path)] == ["warn", "error"]


@pytest.mark.unit
def test_logger_rejects_unknown_level(tmp_path: Path) -> None:
    """Test an unknown minimum level raises ValueError."""
    with pytest.raises(ValueError, match="Unknown log level"):
        AuditLogger(run_id="r1", log_path=tmp_path / "events.jsonl", min_level="TRACE")


@pytest.mark.unit
def test_logger_multiple_events_appended(logger: AuditLogger) -> None:
    """Test multiple events are appended as separate lines."""
    for i in range(3):
        logger.event(f"ev_{i}")

    events = _read_events(logger.log_path)
    assert [e["event"] for e in events] == ["ev_0", "ev_1", "ev_2"]


@pytest.mark.unit
def test_logger_concurrent_writes_keep_lines_intact(logger: AuditLogger) -> None:
    """Test events written from several threads never interleave."""

    def write(worker: int) -> None:
        for i in range(50):
            logger.event("tick", data={"worker": worker, "i": i}, rid=f"lib{worker}.{i}")

    threads = [threading.Thread(target=write, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    events = _read_events(logger.log_path)

    assert len(events) == 200
    assert {(e["data"]["worker"], e["data"]["i"]) for e in events} == {
        (w, i) for w in range(4) for i in range(50)
    }


@pytest.mark.unit
def test_logger_close_and_context_manager(tmp_path: Path) -> None:
    """Test close() flushes and context manager auto-closes."""
    log_path = tmp_path / "events.jsonl"

    with AuditLogger(run_id="r1", log_path=log_path) as lg:
        lg.event("inside")

    # After __exit__, file should be closed and content readable
    events = _read_events(log_path)
    assert len(events) == 1

    # Second logger can append to same file
    with AuditLogger(run_id="r2", log_path=log_path) as lg2:
        lg2.event("second")

    events = _read_events(log_path)
    assert len(events) == 2
    assert events[0]["run_id"] == "r1"
    assert events[1]["run_id"] == "r2"


@pytest.mark.unit
def test_logger_close_is_idempotent(tmp_path: Path) -> None:
    """Test closing twice does not raise."""
    lg = AuditLogger(run_id="r1", log_path=tmp_path / "events.jsonl")
    lg.close()
    lg.close()


@pytest.mark.unit
def test_logger_creates_parent_directories(tmp_path: Path) -> None:
    """Test logger creates nested parent directories."""
    nested = tmp_path / "a" / "b" / "events.jsonl"
    lg = AuditLogger(run_id="test", log_path=nested)
    lg.event("test")
    lg.close()

    assert nested.exists()
    assert len(_read_events(nested)) == 1
