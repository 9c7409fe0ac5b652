"""Batch dedup runner.

Processes every record flagged ``update_needed`` in the dedup-enabled
sources: refreshes its candidate keys, then deduplicates it. Records
are independent units of work and run on a thread pool; a record whose
evaluation raises is logged and counted, and the run moves on.
"""

import time
import traceback
from collections.abc import Iterable, Iterator, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any

from recdedup.audit.logger import AuditLogger
from recdedup.candidates.hot_keys import HotKeyCache
from recdedup.engine.config import ConfigError, DedupConfig, RunResult
from recdedup.engine.handler import DedupHandler
from recdedup.models.records import KEY_FIELDS, Record
from recdedup.store.base import Store
from recdedup.utils import seconds_since

__all__ = [
    "import_records",
    "mark_for_update",
    "run_check_dedup",
    "run_deduplication",
]

_STAGE_DEDUP = "deduplicate"
_STAGE_CHECK = "check_dedup"


@dataclass
class _Outcome:
    """Result of evaluating one record on a worker."""

    record_id: str
    matched: bool = False
    seconds: float = 0.0
    skipped: bool = False
    error: Exception | None = None
    traceback: str | None = None


# ---------------------------------------------------------------------------
# Record-level work
# ---------------------------------------------------------------------------


def _process_record(handler: DedupHandler, record_id: str, force: bool) -> _Outcome:
    """Refresh keys of one record and deduplicate it; never raises."""
    start = time.perf_counter()
    try:
        record = handler.store.get_record(record_id)
        # Another worker may already have linked this record
        if record is None or not (force or record.update_needed):
            return _Outcome(record_id, skipped=True, seconds=seconds_since(start))

        if not record.deleted:
            record, changed = handler.update_dedup_candidate_keys(record)
            if changed:
                handler.store.update_records(
                    {"id": record.id},
                    {k: getattr(record, k) for k in KEY_FIELDS if getattr(record, k)},
                    [k for k in KEY_FIELDS if not getattr(record, k)],
                )

        matched = handler.dedup_record(record)
        return _Outcome(record_id, matched=matched, seconds=seconds_since(start))
    except Exception as e:
        return _Outcome(
            record_id,
            seconds=seconds_since(start),
            error=e,
            traceback=traceback.format_exc(),
        )


def _run_parallel(
    handler: DedupHandler,
    record_ids: Iterable[str],
    workers: int,
    force: bool,
) -> Iterator[_Outcome]:
    """Evaluate records on a thread pool, keeping a bounded backlog."""
    if workers <= 1:
        for record_id in record_ids:
            yield _process_record(handler, record_id, force)
        return

    backlog = workers * 4
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dedup") as pool:
        pending: set[Future[_Outcome]] = set()
        for record_id in record_ids:
            pending.add(pool.submit(_process_record, handler, record_id, force))
            if len(pending) >= backlog:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    yield future.result()
        for future in pending:
            yield future.result()


def _collect(
    outcomes: Iterable[_Outcome],
    result: RunResult,
    config: DedupConfig,
    logger: AuditLogger | None,
) -> None:
    """Fold worker outcomes into counters and log per-record events."""
    start = time.perf_counter()
    for outcome in outcomes:
        if outcome.skipped:
            continue
        result.processed += 1
        if outcome.error is not None:
            result.failed += 1
            if logger:
                logger.error(
                    type(outcome.error).__name__,
                    str(outcome.error),
                    rid=outcome.record_id,
                    traceback=outcome.traceback,
                )
        elif outcome.matched:
            result.deduplicated += 1

        if outcome.seconds > config.slow_record_seconds:
            result.slow += 1
            if logger:
                logger.event(
                    "slow_record",
                    data={"seconds": round(outcome.seconds, 3)},
                    rid=outcome.record_id,
                )

        if logger and result.processed % config.progress_interval == 0:
            elapsed = seconds_since(start)
            logger.progress(
                result.processed,
                result.processed / elapsed if elapsed > 0 else 0.0,
                deduplicated=result.deduplicated,
                failed=result.failed,
            )


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def import_records(
    store: Store,
    documents: Iterable[Mapping[str, Any]],
    logger: AuditLogger | None = None,
) -> int:
    """Store harvested records and flag them for deduplication.

    An existing record keeps its ``dedup_id``, candidate keys and
    ``created`` timestamp; its metadata and flags are replaced. A record
    without a ``linking_id`` is linked by its own id.

    Parameters
    ----------
    store : Store
        Target store.
    documents : Iterable[Mapping[str, Any]]
        Record documents (``id``, ``source_id``, ``format`` and payload).
    logger : AuditLogger | None, optional
        Event logger.

    Returns
    -------
    int
        Number of records stored.

    Raises
    ------
    ValueError
        If a document lacks ``id``, ``source_id`` or ``format``.
    """
    count = 0
    for doc in documents:
        missing = [k for k in ("id", "source_id", "format") if not doc.get(k)]
        if missing:
            raise ValueError(f"Record document missing required fields: {', '.join(missing)}")
        record = Record.from_dict(dict(doc))
        now = store.get_timestamp()
        existing = store.get_record(record.id)
        if existing is not None:
            record.dedup_id = existing.dedup_id
            record.created = existing.created
            record.title_keys = existing.title_keys
            record.isbn_keys = existing.isbn_keys
            record.id_keys = existing.id_keys
        record.linking_id = record.linking_id or record.id
        record.created = record.created or now
        record.updated = now
        record.update_needed = True
        store.save_record(record)
        count += 1

    if logger:
        logger.event("records_imported", data={"count": count})
    return count


def mark_for_update(store: Store, source_id: str | None = None) -> int:
    """Flag live records for re-deduplication.

    Parameters
    ----------
    store : Store
        Record store.
    source_id : str | None, optional
        Restrict to one source.

    Returns
    -------
    int
        Number of records flagged.
    """
    query: dict[str, Any] = {"deleted": False}
    if source_id is not None:
        query["source_id"] = source_id
    return store.update_records(query, {"update_needed": True})


def run_deduplication(
    store: Store,
    config: DedupConfig,
    *,
    source_id: str | None = None,
    all_records: bool = False,
    single_id: str | None = None,
    mark_only: bool = False,
    workers: int = 1,
    logger: AuditLogger | None = None,
    hot_keys: HotKeyCache | None = None,
) -> RunResult:
    """Deduplicate flagged records of every dedup-enabled source.

    Parameters
    ----------
    store : Store
        Record and group store.
    config : DedupConfig
        Dedup configuration.
    source_id : str | None, optional
        Process only this source.
    all_records : bool, optional
        Flag every live record of the processed sources first.
    single_id : str | None, optional
        Process only this record, whether flagged or not.
    mark_only : bool, optional
        Flag records of the processed sources and stop.
    workers : int, optional
        Worker threads.
    logger : AuditLogger | None, optional
        Event logger.
    hot_keys : HotKeyCache | None, optional
        Hot-key cache to reuse across runs.

    Returns
    -------
    RunResult
        Run counters.

    Raises
    ------
    ConfigError
        If ``source_id`` is not a dedup-enabled source or ``workers`` < 1.
    ValueError
        If ``single_id`` does not exist.
    """
    if workers < 1:
        raise ConfigError(f"workers must be >= 1, got {workers}")
    if source_id is not None and not config.dedup_enabled(source_id):
        raise ConfigError(f"Source {source_id!r} is not configured for deduplication")

    start = time.perf_counter()
    result = RunResult()
    handler = DedupHandler(store, config, logger, hot_keys)

    if single_id is not None:
        if store.get_record(single_id) is None:
            raise ValueError(f"Record not found: {single_id}")
        if logger:
            logger.stage_started(_STAGE_DEDUP)
        _collect([_process_record(handler, single_id, force=True)], result, config, logger)
    else:
        if source_id is not None:
            sources = [source_id]
        else:
            sources = [s for s in config.sources if config.dedup_enabled(s)]
        for source in sources:
            stage_start = time.perf_counter()
            if logger:
                logger.stage_started(_STAGE_DEDUP, source_id=source)
            if all_records or mark_only:
                marked = mark_for_update(store, source)
                if logger:
                    logger.event("records_marked", data={"source_id": source, "count": marked})
            if mark_only:
                continue
            flagged = store.find_records({"source_id": source, "update_needed": True})
            record_ids = (r.id for r in flagged)
            _collect(_run_parallel(handler, record_ids, workers, False), result, config, logger)
            if logger:
                logger.stage_finished(
                    _STAGE_DEDUP,
                    seconds_since(stage_start),
                    counters={"processed": result.processed, "deduplicated": result.deduplicated},
                )

    result.duration_seconds = seconds_since(start)
    result.success = result.failed == 0
    return result


def run_check_dedup(
    store: Store,
    config: DedupConfig,
    *,
    strict: bool = False,
    logger: AuditLogger | None = None,
) -> RunResult:
    """Verify every live dedup group and every record link.

    Parameters
    ----------
    store : Store
        Record and group store.
    config : DedupConfig
        Dedup configuration (used by strict re-matching).
    strict : bool, optional
        Re-run the match cascade between group members.
    logger : AuditLogger | None, optional
        Event logger.

    Returns
    -------
    RunResult
        ``processed`` counts groups and linked records checked; ``fixes``
        holds one line per repair.
    """
    start = time.perf_counter()
    result = RunResult()
    handler = DedupHandler(store, config, logger)
    if logger:
        logger.stage_started(_STAGE_CHECK)

    for group in store.find_dedups({"deleted": False}):
        result.processed += 1
        result.fixes.extend(handler.check_dedup_record(group, strict=strict))

    for record in store.find_records({"dedup_id": {"$exists": True}}):
        result.processed += 1
        fix = handler.check_record_links(record)
        if fix:
            result.fixes.append(fix)

    result.duration_seconds = seconds_since(start)
    if logger:
        logger.stage_finished(
            _STAGE_CHECK,
            result.duration_seconds,
            counters={"checked": result.processed, "fixed": len(result.fixes)},
        )
    return result
