"""Integration tests for record-level deduplication through the handler."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from recdedup.audit import AuditLogger
from recdedup.engine import DedupConfig, DedupHandler
from recdedup.models import Record
from recdedup.store import MemoryStore

ISBN = "9780201633610"


@pytest.fixture
def book(make_record: Callable[..., Record]) -> Callable[..., Record]:
    """Factory for copies of the same book held by different sources."""

    def _factory(rid: str, **overrides: object) -> Record:
        fields = {"title": "Design patterns", "author": "Gamma, Erich", "isbns": [ISBN]}
        fields.update(overrides)
        return make_record(rid, **fields)

    return _factory


def _live_groups(store: MemoryStore) -> list:
    return list(store.find_dedups({"deleted": False}))


def _assert_group_invariant(store: MemoryStore) -> None:
    for group in _live_groups(store):
        assert len(group.ids) >= 2
        sources = [store.get_record(rid).source_id for rid in group.ids]
        assert len(sources) == len(set(sources))
        for record_id in group.ids:
            assert store.get_record(record_id).dedup_id == group.id


def _read_events(path: Path) -> list[dict]:
    with path.open() as f:
        return [json.loads(line) for line in f if line.strip()]


@pytest.mark.integration
def test_new_duplicate_creates_group(
    store: MemoryStore,
    handler: DedupHandler,
    book: Callable[..., Record],
    save_record: Callable[[Record], Record],
) -> None:
    """Test a record matching an ungrouped candidate forms a new group."""
    save_record(book("lib2.1"))
    record = save_record(book("lib1.1"))

    assert handler.dedup_record(record)

    (group,) = _live_groups(store)
    assert sorted(group.ids) == ["lib1.1", "lib2.1"]
    for rid in group.ids:
        assert not store.get_record(rid).update_needed
    _assert_group_invariant(store)


@pytest.mark.integration
def test_third_duplicate_joins_group(
    store: MemoryStore,
    handler: DedupHandler,
    book: Callable[..., Record],
    save_record: Callable[[Record], Record],
    make_group: Callable[..., str],
) -> None:
    """Test a record matching a grouped candidate joins that group."""
    save_record(book("lib1.1"))
    save_record(book("lib2.1"))
    dedup_id = make_group("lib1.1", "lib2.1")
    record = save_record(book("lib3.1"))

    assert handler.dedup_record(record)

    assert sorted(store.get_dedup(dedup_id).ids) == ["lib1.1", "lib2.1", "lib3.1"]
    assert len(_live_groups(store)) == 1
    _assert_group_invariant(store)


@pytest.mark.integration
def test_record_no_longer_matching_leaves_group(
    store: MemoryStore,
    handler: DedupHandler,
    book: Callable[..., Record],
    make_record: Callable[..., Record],
    save_record: Callable[[Record], Record],
    make_group: Callable[..., str],
) -> None:
    """Test an edited record leaves its group, dissolving a pair."""
    save_record(book("lib1.1"))
    save_record(book("lib2.1"))
    dedup_id = make_group("lib1.1", "lib2.1")
    edited = save_record(make_record("lib1.1", title="Something else", dedup_id=dedup_id))

    assert not handler.dedup_record(edited)

    group = store.get_dedup(dedup_id)
    assert group.deleted
    assert group.ids == []
    leaver = store.get_record("lib1.1")
    assert leaver.dedup_id is None
    assert not leaver.update_needed
    survivor = store.get_record("lib2.1")
    assert survivor.dedup_id is None
    assert survivor.update_needed


@pytest.mark.integration
def test_leaving_larger_group_flags_remaining_members(
    store: MemoryStore,
    handler: DedupHandler,
    book: Callable[..., Record],
    make_record: Callable[..., Record],
    save_record: Callable[[Record], Record],
    make_group: Callable[..., str],
) -> None:
    """Test the rest of a group is flagged when a member leaves."""
    for rid in ("lib1.1", "lib2.1", "lib3.1"):
        save_record(book(rid))
    dedup_id = make_group("lib1.1", "lib2.1", "lib3.1")
    edited = save_record(make_record("lib3.1", title="Something else", dedup_id=dedup_id))

    assert not handler.dedup_record(edited)

    group = store.get_dedup(dedup_id)
    assert not group.deleted
    assert sorted(group.ids) == ["lib1.1", "lib2.1"]
    assert store.get_record("lib1.1").update_needed
    assert store.get_record("lib2.1").update_needed
    _assert_group_invariant(store)


@pytest.mark.integration
def test_repeated_dedup_is_idempotent(
    store: MemoryStore,
    handler: DedupHandler,
    book: Callable[..., Record],
    save_record: Callable[[Record], Record],
) -> None:
    """Test deduplicating grouped records again keeps the same group."""
    save_record(book("lib2.1"))
    handler.dedup_record(save_record(book("lib1.1")))
    (group,) = _live_groups(store)
    stamps = {rid: store.get_record(rid).updated for rid in ("lib1.1", "lib2.1")}

    for rid in ("lib1.1", "lib2.1", "lib1.1"):
        assert handler.dedup_record(store.get_record(rid))

    (again,) = _live_groups(store)
    assert again.id == group.id
    assert sorted(again.ids) == ["lib1.1", "lib2.1"]
    assert again.changed == group.changed
    for rid, updated in stamps.items():
        assert store.get_record(rid).updated == updated


@pytest.mark.integration
@pytest.mark.parametrize("flag", ["deleted", "suppressed"])
def test_deleted_or_suppressed_record_is_unlinked(
    store: MemoryStore,
    handler: DedupHandler,
    book: Callable[..., Record],
    save_record: Callable[[Record], Record],
    make_group: Callable[..., str],
    flag: str,
) -> None:
    """Test removed records leave their group and are never matched."""
    save_record(book("lib1.1"))
    save_record(book("lib2.1"))
    dedup_id = make_group("lib1.1", "lib2.1")
    store.update_records({"id": "lib1.1"}, {flag: True, "update_needed": True})

    assert not handler.dedup_record(store.get_record("lib1.1"))

    assert store.get_dedup(dedup_id).deleted
    assert store.get_record("lib1.1").dedup_id is None
    assert not store.get_record("lib1.1").update_needed
    # The survivor finds no live partner
    assert not handler.dedup_record(store.get_record("lib2.1"))
    assert _live_groups(store) == []


@pytest.mark.integration
def test_source_without_dedup_is_unlinked(
    store: MemoryStore,
    book: Callable[..., Record],
    save_record: Callable[[Record], Record],
    make_group: Callable[..., str],
) -> None:
    """Test records of a source with dedup disabled are pulled out of groups."""
    config = DedupConfig(sources={"lib1": {}, "lib2": {"dedup": False}})
    handler = DedupHandler(store, config)
    save_record(book("lib1.1"))
    save_record(book("lib2.1"))
    dedup_id = make_group("lib1.1", "lib2.1")

    assert not handler.dedup_record(store.get_record("lib2.1"))

    assert store.get_dedup(dedup_id).deleted
    assert not handler.dedup_record(store.get_record("lib1.1"))
    assert _live_groups(store) == []


@pytest.mark.integration
def test_unreadable_candidate_is_skipped(
    store: MemoryStore,
    config: DedupConfig,
    book: Callable[..., Record],
    save_record: Callable[[Record], Record],
    tmp_path: Path,
) -> None:
    """Test a candidate with a broken payload is logged and not matched."""
    store.save_record(
        Record(
            id="lib2.9",
            source_id="lib2",
            format="canonical",
            original_data="{broken",
            isbn_keys=[ISBN],
        )
    )
    record = save_record(book("lib1.1"))
    log_path = tmp_path / "events.jsonl"

    with AuditLogger("test_run", log_path) as logger:
        assert not DedupHandler(store, config, logger).dedup_record(record)

    events = [e for e in _read_events(log_path) if e["event"] == "candidate_unreadable"]
    assert len(events) == 1
    assert events[0]["level"] == "WARN"
    assert events[0]["rid"] == "lib1.1"
    assert events[0]["data"]["candidate"] == "lib2.9"
    assert _live_groups(store) == []


@pytest.mark.integration
def test_match_by_title_and_author(
    store: MemoryStore,
    handler: DedupHandler,
    make_record: Callable[..., Record],
    save_record: Callable[[Record], Record],
) -> None:
    """Test records without shared identifiers match on title and author."""
    save_record(make_record("lib2.1", title="The Design Patterns", author="Gamma, E.", nonfiling=4))
    record = save_record(make_record("lib1.1", title="Design patterns.", author="Gamma, Erich"))

    assert handler.dedup_record(record)
    assert store.get_record("lib2.1").dedup_id == store.get_record("lib1.1").dedup_id


@pytest.mark.integration
def test_no_candidates_clears_update_flag(
    store: MemoryStore,
    handler: DedupHandler,
    book: Callable[..., Record],
    save_record: Callable[[Record], Record],
) -> None:
    """Test a record without duplicates is left ungrouped and unflagged."""
    record = save_record(book("lib1.1"))

    assert not handler.dedup_record(record)

    stored = store.get_record("lib1.1")
    assert stored.dedup_id is None
    assert not stored.update_needed
