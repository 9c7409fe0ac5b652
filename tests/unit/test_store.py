"""Tests for the in-memory and SQLite document stores.

Every behavior is checked against both implementations.
"""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from recdedup.models import DedupGroup, Record
from recdedup.store import MemoryStore, SQLiteStore, Store, matches_filter
from recdedup.store.base import indexed_lookup


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path) -> Store:
    """Each store implementation in turn."""
    if request.param == "memory":
        return MemoryStore()
    store = SQLiteStore(tmp_path / "db" / "dedup.sqlite")
    request.addfinalizer(store.close)
    return store


def _record(rid: str, **kwargs: object) -> Record:
    return Record(id=rid, source_id=rid.partition(".")[0], format="canonical", **kwargs)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    ("doc", "query", "expected"),
    [
        ({"isbn_keys": ["a", "b"]}, {"isbn_keys": "b"}, True),
        ({"isbn_keys": ["a"]}, {"isbn_keys": "b"}, False),
        ({"source_id": "lib1"}, {"source_id": {"$ne": "lib1"}}, False),
        ({"source_id": "lib2"}, {"source_id": {"$ne": "lib1"}}, True),
        ({"id": "x"}, {"id": {"$in": ["x", "y"]}}, True),
        ({}, {"suppressed": {"$in": [None, False]}}, True),
        ({"suppressed": True}, {"suppressed": {"$in": [None, False]}}, False),
        ({"dedup_id": "g"}, {"dedup_id": {"$exists": True}}, True),
        ({"dedup_id": None}, {"dedup_id": {"$exists": True}}, False),
        ({"deleted": False, "source_id": "lib1"}, {"deleted": False, "source_id": "lib1"}, True),
    ],
)
def test_matches_filter(doc: dict, query: dict, expected: bool) -> None:
    """Test equality, list membership and the supported operators."""
    assert matches_filter(doc, query) is expected


@pytest.mark.unit
def test_indexed_lookup_prefers_id() -> None:
    """Test the id predicate wins over other indexed fields."""
    assert indexed_lookup({"source_id": "lib1", "id": "lib1.1"}) == ("id", ["lib1.1"])
    assert indexed_lookup({"dedup_id": {"$in": ["g", None]}}) == ("dedup_id", ["g"])
    assert indexed_lookup({"dedup_id": {"$exists": True}}) is None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_save_and_get_record(any_store: Store) -> None:
    """Test a saved record reads back equal, and a missing one reads back None."""
    record = _record("lib1.1", title_keys=["untitledwork"], original_data={"title": "Untitled"})

    any_store.save_record(record)

    assert any_store.get_record("lib1.1") == record
    assert any_store.get_record("lib1.404") is None


@pytest.mark.unit
def test_find_records_by_key_in_insertion_order(any_store: Store) -> None:
    """Test key lookups match list membership and keep insertion order."""
    for rid in ("lib2.1", "lib1.1", "lib3.1"):
        any_store.save_record(_record(rid, isbn_keys=["9780321125217"]))
    any_store.save_record(_record("lib4.1", isbn_keys=["9780201633610"]))

    found = any_store.find_records({"isbn_keys": "9780321125217", "source_id": {"$ne": "lib1"}})

    assert [r.id for r in found] == ["lib2.1", "lib3.1"]
    assert any_store.count_records({"isbn_keys": "9780321125217"}) == 3
    assert any_store.find_record({"isbn_keys": "none"}) is None


@pytest.mark.unit
def test_resave_keeps_insertion_position(any_store: Store) -> None:
    """Test replacing a record does not move it to the end."""
    any_store.save_record(_record("lib1.1"))
    any_store.save_record(_record("lib1.2"))
    any_store.save_record(_record("lib1.1", deleted=True))

    assert [r.id for r in any_store.find_records({"source_id": "lib1"})] == ["lib1.1", "lib1.2"]


@pytest.mark.unit
def test_update_records_sets_unsets_and_reindexes(any_store: Store) -> None:
    """Test updates change fields, drop unset ones and refresh the key index."""
    any_store.save_record(_record("lib1.1", isbn_keys=["9780321125217"], dedup_id="g1"))
    any_store.save_record(_record("lib1.2", dedup_id="g1"))

    count = any_store.update_records(
        {"id": "lib1.1"}, {"isbn_keys": ["9780201633610"], "update_needed": True}, ["dedup_id"]
    )

    assert count == 1
    record = any_store.get_record("lib1.1")
    assert record.dedup_id is None
    assert record.update_needed
    assert any_store.find_record({"isbn_keys": "9780321125217"}) is None
    assert any_store.find_record({"isbn_keys": "9780201633610"}).id == "lib1.1"
    assert [r.id for r in any_store.find_records({"dedup_id": "g1"})] == ["lib1.2"]


@pytest.mark.unit
def test_update_while_iterating(any_store: Store) -> None:
    """Test records updated during a lazy scan are re-checked against the filter."""
    for i in range(1, 6):
        any_store.save_record(_record(f"lib1.{i}", update_needed=True))

    seen = []
    for record in any_store.find_records({"update_needed": True}):
        seen.append(record.id)
        if record.id == "lib1.1":
            any_store.update_records({"id": "lib1.3"}, {"update_needed": False})

    assert seen == ["lib1.1", "lib1.2", "lib1.4", "lib1.5"]


# ---------------------------------------------------------------------------
# Dedup groups
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_save_dedup_assigns_id(any_store: Store) -> None:
    """Test a new group gets an id and later saves replace it."""
    group = any_store.save_dedup(DedupGroup(ids=["lib1.1", "lib2.1"]))

    assert group.id
    group.ids.append("lib3.1")
    any_store.save_dedup(group)

    stored = any_store.get_dedup(group.id)
    assert stored.ids == ["lib1.1", "lib2.1", "lib3.1"]
    assert any_store.get_dedup("missing") is None


@pytest.mark.unit
def test_find_dedups(any_store: Store) -> None:
    """Test groups are filtered by id and by deletion flag."""
    live = any_store.save_dedup(DedupGroup(ids=["lib1.1", "lib2.1"]))
    dead = any_store.save_dedup(DedupGroup(ids=[], deleted=True))

    assert [g.id for g in any_store.find_dedups({"deleted": False})] == [live.id]
    assert any_store.find_dedup({"id": dead.id, "deleted": False}) is None
    assert any_store.find_dedup({"id": dead.id}).deleted


@pytest.mark.unit
def test_sqlite_store_is_usable_from_worker_threads(tmp_path: Path) -> None:
    """Test each thread gets its own connection to the same database."""
    store = SQLiteStore(tmp_path / "dedup.sqlite")

    def _save(i: int) -> None:
        store.save_record(_record(f"lib1.{i}", title_keys=["shared"]))

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(_save, range(20)))

    assert store.count_records({"title_keys": "shared"}) == 20
    store.close()


@pytest.mark.unit
def test_sqlite_store_persists(tmp_path: Path, make_record: Callable[..., Record]) -> None:
    """Test data survives reopening the database file."""
    path = tmp_path / "dedup.sqlite"
    with SQLiteStore(path) as store:
        store.save_record(make_record("lib1.1", title="Untitled Work"))
        group = store.save_dedup(DedupGroup(ids=["lib1.1", "lib2.1"]))

    with SQLiteStore(path) as reopened:
        assert reopened.get_record("lib1.1").original_data == {
            "title": "Untitled Work",
            "format": "Book",
        }
        assert reopened.get_dedup(group.id).ids == ["lib1.1", "lib2.1"]
