"""Tests for all-or-nothing component part deduplication."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from recdedup.audit import AuditLogger
from recdedup.clustering import ComponentPartDeduplicator, DedupGroupManager
from recdedup.engine import DedupConfig, DedupHandler
from recdedup.models import Record
from recdedup.scoring import MatchScorer
from recdedup.store import MemoryStore

_PART_TITLES = ["Opening remarks on design", "Patterns in practice", "Closing thoughts"]


@pytest.fixture
def save_host(
    make_record: Callable[..., Record], save_record: Callable[[Record], Record]
) -> Callable[..., Record]:
    """Save a host record and its component parts."""

    def _save(host_id: str, part_count: int) -> Record:
        source = host_id.partition(".")[0]
        linking_id = f"link-{host_id}"
        host = save_record(
            make_record(
                host_id,
                title="Proceedings of the design workshop",
                isbns=["9780201633610"],
                linking_id=linking_id,
            )
        )
        for i in range(part_count):
            save_record(
                make_record(
                    f"{source}.part{i + 1}",
                    title=_PART_TITLES[i],
                    fmt="BookPart",
                    host_record_id=linking_id,
                )
            )
        return host

    return _save


@pytest.mark.unit
def test_component_parts_sorted_by_numeric_suffix(
    store: MemoryStore,
    config: DedupConfig,
    make_record: Callable[..., Record],
    save_record: Callable[[Record], Record],
) -> None:
    """Test parts are ordered part2 before part10."""
    for rid in ("lib1.part10", "lib1.part2", "lib1.part1"):
        save_record(make_record(rid, title="Part", host_record_id="L"))
    components = ComponentPartDeduplicator(store, MatchScorer(config))

    parts = components.component_parts("lib1", "L")

    assert [p.id for p in parts] == ["lib1.part1", "lib1.part2", "lib1.part10"]
    assert components.component_parts("lib1", "") == []


@pytest.mark.unit
def test_host_link_links_matching_parts(
    store: MemoryStore,
    handler: DedupHandler,
    save_host: Callable[..., Record],
) -> None:
    """Test parts of two linked hosts are paired index by index."""
    save_host("lib1.h", 3)
    save_host("lib2.h", 3)

    handler.groups.mark_duplicates("lib1.h", "lib2.h")

    for i in range(1, 4):
        part1 = store.get_record(f"lib1.part{i}")
        part2 = store.get_record(f"lib2.part{i}")
        assert part1.dedup_id is not None
        assert part1.dedup_id == part2.dedup_id
    assert store.get_record("lib1.part1").dedup_id != store.get_record("lib1.part2").dedup_id


@pytest.mark.unit
def test_part_count_mismatch_links_nothing(
    store: MemoryStore,
    handler: DedupHandler,
    save_host: Callable[..., Record],
) -> None:
    """Test hosts are linked but no part is when part counts differ."""
    save_host("lib1.h", 3)
    save_host("lib2.h", 2)

    dedup_id = handler.groups.mark_duplicates("lib1.h", "lib2.h")

    assert store.get_record("lib1.h").dedup_id == dedup_id
    assert store.get_record("lib2.h").dedup_id == dedup_id
    linked_parts = {"host_record_id": {"$exists": True}, "dedup_id": {"$exists": True}}
    assert store.count_records(linked_parts) == 0


@pytest.mark.unit
def test_mismatch_keeps_existing_part_links(
    store: MemoryStore,
    handler: DedupHandler,
    save_host: Callable[..., Record],
    make_record: Callable[..., Record],
    save_record: Callable[[Record], Record],
    make_group: Callable[..., str],
) -> None:
    """Test a part grouped on its own stays grouped when the host parts do not match."""
    save_host("lib1.h", 1)
    save_host("lib2.h", 2)
    save_record(
        make_record(
            "lib3.part1", title=_PART_TITLES[0], fmt="BookPart", host_record_id="link-lib3.h"
        )
    )
    dedup_id = make_group("lib1.part1", "lib3.part1")

    handler.groups.mark_duplicates("lib1.h", "lib2.h")

    part = store.get_record("lib1.part1")
    assert part.dedup_id == dedup_id
    assert not part.update_needed
    group = store.get_dedup(dedup_id)
    assert not group.deleted
    assert sorted(group.ids) == ["lib1.part1", "lib3.part1"]
    assert store.get_record("lib2.part1").dedup_id is None


@pytest.mark.unit
def test_missing_linking_id_is_an_error(
    tmp_path: Path,
    store: MemoryStore,
    config: DedupConfig,
    make_record: Callable[..., Record],
) -> None:
    """Test a host without linking id is reported and skipped."""
    host = make_record("lib1.h", title="Host", dedup_id="g1")
    log_path = tmp_path / "events.jsonl"

    with AuditLogger("run", log_path) as logger:
        scorer = MatchScorer(config)
        components = ComponentPartDeduplicator(store, scorer, logger)
        count = components.dedup_component_parts(host, DedupGroupManager(store, scorer))

    assert count == 0
    events = [json.loads(line) for line in log_path.read_text().splitlines()]
    assert [(e["event"], e["level"]) for e in events] == [("missing_linking_id", "ERROR")]
