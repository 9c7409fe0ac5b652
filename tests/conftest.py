"""Pytest configuration and fixtures for test suite."""

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Add src directory to path for imports
SRC_PATH = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(SRC_PATH))

from recdedup.engine import DedupConfig, DedupHandler  # noqa: E402
from recdedup.formats import create_metadata_record  # noqa: E402
from recdedup.models import DedupGroup, Record  # noqa: E402
from recdedup.normalize import update_candidate_keys  # noqa: E402
from recdedup.store import MemoryStore  # noqa: E402

_TS = "2024-01-01T00:00:00Z"


@pytest.fixture
def config() -> DedupConfig:
    """Default configuration with three dedup-enabled sources."""
    return DedupConfig(sources={"lib1": {}, "lib2": {}, "lib3": {}})


@pytest.fixture
def store() -> MemoryStore:
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def make_record() -> Callable[..., Record]:
    """Factory for canonical-format records with minimal boilerplate.

    The source is taken from the id prefix ("lib1.1" → "lib1"); metadata
    fields that are not given are left out of the payload.
    """

    def _factory(
        rid: str = "lib1.1",
        *,
        title: str | None = None,
        author: str | None = None,
        isbns: list[str] | None = None,
        issns: list[str] | None = None,
        unique_ids: list[str] | None = None,
        year: str | None = None,
        pages: int | None = None,
        fmt: str | None = "Book",
        access_restrictions: str | None = None,
        series_issn: str | None = None,
        series_numbering: str | None = None,
        nonfiling: int | None = None,
        host_record_id: str | None = None,
        linking_id: str = "",
        dedup_id: str | None = None,
        deleted: bool = False,
        suppressed: bool = False,
        update_needed: bool = True,
    ) -> Record:
        payload: dict[str, Any] = {
            "title": title,
            "main_author": author,
            "isbns": isbns,
            "issns": issns,
            "unique_ids": unique_ids,
            "year": year,
            "pages": pages,
            "format": fmt,
            "access_restrictions": access_restrictions,
            "series_issn": series_issn,
            "series_numbering": series_numbering,
            "nonfiling": nonfiling,
        }
        return Record(
            id=rid,
            source_id=rid.partition(".")[0],
            format="canonical",
            original_data={k: v for k, v in payload.items() if v is not None},
            host_record_id=host_record_id,
            linking_id=linking_id,
            dedup_id=dedup_id,
            deleted=deleted,
            suppressed=suppressed,
            update_needed=update_needed,
            created=_TS,
            updated=_TS,
        )

    return _factory


@pytest.fixture
def save_record(store: MemoryStore, config: DedupConfig) -> Callable[[Record], Record]:
    """Compute candidate keys of a record, save it and return the stored copy."""

    def _save(record: Record) -> Record:
        keyed, _ = update_candidate_keys(record, create_metadata_record(record), config)
        store.save_record(keyed)
        return keyed

    return _save


@pytest.fixture
def make_group(store: MemoryStore) -> Callable[..., str]:
    """Save a live group over existing records and point them at it."""

    def _factory(*record_ids: str) -> str:
        group = store.save_dedup(DedupGroup(ids=list(record_ids), changed=_TS))
        store.update_records(
            {"id": {"$in": list(record_ids)}}, {"dedup_id": group.id, "update_needed": False}
        )
        return str(group.id)

    return _factory


@pytest.fixture
def handler(store: MemoryStore, config: DedupConfig) -> DedupHandler:
    """Handler over the shared store and configuration."""
    return DedupHandler(store, config)
