"""SQLite-backed document store.

Records and dedup groups are kept as JSON documents, with a side table
holding the secondary index over key fields. Each thread gets its own
connection; the database runs in WAL mode so readers do not block the
single writer.
"""

from __future__ import annotations

import dataclasses
import json
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from recdedup.models.identifiers import new_dedup_id
from recdedup.models.records import DedupGroup, Record
from recdedup.store.base import Filter, index_entries, indexed_lookup, matches_filter
from recdedup.utils import get_iso_timestamp

__all__ = ["SQLiteStore"]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS records(
    id TEXT PRIMARY KEY,
    seq INTEGER NOT NULL,
    doc TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS record_index(
    field TEXT NOT NULL,
    value TEXT NOT NULL,
    id TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS record_index_lookup ON record_index(field, value);
CREATE INDEX IF NOT EXISTS record_index_id ON record_index(id);
CREATE TABLE IF NOT EXISTS dedups(
    id TEXT PRIMARY KEY,
    doc TEXT NOT NULL
);
"""

# Ids bound per statement when loading documents in bulk
_BATCH_SIZE = 500


def _dumps(doc: Mapping[str, Any]) -> str:
    return json.dumps(doc, ensure_ascii=False, separators=(",", ":"))


class SQLiteStore:
    """Store keeping JSON documents in an SQLite database file.

    Parameters
    ----------
    path : Path
        Database file. Created with its parent directories if missing.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        conn = self._conn()
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(_SCHEMA)
        conn.commit()

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(str(self.path), timeout=30.0)
            self._local.conn = conn
        return conn

    def close(self) -> None:
        """Close the calling thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def __enter__(self) -> SQLiteStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ---------------------------------------------------------------------------
    # Records
    # ---------------------------------------------------------------------------

    def _candidate_ids(self, query: Filter) -> list[str]:
        conn = self._conn()
        lookup = indexed_lookup(query)
        if lookup is None:
            rows = conn.execute("SELECT id FROM records ORDER BY seq").fetchall()
        elif not lookup[1]:
            return []
        else:
            field, values = lookup
            marks = ",".join("?" * len(values))
            params = [str(v) for v in values]
            if field == "id":
                rows = conn.execute(
                    f"SELECT id FROM records WHERE id IN ({marks}) ORDER BY seq", params
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT DISTINCT r.id FROM record_index i JOIN records r ON r.id = i.id "
                    f"WHERE i.field = ? AND i.value IN ({marks}) ORDER BY r.seq",
                    [field, *params],
                ).fetchall()
        return [row[0] for row in rows]

    def _load_doc(self, record_id: str) -> dict[str, Any] | None:
        row = self._conn().execute("SELECT doc FROM records WHERE id = ?", (record_id,)).fetchone()
        return json.loads(row[0]) if row else None

    def _load_docs(self, ids: list[str]) -> dict[str, dict[str, Any]]:
        docs: dict[str, dict[str, Any]] = {}
        conn = self._conn()
        for start in range(0, len(ids), _BATCH_SIZE):
            batch = ids[start : start + _BATCH_SIZE]
            marks = ",".join("?" * len(batch))
            rows = conn.execute(f"SELECT id, doc FROM records WHERE id IN ({marks})", batch)
            docs.update((record_id, json.loads(blob)) for record_id, blob in rows.fetchall())
        return docs

    def _write_doc(self, conn: sqlite3.Connection, doc: Mapping[str, Any]) -> None:
        record_id = doc["id"]
        conn.execute(
            "INSERT INTO records(id, seq, doc) VALUES(?, "
            "(SELECT COALESCE(MAX(seq), 0) + 1 FROM records), ?) "
            "ON CONFLICT(id) DO UPDATE SET doc = excluded.doc",
            (record_id, _dumps(doc)),
        )
        conn.execute("DELETE FROM record_index WHERE id = ?", (record_id,))
        conn.executemany(
            "INSERT INTO record_index(field, value, id) VALUES(?, ?, ?)",
            [(field, value, record_id) for field, value in index_entries(doc)],
        )

    def get_record(self, record_id: str) -> Record | None:
        doc = self._load_doc(record_id)
        return Record.from_dict(doc) if doc is not None else None

    def find_record(self, query: Filter) -> Record | None:
        return next(self.find_records(query), None)

    def find_records(self, query: Filter) -> Iterator[Record]:
        # Each document is read just before it is yielded so that writes
        # made during iteration are seen
        for record_id in self._candidate_ids(query):
            doc = self._load_doc(record_id)
            if doc is not None and matches_filter(doc, query):
                yield Record.from_dict(doc)

    def count_records(self, query: Filter) -> int:
        return sum(1 for _ in self.find_records(query))

    def update_records(
        self,
        query: Filter,
        set_fields: Mapping[str, Any],
        unset_fields: Iterable[str] = (),
    ) -> int:
        unset = list(unset_fields)
        count = 0
        conn = self._conn()
        with conn:
            docs = self._load_docs(self._candidate_ids(query))
            for doc in docs.values():
                if not matches_filter(doc, query):
                    continue
                new = {k: v for k, v in doc.items() if k not in unset}
                new.update(set_fields)
                self._write_doc(conn, new)
                count += 1
        return count

    def save_record(self, record: Record) -> None:
        conn = self._conn()
        with conn:
            self._write_doc(conn, record.to_dict())

    # ---------------------------------------------------------------------------
    # Dedup groups
    # ---------------------------------------------------------------------------

    def get_dedup(self, dedup_id: str) -> DedupGroup | None:
        row = self._conn().execute("SELECT doc FROM dedups WHERE id = ?", (dedup_id,)).fetchone()
        return DedupGroup.from_dict(json.loads(row[0])) if row else None

    def find_dedup(self, query: Filter) -> DedupGroup | None:
        return next(self.find_dedups(query), None)

    def find_dedups(self, query: Filter) -> Iterator[DedupGroup]:
        if "id" in query and not isinstance(query["id"], Mapping):
            group = self.get_dedup(query["id"])
            if group is not None and matches_filter(group.to_dict(), query):
                yield group
            return
        ids = [row[0] for row in self._conn().execute("SELECT id FROM dedups ORDER BY rowid")]
        for dedup_id in ids:
            group = self.get_dedup(dedup_id)
            if group is not None and matches_filter(group.to_dict(), query):
                yield group

    def save_dedup(self, group: DedupGroup) -> DedupGroup:
        if group.id is None:
            group = dataclasses.replace(group, id=new_dedup_id())
        conn = self._conn()
        with conn:
            conn.execute(
                "INSERT INTO dedups(id, doc) VALUES(?, ?) "
                "ON CONFLICT(id) DO UPDATE SET doc = excluded.doc",
                (group.id, _dumps(group.to_dict())),
            )
        return group

    def get_timestamp(self) -> str:
        return get_iso_timestamp()
