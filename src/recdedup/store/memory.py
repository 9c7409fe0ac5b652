"""In-process document store with an inverted index over key fields."""

from __future__ import annotations

import copy
import dataclasses
import itertools
import threading
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from recdedup.models.identifiers import new_dedup_id
from recdedup.models.records import DedupGroup, Record
from recdedup.store.base import Filter, index_entries, indexed_lookup, matches_filter
from recdedup.utils import get_iso_timestamp

__all__ = ["MemoryStore"]


class MemoryStore:
    """Store keeping documents in dicts.

    Reads take a snapshot of the matching ids under the lock and then
    yield documents lazily, re-checking each against the filter, so
    iterating while other threads write is safe.

    Examples
    --------
    >>> store = MemoryStore()
    >>> store.save_record(Record(id="a.1", source_id="a", format="canonical"))
    >>> store.get_record("a.1").source_id
    'a'
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, dict[str, Any]] = {}
        self._seq: dict[str, int] = {}
        self._counter = itertools.count()
        self._index: dict[tuple[str, str], set[str]] = defaultdict(set)
        self._dedups: dict[str, dict[str, Any]] = {}

    # ---------------------------------------------------------------------------
    # Records
    # ---------------------------------------------------------------------------

    def _reindex(
        self,
        record_id: str,
        old: Mapping[str, Any] | None,
        new: Mapping[str, Any],
    ) -> None:
        if old is not None:
            for entry in index_entries(old):
                self._index[entry].discard(record_id)
        for entry in index_entries(new):
            self._index[entry].add(record_id)

    def _candidate_ids(self, query: Filter) -> list[str]:
        lookup = indexed_lookup(query)
        if lookup is None:
            ids: Iterable[str] = self._records.keys()
        else:
            field, values = lookup
            if field == "id":
                ids = {v for v in values if v in self._records}
            else:
                ids = set().union(*(self._index.get((field, str(v)), set()) for v in values))
        return sorted(ids, key=self._seq.__getitem__)

    def get_record(self, record_id: str) -> Record | None:
        with self._lock:
            doc = self._records.get(record_id)
            return Record.from_dict(copy.deepcopy(doc)) if doc is not None else None

    def find_record(self, query: Filter) -> Record | None:
        return next(self.find_records(query), None)

    def find_records(self, query: Filter) -> Iterator[Record]:
        with self._lock:
            ids = self._candidate_ids(query)
        for record_id in ids:
            with self._lock:
                doc = self._records.get(record_id)
                if doc is None or not matches_filter(doc, query):
                    continue
                doc = copy.deepcopy(doc)
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
        with self._lock:
            for record_id in self._candidate_ids(query):
                old = self._records[record_id]
                if not matches_filter(old, query):
                    continue
                new = {k: v for k, v in old.items() if k not in unset}
                new.update(copy.deepcopy(dict(set_fields)))
                self._reindex(record_id, old, new)
                self._records[record_id] = new
                count += 1
        return count

    def save_record(self, record: Record) -> None:
        doc = copy.deepcopy(record.to_dict())
        with self._lock:
            old = self._records.get(record.id)
            if old is None:
                self._seq[record.id] = next(self._counter)
            self._reindex(record.id, old, doc)
            self._records[record.id] = doc

    # ---------------------------------------------------------------------------
    # Dedup groups
    # ---------------------------------------------------------------------------

    def get_dedup(self, dedup_id: str) -> DedupGroup | None:
        with self._lock:
            doc = self._dedups.get(dedup_id)
            return DedupGroup.from_dict(copy.deepcopy(doc)) if doc is not None else None

    def find_dedup(self, query: Filter) -> DedupGroup | None:
        return next(self.find_dedups(query), None)

    def find_dedups(self, query: Filter) -> Iterator[DedupGroup]:
        with self._lock:
            if "id" in query and not isinstance(query["id"], Mapping):
                ids = [query["id"]] if query["id"] in self._dedups else []
            else:
                ids = list(self._dedups)
        for dedup_id in ids:
            with self._lock:
                doc = self._dedups.get(dedup_id)
                if doc is None or not matches_filter(doc, query):
                    continue
                doc = copy.deepcopy(doc)
            yield DedupGroup.from_dict(doc)

    def save_dedup(self, group: DedupGroup) -> DedupGroup:
        if group.id is None:
            group = dataclasses.replace(group, id=new_dedup_id())
        with self._lock:
            self._dedups[group.id] = copy.deepcopy(group.to_dict())
        return group

    def get_timestamp(self) -> str:
        return get_iso_timestamp()

    # ---------------------------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

