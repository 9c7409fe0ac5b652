"""Store protocol and Mongo-style filter evaluation.

Stores persist records and dedup groups as dict documents and answer
simple filters on their fields:

* ``{"field": value}`` matches equality, or membership for list fields;
* ``{"field": {"$in": [...]}}`` matches any of the values;
* ``{"field": {"$ne": value}}`` matches anything but ``value``;
* ``{"field": {"$exists": bool}}`` matches presence of a non-null value.

A missing field compares as None. The record id is the ``id`` field.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any, Protocol, runtime_checkable

from recdedup.models.records import DedupGroup, Record

__all__ = [
    "INDEXED_FIELDS",
    "Filter",
    "Store",
    "index_entries",
    "indexed_lookup",
    "matches_filter",
]

Filter = Mapping[str, Any]

# Record fields with a secondary index
INDEXED_FIELDS: tuple[str, ...] = (
    "isbn_keys",
    "id_keys",
    "title_keys",
    "dedup_id",
    "host_record_id",
    "source_id",
)

_OPERATORS = frozenset({"$in", "$ne", "$exists"})


def _as_values(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list | tuple | set) else [value]


def _match_condition(actual: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping) and condition and set(condition) <= _OPERATORS:
        for op, operand in condition.items():
            if op == "$in":
                wanted = list(operand)
                if not any(v in wanted for v in _as_values(actual)):
                    return False
            elif op == "$ne":
                if operand in _as_values(actual):
                    return False
            elif op == "$exists":
                if (actual is not None) != bool(operand):
                    return False
        return True
    if isinstance(actual, list) and not isinstance(condition, list):
        return condition in actual
    return actual == condition


def matches_filter(doc: Mapping[str, Any], query: Filter) -> bool:
    """Evaluate a Mongo-style filter against a document.

    Parameters
    ----------
    doc : Mapping[str, Any]
        Stored document.
    query : Filter
        Field conditions; all must hold.

    Returns
    -------
    bool
        True if the document satisfies every condition.

    Examples
    --------
    >>> matches_filter({"isbn_keys": ["9780321125217"]}, {"isbn_keys": "9780321125217"})
    True
    >>> matches_filter({"suppressed": False}, {"suppressed": {"$in": [None, False]}})
    True
    >>> matches_filter({}, {"dedup_id": {"$exists": False}})
    True
    """
    return all(_match_condition(doc.get(field), condition) for field, condition in query.items())


def indexed_lookup(query: Filter) -> tuple[str, list[Any]] | None:
    """Pick the most selective indexed predicate of a filter.

    Returns
    -------
    tuple[str, list[Any]] | None
        ``(field, values)`` for an equality or ``$in`` condition on an
        indexed field (or on ``id``), or None if the filter has none.
    """
    for field in ("id", *INDEXED_FIELDS):
        if field not in query:
            continue
        condition = query[field]
        if isinstance(condition, Mapping):
            if "$in" in condition:
                return field, [v for v in condition["$in"] if v is not None]
            continue
        if condition is not None and not isinstance(condition, list):
            return field, [condition]
    return None


def index_entries(doc: Mapping[str, Any]) -> Iterable[tuple[str, str]]:
    """Yield ``(field, value)`` secondary index entries of a record document."""
    for field in INDEXED_FIELDS:
        for value in _as_values(doc.get(field)):
            if value is not None and value != "":
                yield field, str(value)


@runtime_checkable
class Store(Protocol):
    """Document store consumed by the dedup engine.

    Implementations need atomic single-document writes only; no
    cross-document transaction is ever assumed.
    """

    def get_record(self, record_id: str) -> Record | None:
        """Return the record with ``record_id`` or None."""
        ...

    def find_record(self, query: Filter) -> Record | None:
        """Return the first record matching ``query`` or None."""
        ...

    def find_records(self, query: Filter) -> Iterator[Record]:
        """Lazily yield records matching ``query`` in insertion order."""
        ...

    def count_records(self, query: Filter) -> int:
        """Count records matching ``query``."""
        ...

    def update_records(
        self,
        query: Filter,
        set_fields: Mapping[str, Any],
        unset_fields: Iterable[str] = (),
    ) -> int:
        """Set and unset fields on every matching record; return the count."""
        ...

    def save_record(self, record: Record) -> None:
        """Insert or replace a record."""
        ...

    def get_dedup(self, dedup_id: str) -> DedupGroup | None:
        """Return the dedup group with ``dedup_id`` or None."""
        ...

    def find_dedup(self, query: Filter) -> DedupGroup | None:
        """Return the first dedup group matching ``query`` or None."""
        ...

    def find_dedups(self, query: Filter) -> Iterator[DedupGroup]:
        """Lazily yield dedup groups matching ``query``."""
        ...

    def save_dedup(self, group: DedupGroup) -> DedupGroup:
        """Insert or replace a group, assigning an id to a new one."""
        ...

    def get_timestamp(self) -> str:
        """Return the current store timestamp (ISO8601, UTC)."""
        ...
