"""Candidate search with cheap pre-filters and hot-key ceilings.

Records sharing a literal candidate key are looked up through the
store's secondary index. Before a candidate reaches the scorer it has to
pass filters that need no metadata parsing, and the number of
candidates examined per key is bounded.
"""

from __future__ import annotations

from collections.abc import Iterator, MutableSet
from typing import TYPE_CHECKING

from recdedup.audit.logger import AuditLogger
from recdedup.candidates.hot_keys import HotKeyCache
from recdedup.models.records import Record
from recdedup.store.base import Store

if TYPE_CHECKING:
    from recdedup.engine.config import DedupConfig

__all__ = ["KEY_TYPES", "CandidateSearch"]

# Candidate key categories in lookup priority order
KEY_TYPES: tuple[str, ...] = ("isbn_keys", "id_keys", "title_keys")


class CandidateSearch:
    """Look up and pre-filter duplicate candidates for a record.

    Parameters
    ----------
    store : Store
        Record store.
    config : DedupConfig
        Candidate ceilings, hot-key cache size and per-source settings.
    hot_keys : HotKeyCache | None, optional
        Shared hot-key cache; a private one is created if omitted.
    logger : AuditLogger | None, optional
        Event logger.
    """

    def __init__(
        self,
        store: Store,
        config: DedupConfig,
        hot_keys: HotKeyCache | None = None,
        logger: AuditLogger | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.hot_keys = hot_keys if hot_keys is not None else HotKeyCache(config.hot_key_cache_size)
        self.logger = logger

    def find_candidates(
        self,
        key_type: str,
        key_value: str,
        exclude_source_id: str,
    ) -> Iterator[Record]:
        """Lazily yield live records sharing a candidate key.

        Parameters
        ----------
        key_type : str
            One of ``KEY_TYPES``.
        key_value : str
            Literal key value.
        exclude_source_id : str
            Source whose records are never returned.

        Returns
        -------
        Iterator[Record]
            Non-deleted records from other sources, in store order.

        Raises
        ------
        ValueError
            If ``key_type`` is not a candidate key field.
        """
        if key_type not in KEY_TYPES:
            raise ValueError(f"Unknown key type: {key_type!r}. Valid types: {', '.join(KEY_TYPES)}")
        return self.store.find_records(
            {
                key_type: key_value,
                "deleted": False,
                "source_id": {"$ne": exclude_source_id},
            }
        )

    def _in_group_with_source(self, record: Record, candidate: Record) -> bool:
        """Whether the candidate's group already holds a record of ``record``'s source."""
        if not candidate.dedup_id or candidate.dedup_id == record.dedup_id:
            return False
        existing = self.store.find_record(
            {
                "dedup_id": candidate.dedup_id,
                "source_id": record.source_id,
                "id": {"$ne": record.id},
            }
        )
        return existing is not None

    def iter_candidates(
        self,
        record: Record,
        key_type: str,
        key_value: str,
        isbn_keys: list[str],
        id_keys: list[str],
        tried: MutableSet[str] | None = None,
    ) -> Iterator[Record]:
        """Yield the candidates for one key that are worth scoring.

        Candidates are skipped when they come from the same source, are
        deleted or suppressed, belong to a source without deduplication,
        were already tried for this record, were already reachable
        through a higher-priority key (shared ISBN key when searching
        other-ID or title keys, shared ID key when searching title keys),
        or sit in a group that already holds a record of this record's
        source.

        The scan stops after ``max_candidates`` surviving candidates, or
        ``hot_key_max_candidates`` when the key is already hot; the key is
        then flagged hot.

        Parameters
        ----------
        record : Record
            Record being deduplicated.
        key_type : str
            One of ``KEY_TYPES``.
        key_value : str
            Key value to search.
        isbn_keys : list[str]
            ISBN keys of ``record`` after ignored ids are removed.
        id_keys : list[str]
            ID keys of ``record`` after ignored ids are removed.
        tried : MutableSet[str] | None, optional
            Ids already scored for this record. The caller adds rejected
            candidates to it.

        Yields
        ------
        Record
            Candidate to score.
        """
        cache_key = HotKeyCache.make_key(key_type, key_value)
        limit = (
            self.config.hot_key_max_candidates
            if cache_key in self.hot_keys
            else self.config.max_candidates
        )
        isbn_set = set(isbn_keys)
        id_set = set(id_keys)
        processed = 0

        for candidate in self.find_candidates(key_type, key_value, record.source_id):
            if candidate.id == record.id or candidate.suppressed:
                continue
            if not self.config.dedup_enabled(candidate.source_id):
                continue
            if tried is not None and candidate.id in tried:
                continue
            if key_type != "isbn_keys" and isbn_set.intersection(candidate.isbn_keys):
                continue
            if key_type == "title_keys" and id_set.intersection(candidate.id_keys):
                continue
            if self._in_group_with_source(record, candidate):
                if self.logger:
                    self.logger.event(
                        "candidate_already_grouped",
                        data={"candidate": candidate.id, "dedup_id": candidate.dedup_id},
                        level="DEBUG",
                        rid=record.id,
                    )
                continue

            processed += 1
            if processed > limit:
                self.hot_keys.add(cache_key)
                if self.logger:
                    self.logger.event(
                        "too_many_candidates",
                        data={"key": cache_key, "limit": limit},
                        level="DEBUG",
                        rid=record.id,
                    )
                return
            yield candidate
