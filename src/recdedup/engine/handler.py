"""Dedup entry points used by the batch runner.

``DedupHandler`` wires the candidate search, match cascade and group
manager together and exposes the operations an orchestrator calls:
refreshing candidate keys, deduplicating one record, and the integrity
checks.
"""

from __future__ import annotations

from recdedup.audit.logger import AuditLogger
from recdedup.candidates.hot_keys import HotKeyCache
from recdedup.candidates.search import CandidateSearch
from recdedup.clustering.components import ComponentPartDeduplicator
from recdedup.clustering.groups import DedupGroupManager
from recdedup.engine.config import DedupConfig
from recdedup.formats.base import MetadataRecord
from recdedup.formats.factory import create_metadata_record
from recdedup.formats.mapping import FormatMapper
from recdedup.models.records import DedupGroup, Record
from recdedup.normalize.keys import update_candidate_keys
from recdedup.scoring.matcher import MatchScorer
from recdedup.store.base import Store

__all__ = ["DedupHandler"]


class DedupHandler:
    """Deduplicate records against a store.

    Parameters
    ----------
    store : Store
        Record and group store.
    config : DedupConfig
        Dedup configuration.
    logger : AuditLogger | None, optional
        Event logger shared by all components.
    hot_keys : HotKeyCache | None, optional
        Hot-key cache; share one between handlers of the same process.

    Examples
    --------
    >>> from recdedup.store import MemoryStore
    >>> handler = DedupHandler(MemoryStore(), DedupConfig())
    >>> handler.scorer.config is handler.config
    True
    """

    def __init__(
        self,
        store: Store,
        config: DedupConfig,
        logger: AuditLogger | None = None,
        hot_keys: HotKeyCache | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.logger = logger
        self.format_mapper = FormatMapper(config)
        self.scorer = MatchScorer(config, self.format_mapper, logger)
        self.search = CandidateSearch(store, config, hot_keys, logger)
        self.components = ComponentPartDeduplicator(store, self.scorer, logger)
        self.groups = DedupGroupManager(store, self.scorer, self.components, logger)

    def update_dedup_candidate_keys(
        self,
        record: Record,
        metadata: MetadataRecord | None = None,
    ) -> tuple[Record, bool]:
        """Recompute a record's candidate keys.

        Parameters
        ----------
        record : Record
            Stored record; left unmodified.
        metadata : MetadataRecord | None, optional
            Parsed metadata; parsed from ``record`` if omitted.

        Returns
        -------
        tuple[Record, bool]
            Updated copy and whether any key changed.

        Raises
        ------
        ValueError
            If the record's format is unknown or its payload malformed.
        """
        if metadata is None:
            metadata = create_metadata_record(record)
        return update_candidate_keys(record, metadata, self.config)

    def _unlink(self, record: Record) -> None:
        self.store.update_records(
            {"id": record.id},
            {"updated": self.store.get_timestamp(), "update_needed": False},
            ["dedup_id"] if record.dedup_id else [],
        )
        if record.dedup_id:
            self.groups.remove_from_group(record.dedup_id, record.id)

    def dedup_record(self, record: Record) -> bool:
        """Find a duplicate for a record and link the two.

        Deleted and suppressed records, and records of sources without
        deduplication, are unlinked from any group and cleared. Otherwise
        candidates are searched by ISBN keys, then other-ID keys, then
        title keys, and the first match is linked. Without a match the
        record leaves its old group and ``update_needed`` is cleared.

        Parameters
        ----------
        record : Record
            Record to deduplicate, with current candidate keys.

        Returns
        -------
        bool
            Whether a duplicate was found.

        Raises
        ------
        ValueError
            If the record's own format is unknown or its payload malformed.
        """
        if record.deleted or record.suppressed or not self.config.dedup_enabled(record.source_id):
            self._unlink(record)
            return False

        metadata: MetadataRecord | None = None
        isbn_keys = self.scorer.filter_ids(record.isbn_keys, record)
        id_keys = self.scorer.filter_ids(record.id_keys, record)
        tried: set[str] = set()
        scored = 0

        for key_type, values in (
            ("isbn_keys", isbn_keys),
            ("id_keys", id_keys),
            ("title_keys", record.title_keys),
        ):
            for value in values:
                for candidate in self.search.iter_candidates(
                    record, key_type, value, isbn_keys, id_keys, tried
                ):
                    if metadata is None:
                        metadata = create_metadata_record(record)
                    scored += 1
                    try:
                        candidate_metadata = create_metadata_record(candidate)
                    except ValueError as e:
                        tried.add(candidate.id)
                        if self.logger:
                            self.logger.event(
                                "candidate_unreadable",
                                data={"candidate": candidate.id, "message": str(e)},
                                level="WARN",
                                rid=record.id,
                            )
                        continue
                    if self.scorer.matches(record, metadata, candidate, candidate_metadata):
                        if self.logger:
                            self.logger.event(
                                "match_found",
                                data={
                                    "key_type": key_type,
                                    "candidate": candidate.id,
                                    "scored": scored,
                                },
                                level="DEBUG",
                                rid=record.id,
                            )
                        return self.groups.mark_duplicates(record.id, candidate.id) is not None
                    tried.add(candidate.id)

        if record.dedup_id or record.update_needed:
            self._unlink(record)
        if self.logger:
            self.logger.event(
                "no_match", data={"scored": scored}, level="DEBUG", rid=record.id
            )
        return False

    def check_dedup_record(self, group: DedupGroup, strict: bool = False) -> list[str]:
        """Verify and repair a dedup group; see ``DedupGroupManager.check_group``."""
        return self.groups.check_group(group, strict=strict)

    def remove_from_dedup_record(self, dedup_id: str, record_id: str) -> None:
        """Remove a record from a dedup group; see ``DedupGroupManager.remove_from_group``."""
        self.groups.remove_from_group(dedup_id, record_id)

    def check_record_links(self, record: Record) -> str:
        """Verify a record's group link; see ``DedupGroupManager.check_record_links``."""
        return self.groups.check_record_links(record)
