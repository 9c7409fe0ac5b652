"""Component part deduplication.

Once two host records share a dedup group, their component parts (e.g.
the articles of a journal issue) are linked too, but only as a whole:
the part sequences of both hosts must have the same length and match
index by index, or nothing is linked.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from recdedup.audit.logger import AuditLogger
from recdedup.formats.factory import create_metadata_record
from recdedup.models.identifiers import id_sort_key
from recdedup.models.records import Record
from recdedup.scoring.matcher import MatchScorer
from recdedup.store.base import Store

if TYPE_CHECKING:
    from recdedup.clustering.groups import DedupGroupManager

__all__ = ["ComponentPartDeduplicator"]


class ComponentPartDeduplicator:
    """Link the component parts of grouped host records.

    Parameters
    ----------
    store : Store
        Record store.
    scorer : MatchScorer
        Match cascade applied to each part pair.
    logger : AuditLogger | None, optional
        Event logger.
    """

    def __init__(
        self,
        store: Store,
        scorer: MatchScorer,
        logger: AuditLogger | None = None,
    ) -> None:
        self.store = store
        self.scorer = scorer
        self.logger = logger

    def component_parts(self, source_id: str, linking_id: str) -> list[Record]:
        """Return live component parts of a host, ordered by numeric id suffix.

        Parameters
        ----------
        source_id : str
            Source of the host record.
        linking_id : str
            Host record's linking id.

        Returns
        -------
        list[Record]
            Parts sorted so that "part2" precedes "part10".
        """
        if not linking_id:
            return []
        parts = self.store.find_records(
            {
                "source_id": source_id,
                "host_record_id": linking_id,
                "deleted": False,
                "suppressed": {"$in": [None, False]},
            }
        )
        return sorted(parts, key=lambda part: id_sort_key(part.id))

    def _all_match(self, parts1: list[Record], parts2: list[Record]) -> bool:
        for part1, part2 in zip(parts1, parts2, strict=True):
            if not self.scorer.matches(part1, create_metadata_record(part1), part2):
                return False
        return True

    def dedup_component_parts(self, host: Record, groups: DedupGroupManager) -> int:
        """Link the host's parts with those of the first fully matching co-member.

        Parameters
        ----------
        host : Record
            Host record, already carrying its ``dedup_id``.
        groups : DedupGroupManager
            Used to link part pairs.

        Returns
        -------
        int
            Number of part pairs linked; 0 when no other host in the
            group has a fully matching part sequence. Links the parts
            already have are left as they are.
        """
        if not host.linking_id:
            if self.logger:
                self.logger.event(
                    "missing_linking_id",
                    data={"message": f"Linking ID missing from record {host.id}"},
                    level="ERROR",
                    rid=host.id,
                )
            return 0

        parts1 = self.component_parts(host.source_id, host.linking_id)
        if not parts1:
            return 0

        marked = 0
        others = (
            self.store.find_records(
                {"dedup_id": host.dedup_id, "deleted": False, "suppressed": {"$in": [None, False]}}
            )
            if host.dedup_id
            else iter(())
        )
        for other in others:
            if other.source_id == host.source_id:
                continue
            parts2 = self.component_parts(other.source_id, other.linking_id)
            if len(parts1) != len(parts2) or not self._all_match(parts1, parts2):
                if self.logger:
                    self.logger.event(
                        "component_parts_mismatch",
                        data={"other": other.id, "parts": len(parts1), "other_parts": len(parts2)},
                        level="DEBUG",
                        rid=host.id,
                    )
                continue

            for part1, part2 in zip(parts1, parts2, strict=True):
                groups.mark_duplicates(part1.id, part2.id)
                marked += 1
            break

        return marked
