"""Dedup group lifecycle and integrity checks.

A live group always holds at least two records, at most one per
source, and every member points back at it through ``dedup_id``.
Membership changes never take a lock: a lost race surfaces as a failed
``add_to_group`` and falls back to creating a fresh group, and records
whose grouping may be stale are flagged ``update_needed`` so the next
pass repairs them.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from recdedup.audit.logger import AuditLogger
from recdedup.formats.factory import create_metadata_record
from recdedup.models.identifiers import source_from_id
from recdedup.models.records import DedupGroup, Record
from recdedup.scoring.matcher import MatchScorer
from recdedup.store.base import Store

if TYPE_CHECKING:
    from recdedup.clustering.components import ComponentPartDeduplicator

__all__ = ["DedupGroupManager"]

# Filter matching records that are neither deleted nor suppressed
_LIVE = {"deleted": False, "suppressed": {"$in": [None, False]}}


class DedupGroupManager:
    """Create, grow, shrink and verify dedup groups.

    Parameters
    ----------
    store : Store
        Record and group store.
    scorer : MatchScorer
        Used by strict integrity checks.
    components : ComponentPartDeduplicator | None, optional
        Component part deduplication run after a host record is linked.
    logger : AuditLogger | None, optional
        Event logger.
    """

    def __init__(
        self,
        store: Store,
        scorer: MatchScorer,
        components: ComponentPartDeduplicator | None = None,
        logger: AuditLogger | None = None,
    ) -> None:
        self.store = store
        self.scorer = scorer
        self.components = components
        self.logger = logger

    def _warn(self, event: str, message: str, rid: str | None = None, **data: str) -> None:
        if self.logger:
            self.logger.event(event, data={"message": message, **data}, level="WARN", rid=rid)

    def _live_record(self, record_id: str) -> Record | None:
        record = self.store.get_record(record_id)
        if record is None:
            message = f"Record {record_id} is no longer available"
            self._warn("record_unavailable", message, record_id)
            return None
        if record.deleted or record.suppressed:
            self._warn(
                "record_unavailable",
                f"Record {record_id} has been deleted or suppressed in the meanwhile",
                record_id,
            )
            return None
        return record

    # ---------------------------------------------------------------------------
    # Linking
    # ---------------------------------------------------------------------------

    def mark_duplicates(self, id1: str, id2: str) -> str | None:
        """Link two records into one dedup group.

        Both records are re-read first. If ``id2`` is grouped, ``id1``
        joins its group; else if ``id1`` is grouped, ``id2`` joins; else
        a new group is created. When joining fails (group gone, or it
        already holds another record of the joining source) a fresh
        group of the two is created instead and the other record leaves
        its old group. A pair already settled in the resulting group is
        not rewritten.

        Parameters
        ----------
        id1 : str
            Record that was being deduplicated.
        id2 : str
            Matching candidate.

        Returns
        -------
        str | None
            Id of the resulting group, or None if either record vanished,
            was deleted or suppressed.
        """
        rec1 = self._live_record(id1)
        if rec1 is None:
            return None
        rec2 = self._live_record(id2)
        if rec2 is None:
            return None

        # Removals run after both records point at the new group
        removals: list[tuple[str, str]] = []
        if rec2.dedup_id:
            dedup_id = rec2.dedup_id
            if not self.add_to_group(dedup_id, rec1.id):
                removals.append((dedup_id, rec2.id))
                dedup_id = self.create_group(rec1.id, rec2.id)
            if rec1.dedup_id and rec1.dedup_id != dedup_id:
                removals.append((rec1.dedup_id, rec1.id))
        elif rec1.dedup_id:
            dedup_id = rec1.dedup_id
            if not self.add_to_group(dedup_id, rec2.id):
                removals.append((dedup_id, rec1.id))
                dedup_id = self.create_group(rec1.id, rec2.id)
        else:
            dedup_id = self.create_group(rec1.id, rec2.id)

        if self.logger:
            self.logger.event(
                "duplicates_marked",
                data={"duplicate": rec2.id, "dedup_id": dedup_id},
                rid=rec1.id,
            )

        # A pair already resolved to this group is left untouched
        settled = (rec.dedup_id == dedup_id and not rec.update_needed for rec in (rec1, rec2))
        if not all(settled):
            self.store.update_records(
                {"id": {"$in": [rec1.id, rec2.id]}},
                {
                    "dedup_id": dedup_id,
                    "update_needed": False,
                    "updated": self.store.get_timestamp(),
                },
            )

        for old_dedup_id, record_id in removals:
            self.remove_from_group(old_dedup_id, record_id)

        if not rec1.host_record_id and self.components is not None:
            rec1.dedup_id = dedup_id
            count = self.components.dedup_component_parts(rec1, self)
            if count and self.logger:
                self.logger.event(
                    "component_parts_deduplicated", data={"count": count}, rid=rec1.id
                )

        return dedup_id

    def create_group(self, id1: str, id2: str) -> str:
        """Create a live group of two records and return its id."""
        group = self.store.save_dedup(
            DedupGroup(ids=[id1, id2], deleted=False, changed=self.store.get_timestamp())
        )
        return str(group.id)

    def add_to_group(self, dedup_id: str, record_id: str) -> bool:
        """Add a record to an existing live group.

        Parameters
        ----------
        dedup_id : str
            Target group.
        record_id : str
            Record to add.

        Returns
        -------
        bool
            False if the group is missing or deleted, or already holds
            another record of the same source; True otherwise.
        """
        group = self.store.find_dedup({"id": dedup_id, "deleted": False})
        if group is None:
            return False
        source = source_from_id(record_id)
        if any(other != record_id and source_from_id(other) == source for other in group.ids):
            return False
        if record_id not in group.ids:
            group.ids.append(record_id)
            group.changed = self.store.get_timestamp()
            self.store.save_dedup(group)
        return True

    def remove_from_group(self, dedup_id: str, record_id: str) -> None:
        """Remove a record from a group, dissolving it below two members.

        If one member remains, the group is deleted with its ids cleared
        and the survivor is unlinked and flagged ``update_needed`` so it
        can find a new partner. If two or more remain, all of them are
        flagged since the best pairing for the rest may have changed.

        Parameters
        ----------
        dedup_id : str
            Group to shrink.
        record_id : str
            Record to remove.
        """
        group = self.store.get_dedup(dedup_id)
        if group is None:
            self._warn(
                "dangling_reference",
                f"Found dangling reference to dedup group {dedup_id} in {record_id}",
                record_id,
                dedup_id=dedup_id,
            )
            return
        if group.deleted:
            self._warn(
                "deleted_group_reference",
                f"Found reference to deleted dedup group {dedup_id} in {record_id}",
                record_id,
                dedup_id=dedup_id,
            )
            return
        if record_id not in group.ids:
            return

        group.ids = [i for i in group.ids if i != record_id]
        if len(group.ids) == 1:
            survivor_id = group.ids[0]
            group.ids = []
            group.deleted = True
            survivor = self.store.get_record(survivor_id)
            if survivor is not None:
                set_fields = {}
                if not survivor.deleted and not survivor.suppressed:
                    set_fields["update_needed"] = True
                unset = ["dedup_id"] if survivor.dedup_id == dedup_id else []
                self.store.update_records({"id": survivor_id}, set_fields, unset)
        elif not group.ids:
            group.deleted = True
        group.changed = self.store.get_timestamp()
        self.store.save_dedup(group)

        if group.ids:
            self.store.update_records({"id": {"$in": group.ids}, **_LIVE}, {"update_needed": True})

    # ---------------------------------------------------------------------------
    # Integrity
    # ---------------------------------------------------------------------------

    def check_group(self, group: DedupGroup, strict: bool = False) -> list[str]:
        """Verify a group and repair its members.

        A live group without members is marked deleted. A member is
        removed when it does not exist, is a second record from one
        source, is deleted, belongs to a deleted or single-member group,
        has no ``dedup_id`` or points at another group, or (``strict``)
        no longer matches every other member.

        Parameters
        ----------
        group : DedupGroup
            Group to verify.
        strict : bool, optional
            Also re-run the match cascade between members.

        Returns
        -------
        list[str]
            One line per repair.
        """
        if not group.deleted and not group.ids:
            group.deleted = True
            group.changed = self.store.get_timestamp()
            self.store.save_dedup(group)
            return [f"Marked dedup group '{group.id}' deleted (no records in live group)"]

        fixes: list[str] = []
        removed: set[str] = set()
        sources: set[str] = set()
        cache: dict[str, Record | None] = {}

        def cached(record_id: str) -> Record | None:
            if record_id not in cache:
                cache[record_id] = self.store.get_record(record_id)
            return cache[record_id]

        for record_id in list(group.ids):
            record = cached(record_id)
            problem = ""
            if record is None:
                problem = "record does not exist"
            elif record.source_id in sources:
                problem = "already deduplicated with a record from same source"
            elif group.deleted:
                problem = "dedup group deleted"
            elif record.deleted:
                problem = "record deleted"
            elif len(group.ids) < 2:
                problem = "single record in a dedup group"
            elif not record.dedup_id:
                problem = "record is missing dedup_id"
            elif record.dedup_id != group.id:
                problem = f"record linked with dedup group '{record.dedup_id}'"
            elif strict:
                problem = self._strict_problem(record, group, removed, cached)
            if record is not None:
                sources.add(record.source_id)

            if not problem:
                continue

            self.store.update_records(
                {"id": record_id, "deleted": False}, {"update_needed": True}, ["dedup_id"]
            )
            self.remove_from_group(str(group.id), record_id)
            if record is not None and record.dedup_id and record.dedup_id != group.id:
                self.remove_from_group(record.dedup_id, record_id)
            line = f"Removed '{record_id}' from dedup group '{group.id}' ({problem})"
            self._warn("group_repaired", line, record_id, dedup_id=group.id)
            fixes.append(line)
            removed.add(record_id)
        return fixes

    def _strict_problem(
        self,
        record: Record,
        group: DedupGroup,
        removed: set[str],
        cached: Callable[[str], Record | None],
    ) -> str:
        try:
            metadata = create_metadata_record(record)
        except ValueError as e:
            self._warn("candidate_unreadable", str(e), record.id, candidate=record.id)
            return "record metadata unreadable"
        for other_id in group.ids:
            if other_id == record.id or other_id in removed:
                continue
            other = cached(other_id)
            if other is None or other.deleted:
                continue
            try:
                matched = self.scorer.matches(record, metadata, other)
            except ValueError:
                # An unreadable member is removed on its own turn
                continue
            if not matched:
                return f"record does not match '{other_id}' in dedup group"
        return ""

    def check_record_links(self, record: Record) -> str:
        """Verify that a record's ``dedup_id`` points at a group listing it.

        Parameters
        ----------
        record : Record
            Record to verify.

        Returns
        -------
        str
            Repair line, or an empty string if the link is sound.
        """
        if not record.dedup_id:
            return ""
        group = self.store.get_dedup(record.dedup_id)
        if group is None:
            reason = "dedup group does not exist"
        elif record.id not in group.ids:
            reason = "dedup group does not contain the id"
        else:
            return ""
        self.store.update_records(
            {"id": record.id, "deleted": False}, {"update_needed": True}, ["dedup_id"]
        )
        line = f"Removed dedup_id {record.dedup_id} from record {record.id} ({reason})"
        self._warn("record_link_repaired", line, record.id, dedup_id=record.dedup_id)
        return line
