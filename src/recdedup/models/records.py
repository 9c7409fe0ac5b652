"""Record and dedup group data models for recdedup.

Records and groups are persisted as plain dict documents. These
dataclasses are the typed view used by the dedup components; stores
only ever see the dict form produced by ``to_dict``.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any

# Candidate key fields carried on a record, in lookup priority order
KEY_FIELDS: tuple[str, ...] = ("isbn_keys", "id_keys", "title_keys")


@dataclass
class Record:
    """Stored bibliographic record.

    Attributes
    ----------
    id : str
        Globally unique, source-prefixed id (``"<source>.<local id>"``).
    source_id : str
        Data source the record was harvested from.
    format : str
        Metadata format tag used to select the MetadataRecord variant.
    oai_id : str
        Identifier in the harvesting protocol, if any.
    deleted : bool
        Record was deleted at the source.
    suppressed : bool
        Record is hidden from publishing and never deduplicated.
    update_needed : bool
        Candidate keys or group membership may be stale.
    host_record_id : str | None
        Linking id of the host record when this is a component part.
    linking_id : str
        Stable id used to link component parts to this record.
    title_keys : list[str]
        Title candidate key (at most one value).
    isbn_keys : list[str]
        Normalized ISBN-13 candidate keys.
    id_keys : list[str]
        Other unique identifier keys in ``(source)value`` form.
    dedup_id : str | None
        Id of the dedup group this record belongs to.
    original_data : Any
        Metadata payload as harvested.
    normalized_data : Any
        Normalized metadata payload; preferred over ``original_data``.
    created : str | None
        ISO8601 creation timestamp (UTC).
    updated : str | None
        ISO8601 last-update timestamp (UTC).
    """

    id: str
    source_id: str
    format: str
    oai_id: str = ""
    deleted: bool = False
    suppressed: bool = False
    update_needed: bool = False
    host_record_id: str | None = None
    linking_id: str = ""
    title_keys: list[str] = field(default_factory=list)
    isbn_keys: list[str] = field(default_factory=list)
    id_keys: list[str] = field(default_factory=list)
    dedup_id: str | None = None
    original_data: Any = None
    normalized_data: Any = None
    created: str | None = None
    updated: str | None = None

    @property
    def metadata(self) -> Any:
        """Payload the metadata parser should read."""
        if self.normalized_data is not None:
            return self.normalized_data
        return self.original_data

    @property
    def is_component_part(self) -> bool:
        """Whether the record is a component part of a host record."""
        return bool(self.host_record_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a storable document.

        Empty key lists and unset optional references are omitted.
        """
        data = asdict(self)
        for key_field in KEY_FIELDS:
            if not data[key_field]:
                del data[key_field]
        for optional in ("host_record_id", "dedup_id", "normalized_data"):
            if data[optional] is None:
                del data[optional]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Record":
        """Create a Record from a stored document.

        Parameters
        ----------
        data : dict[str, Any]
            Document as returned by a store. Unknown fields are ignored.

        Returns
        -------
        Record
            Typed record.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        for key_field in KEY_FIELDS:
            kwargs[key_field] = list(kwargs.get(key_field) or [])
        return cls(**kwargs)


@dataclass
class DedupGroup:
    """Persisted cluster of records believed to describe the same work.

    Attributes
    ----------
    id : str | None
        Group id, assigned by the store on first save.
    ids : list[str]
        Member record ids. Order is irrelevant.
    deleted : bool
        Soft-deletion flag. Groups are never removed from the store.
    changed : str | None
        ISO8601 timestamp of the last membership change.
    """

    id: str | None = None
    ids: list[str] = field(default_factory=list)
    deleted: bool = False
    changed: str | None = None

    @property
    def is_live(self) -> bool:
        """Whether the group is not deleted."""
        return not self.deleted

    def to_dict(self) -> dict[str, Any]:
        """Convert to a storable document."""
        data = asdict(self)
        if data["id"] is None:
            del data["id"]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DedupGroup":
        """Create a DedupGroup from a stored document."""
        return cls(
            id=data.get("id"),
            ids=list(data.get("ids") or []),
            deleted=bool(data.get("deleted", False)),
            changed=data.get("changed"),
        )
