"""MARC metadata format in MARC-in-JSON serialization.

The payload is a leader plus an ordered list of fields, each a
single-key object mapping the tag either to a control field value or to
a data field with indicators and ordered subfields::

    {
        "leader": "00000cam a2200000 a 4500",
        "fields": [
            {"001": "123"},
            {"245": {"ind1": "1", "ind2": "4",
                     "subfields": [{"a": "The title :"}, {"b": "subtitle."}]}}
        ]
    }

Fields are parsed once into typed ``ControlField`` / ``DataField``
occurrences grouped by tag, preserving repeatable tags and subfield order.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from recdedup.formats.base import strip_trailing_punctuation
from recdedup.normalize._helpers import normalize_isbn, normalize_issn, normalize_key

__all__ = ["ControlField", "DataField", "MarcRecord", "parse_marc_fields"]

_YEAR_RE = re.compile(r"(\d{4})")
_NUMBER_RE = re.compile(r"(\d+)")
_ISBD_END = ("/", ":", ";", ",", "=", "(", "[")

# Leader/06 type of record
_LEADER6_FORMATS = {
    "C": "MusicalScore",
    "D": "MusicalScore",
    "E": "Map",
    "F": "Map",
    "G": "Slide",
    "I": "SoundRecording",
    "J": "MusicRecording",
    "K": "Photo",
    "M": "Electronic",
    "O": "Kit",
    "P": "Kit",
    "R": "PhysicalObject",
    "T": "Manuscript",
}

# 008/21 type of continuing resource
_SERIAL_FORMATS = {"N": "Newspaper", "P": "Journal"}


@dataclass(frozen=True)
class ControlField:
    """Control field occurrence (tags 001-009)."""

    tag: str
    value: str


@dataclass(frozen=True)
class DataField:
    """Data field occurrence with indicators and ordered subfields.

    Attributes
    ----------
    tag : str
        Three character field tag.
    ind1 : str
        First indicator.
    ind2 : str
        Second indicator.
    subfields : tuple[tuple[str, str], ...]
        ``(code, value)`` pairs in record order.
    """

    tag: str
    ind1: str
    ind2: str
    subfields: tuple[tuple[str, str], ...]

    def subfield(self, code: str) -> str:
        """Return the first value of subfield ``code`` or an empty string."""
        for sub_code, value in self.subfields:
            if sub_code == code:
                return value
        return ""

    def subfield_values(self, code: str) -> list[str]:
        """Return all values of subfield ``code``."""
        return [value for sub_code, value in self.subfields if sub_code == code]


def parse_marc_fields(
    raw_fields: list[dict[str, Any]],
) -> dict[str, list[ControlField | DataField]]:
    """Parse MARC-in-JSON field objects into typed occurrences by tag.

    Parameters
    ----------
    raw_fields : list[dict[str, Any]]
        MARC-in-JSON ``fields`` array.

    Returns
    -------
    dict[str, list[ControlField | DataField]]
        Occurrences grouped by tag, in record order.

    Raises
    ------
    ValueError
        If a field object is malformed.
    """
    fields: dict[str, list[ControlField | DataField]] = defaultdict(list)
    for raw in raw_fields:
        if not isinstance(raw, dict) or len(raw) != 1:
            raise ValueError(f"MARC field must be a single-key object, got {raw!r}")
        ((tag, content),) = raw.items()
        if isinstance(content, str):
            fields[tag].append(ControlField(tag=tag, value=content))
            continue
        if not isinstance(content, dict):
            raise ValueError(f"Malformed MARC field {tag}: {content!r}")
        subfields = tuple(
            (code, str(value))
            for subfield in content.get("subfields", [])
            for code, value in subfield.items()
        )
        fields[tag].append(
            DataField(
                tag=tag,
                ind1=str(content.get("ind1", " ")),
                ind2=str(content.get("ind2", " ")),
                subfields=subfields,
            )
        )
    return dict(fields)


def _has_trailing_punctuation(text: str) -> bool:
    text = text.rstrip(" ")
    if not text:
        return False
    if text.endswith(_ISBD_END):
        return True
    return text.endswith(".") and text[-3:-2] != " "


class MarcRecord:
    """MetadataRecord over a MARC-in-JSON payload.

    Parameters
    ----------
    data : dict[str, Any]
        MARC-in-JSON object with ``leader`` and ``fields``.

    Raises
    ------
    ValueError
        If the payload is not a MARC-in-JSON object.
    """

    format_name = "marc"

    def __init__(self, data: dict[str, Any]) -> None:
        if not isinstance(data, dict) or not isinstance(data.get("fields", []), list):
            raise ValueError("MARC payload must be an object with a 'fields' array")
        self.leader: str = str(data.get("leader", "")).ljust(24)
        self.fields = parse_marc_fields(data.get("fields", []))

    # ---------------------------------------------------------------------------
    # Field access
    # ---------------------------------------------------------------------------

    def control_field(self, tag: str) -> str:
        """Return the value of the first control field ``tag``."""
        for occurrence in self.fields.get(tag, []):
            if isinstance(occurrence, ControlField):
                return occurrence.value
        return ""

    def data_fields(self, tag: str) -> list[DataField]:
        """Return every data field occurrence of ``tag``."""
        return [f for f in self.fields.get(tag, []) if isinstance(f, DataField)]

    def data_field(self, tag: str) -> DataField | None:
        """Return the first data field occurrence of ``tag``."""
        occurrences = self.data_fields(tag)
        return occurrences[0] if occurrences else None

    # ---------------------------------------------------------------------------
    # MetadataRecord
    # ---------------------------------------------------------------------------

    def get_title(self, for_filing: bool = False) -> str:
        field = self.data_field("245") or self.data_field("240")
        if field is None:
            return ""
        title = field.subfield("a")
        if for_filing and field.ind2.isdigit():
            nonfiling = int(field.ind2)
            if 0 < nonfiling < len(title):
                title = title[nonfiling:]
        for code, joiner in (("b", " :"), ("n", "."), ("p", ".")):
            value = field.subfield(code)
            if value:
                if not _has_trailing_punctuation(title):
                    title += joiner
                title += f" {value}"
        return strip_trailing_punctuation(title)

    def get_full_title(self) -> str:
        field = self.data_field("245")
        if field is None:
            return ""
        return " ".join(value for _, value in field.subfields)

    def get_isbns(self) -> list[str]:
        isbns = (normalize_isbn(f.subfield("a")) for f in self.data_fields("020"))
        return list(dict.fromkeys(isbn for isbn in isbns if isbn))

    def get_issns(self) -> list[str]:
        issns = (normalize_issn(f.subfield("a")) for f in self.data_fields("022"))
        return list(dict.fromkeys(issn for issn in issns if issn))

    def get_unique_ids(self) -> list[str]:
        ids: list[str] = []
        f010 = self.data_field("010")
        if f010 is not None:
            lccn = normalize_key(f010.subfield("a"))
            if lccn:
                ids.append(f"(lccn){lccn}")
        # National bibliography numbers and agency control numbers
        for tag in ("015", "016"):
            for field in self.data_fields(tag):
                number = normalize_key(field.subfield("a"))
                source = field.subfield("2")
                if number and source:
                    ids.append(f"({source}){number}")
        return list(dict.fromkeys(ids))

    def get_format(self) -> str:
        online = any(f.upper().startswith("C") for f in self._control_values("007"))
        type_of_record = self.leader[6].upper()
        if type_of_record in _LEADER6_FORMATS:
            return _LEADER6_FORMATS[type_of_record]

        bib_level = self.leader[7].upper()
        if bib_level == "M":
            return "eBook" if online else "Book"
        if bib_level == "S":
            f008 = self.control_field("008")
            code = f008[21].upper() if len(f008) > 21 else ""
            return _SERIAL_FORMATS.get(code, "Serial")
        if bib_level == "A":
            return "eBookPart" if online else "BookPart"
        if bib_level == "B":
            return "eArticle" if online else "Article"
        if bib_level == "C":
            return "Collection"
        if bib_level == "D":
            return "Subunit"
        if bib_level == "I":
            return "ContinuouslyUpdatedResource"
        return ""

    def _control_values(self, tag: str) -> list[str]:
        return [f.value for f in self.fields.get(tag, []) if isinstance(f, ControlField)]

    def get_publication_year(self) -> str:
        for tag in ("260", "264"):
            for field in self.data_fields(tag):
                match = _YEAR_RE.search(field.subfield("c"))
                if match:
                    return match.group(1)
        match = _YEAR_RE.match(self.control_field("008")[7:11])
        return match.group(1) if match else ""

    def get_page_count(self) -> int | None:
        field = self.data_field("300")
        if field is None:
            return None
        match = _NUMBER_RE.search(field.subfield("a"))
        return int(match.group(1)) if match else None

    def get_series_issn(self) -> str:
        field = self.data_field("490")
        return normalize_issn(field.subfield("x")) if field is not None else ""

    def get_series_numbering(self) -> str:
        field = self.data_field("490")
        return field.subfield("v") if field is not None else ""

    def get_main_author(self) -> str:
        field = self.data_field("100")
        if field is None:
            return ""
        author = field.subfield("a")
        # Forename-first entry: invert to "Last, First"
        if field.ind1 == "0" and "," not in author:
            first, _, last = author.strip().rpartition(" ")
            if first:
                author = f"{last}, {first}"
        return strip_trailing_punctuation(author)

    def get_access_restrictions(self) -> str:
        return " ".join(
            value.strip() for f in self.data_fields("506") for value in f.subfield_values("a")
        )
