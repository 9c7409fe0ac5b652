"""Canonical metadata format: a JSON object of already-extracted fields.

Upstream normalization pipelines that have done their own field
extraction store records in this format::

    {
        "title": "The design of everyday things",
        "nonfiling": 4,
        "main_author": "Norman, Donald A.",
        "isbns": ["0-465-06710-7"],
        "year": "2013",
        "pages": 368,
        "format": "Book"
    }
"""

from __future__ import annotations

import re
from typing import Any

from recdedup.formats.base import strip_trailing_punctuation
from recdedup.normalize._helpers import normalize_isbn, normalize_issn

__all__ = ["CanonicalRecord"]

_YEAR_RE = re.compile(r"(\d{4})")
_NUMBER_RE = re.compile(r"(\d+)")


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [str(v) for v in value if v]


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


class CanonicalRecord:
    """MetadataRecord over a dict of canonical fields.

    Parameters
    ----------
    data : dict[str, Any]
        Canonical field payload. Every field is optional.

    Raises
    ------
    ValueError
        If ``data`` is not a JSON object.
    """

    format_name = "canonical"

    def __init__(self, data: dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise ValueError(f"Canonical payload must be an object, got {type(data).__name__}")
        self.data = data

    def _str(self, key: str) -> str:
        value = self.data.get(key)
        return str(value).strip() if value is not None else ""

    def get_title(self, for_filing: bool = False) -> str:
        title = self._str("title")
        if for_filing:
            nonfiling = int(self.data.get("nonfiling") or 0)
            if 0 < nonfiling < len(title):
                title = title[nonfiling:]
        return strip_trailing_punctuation(title)

    def get_full_title(self) -> str:
        return self._str("full_title") or self._str("title")

    def get_isbns(self) -> list[str]:
        return _unique([normalize_isbn(v) for v in _as_list(self.data.get("isbns"))])

    def get_issns(self) -> list[str]:
        return _unique([normalize_issn(v) for v in _as_list(self.data.get("issns"))])

    def get_unique_ids(self) -> list[str]:
        return _unique(_as_list(self.data.get("unique_ids")))

    def get_format(self) -> str:
        return self._str("format")

    def get_publication_year(self) -> str:
        match = _YEAR_RE.search(self._str("year"))
        return match.group(1) if match else ""

    def get_page_count(self) -> int | None:
        match = _NUMBER_RE.search(self._str("pages"))
        return int(match.group(1)) if match else None

    def get_series_issn(self) -> str:
        return normalize_issn(self._str("series_issn"))

    def get_series_numbering(self) -> str:
        return self._str("series_numbering")

    def get_main_author(self) -> str:
        return strip_trailing_punctuation(self._str("main_author"))

    def get_access_restrictions(self) -> str:
        return self._str("access_restrictions")
