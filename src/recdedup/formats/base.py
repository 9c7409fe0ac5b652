"""Uniform read interface over parsed metadata records.

Every record format the dedup engine can read implements
``MetadataRecord``. The match cascade and key extraction only ever talk
to this protocol, never to a concrete format.
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

__all__ = ["MetadataRecord", "strip_trailing_punctuation"]

_TRAILING_PUNCT_RE = re.compile(r"[\s/:;,=(\[]+$")
_TRAILING_PERIOD_RE = re.compile(r"(?<!\s\S)\.$")


def strip_trailing_punctuation(text: str) -> str:
    """Strip ISBD-style trailing punctuation from a field value.

    A trailing period is kept when it closes a single-letter
    abbreviation (e.g. an initial in "Smith, J.").
    """
    text = _TRAILING_PUNCT_RE.sub("", text.strip())
    text = _TRAILING_PERIOD_RE.sub("", text)
    return _TRAILING_PUNCT_RE.sub("", text)


@runtime_checkable
class MetadataRecord(Protocol):
    """Structural protocol every metadata format must satisfy.

    Absent values are reported as empty strings, empty lists, or None,
    never by raising.
    """

    def get_title(self, for_filing: bool = False) -> str:
        """Return the title, without leading non-filing characters if requested."""
        ...

    def get_full_title(self) -> str:
        """Return the full title statement (diagnostics only)."""
        ...

    def get_isbns(self) -> list[str]:
        """Return distinct normalized ISBN-13 values."""
        ...

    def get_issns(self) -> list[str]:
        """Return normalized ISSNs."""
        ...

    def get_unique_ids(self) -> list[str]:
        """Return other unique identifiers in ``(source)value`` form."""
        ...

    def get_format(self) -> str:
        """Return the record format (e.g., "Book", "Article")."""
        ...

    def get_publication_year(self) -> str:
        """Return the four digit publication year or an empty string."""
        ...

    def get_page_count(self) -> int | None:
        """Return the page count or None."""
        ...

    def get_series_issn(self) -> str:
        """Return the ISSN of the series the record belongs to."""
        ...

    def get_series_numbering(self) -> str:
        """Return the numbering within the series."""
        ...

    def get_main_author(self) -> str:
        """Return the main author as "Last, First"."""
        ...

    def get_access_restrictions(self) -> str:
        """Return the access restriction statement."""
        ...
