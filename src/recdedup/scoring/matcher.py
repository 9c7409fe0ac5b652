"""Pairwise duplicate decision through an ordered rule cascade.

The cascade runs cheapest and most discriminating checks first and
stops at the first decisive one:

1. hidden component part status must agree
2. access restrictions must be identical
3. formats must agree, raw or after per-source mapping
4. a shared ISBN is a match
5. a shared other unique identifier is a match
6. disjoint ISSNs are not a match
7. differing publication years are not a match
8. page counts too far apart are not a match
9. series ISSNs must be equal
10. series numbering must be equal
11. both records need a title
12. the scaled title distance must stay below the limit
13. authors must both be absent, or match structurally or by distance
14. otherwise the records match
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from recdedup.audit.logger import AuditLogger
from recdedup.formats.base import MetadataRecord
from recdedup.formats.factory import create_metadata_record
from recdedup.formats.mapping import FormatMapper
from recdedup.models.records import Record
from recdedup.normalize._helpers import normalize_for_match, normalize_key
from recdedup.normalize.keys import create_title_key
from recdedup.scoring.comparators import author_match, scaled_distance

if TYPE_CHECKING:
    from recdedup.engine.config import DedupConfig

__all__ = ["MatchReason", "MatchResult", "MatchScorer"]


class MatchReason(StrEnum):
    """Check that decided a comparison.

    ``ISBN``, ``UNIQUE_ID`` and ``TITLE_AUTHOR`` are match reasons; all
    others reject the pair.
    """

    HIDDEN_COMPONENT_PART = "hidden_component_part"
    ACCESS_RESTRICTIONS = "access_restrictions"
    FORMAT = "format"
    ISBN = "isbn"
    UNIQUE_ID = "unique_id"
    ISSN = "issn"
    YEAR = "year"
    PAGES = "pages"
    SERIES_ISSN = "series_issn"
    SERIES_NUMBERING = "series_numbering"
    NO_TITLE = "no_title"
    TITLE_DISTANCE = "title_distance"
    AUTHOR_MISSING = "author_missing"
    AUTHOR_DISTANCE = "author_distance"
    TITLE_AUTHOR = "title_author"


@dataclass(frozen=True)
class MatchResult:
    """Outcome of a pairwise comparison.

    Attributes
    ----------
    matched : bool
        Whether the records are duplicates.
    reason : MatchReason
        Deciding check.
    title_distance : float | None
        Scaled title distance, if it was computed.
    author_distance : float | None
        Scaled author distance, if it was computed.
    """

    matched: bool
    reason: MatchReason
    title_distance: float | None = None
    author_distance: float | None = None

    def __bool__(self) -> bool:
        return self.matched

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


class MatchScorer:
    """Decide whether two records describe the same work.

    Parameters
    ----------
    config : DedupConfig
        Distance limits, ignored identifiers, article formats and
        per-source settings.
    format_mapper : FormatMapper | None, optional
        Per-source format mapping; built from ``config`` if omitted.
    logger : AuditLogger | None, optional
        Event logger. Decisions are logged at DEBUG.
    """

    def __init__(
        self,
        config: DedupConfig,
        format_mapper: FormatMapper | None = None,
        logger: AuditLogger | None = None,
    ) -> None:
        self.config = config
        self.format_mapper = format_mapper if format_mapper is not None else FormatMapper(config)
        self.logger = logger
        self._ignored: dict[str, list[str]] = {}
        for entry in config.ignored_ids:
            ignored_id, _, title = entry.partition("|")
            self._ignored.setdefault(ignored_id, []).append(
                create_title_key(title, config.full_title_prefixes) if title else ""
            )

    # ---------------------------------------------------------------------------
    # Record-level helpers
    # ---------------------------------------------------------------------------

    def filter_ids(self, ids: list[str], record: Record) -> list[str]:
        """Remove configured ignored identifiers.

        An identifier configured with a title is only ignored for records
        whose title key starts with that title's key.

        Parameters
        ----------
        ids : list[str]
            Identifiers (ISBNs, ISSNs or other unique ids).
        record : Record
            Stored record the identifiers belong to.

        Returns
        -------
        list[str]
            Identifiers that may be used for matching.
        """
        if not self._ignored:
            return list(ids)
        kept = []
        for value in ids:
            title_keys = self._ignored.get(value)
            if title_keys is not None and any(
                not key or any(t.startswith(key) for t in record.title_keys) for key in title_keys
            ):
                continue
            kept.append(value)
        return kept

    def is_hidden_component_part(self, record: Record, metadata: MetadataRecord) -> bool:
        """Whether a component part is merged into its host downstream.

        Parameters
        ----------
        record : Record
            Stored record.
        metadata : MetadataRecord
            Parsed metadata of ``record``.

        Returns
        -------
        bool
            True for component parts of sources merging all parts, or
            merging non-article parts when the part is not an article
            (or is a printed article).
        """
        if not record.host_record_id:
            return False
        settings = self.config.source(record.source_id)
        mode = settings.component_parts if settings is not None else "as_is"
        if mode == "merge_all":
            return True
        if mode in ("merge_non_articles", "merge_non_earticles"):
            fmt = metadata.get_format()
            return fmt not in self.config.all_article_formats or fmt in self.config.article_formats
        return False

    # ---------------------------------------------------------------------------
    # Cascade
    # ---------------------------------------------------------------------------

    def matches(
        self,
        record: Record,
        metadata: MetadataRecord,
        candidate: Record,
        candidate_metadata: MetadataRecord | None = None,
    ) -> bool:
        """Whether ``candidate`` is a duplicate of ``record``.

        See :meth:`explain` for parameters.
        """
        return self.explain(record, metadata, candidate, candidate_metadata).matched

    def explain(
        self,
        record: Record,
        metadata: MetadataRecord,
        candidate: Record,
        candidate_metadata: MetadataRecord | None = None,
    ) -> MatchResult:
        """Run the match cascade and report the deciding check.

        Parameters
        ----------
        record : Record
            Stored record being deduplicated.
        metadata : MetadataRecord
            Parsed metadata of ``record``.
        candidate : Record
            Stored candidate record.
        candidate_metadata : MetadataRecord | None, optional
            Parsed metadata of ``candidate``; parsed on demand if omitted.

        Returns
        -------
        MatchResult
            Decision with its reason and any computed distances.

        Raises
        ------
        ValueError
            If the candidate's format is unknown or its payload malformed.
        """
        if candidate_metadata is None:
            candidate_metadata = create_metadata_record(candidate)
        result = self._cascade(record, metadata, candidate, candidate_metadata)
        if self.logger and self.logger.enabled_for("DEBUG"):
            self.logger.event(
                "match_decision",
                data={"candidate": candidate.id, **result.to_dict()},
                level="DEBUG",
                rid=record.id,
            )
        return result

    def _cascade(
        self,
        record: Record,
        metadata: MetadataRecord,
        candidate: Record,
        candidate_metadata: MetadataRecord,
    ) -> MatchResult:
        config = self.config

        if self.is_hidden_component_part(record, metadata) != self.is_hidden_component_part(
            candidate, candidate_metadata
        ):
            return MatchResult(False, MatchReason.HIDDEN_COMPONENT_PART)

        if metadata.get_access_restrictions() != candidate_metadata.get_access_restrictions():
            return MatchResult(False, MatchReason.ACCESS_RESTRICTIONS)

        fmt = metadata.get_format()
        candidate_fmt = candidate_metadata.get_format()
        if fmt != candidate_fmt and self.format_mapper.map_format(
            record.source_id, fmt
        ) != self.format_mapper.map_format(candidate.source_id, candidate_fmt):
            return MatchResult(False, MatchReason.FORMAT)

        isbns = set(self.filter_ids(metadata.get_isbns(), record))
        if isbns.intersection(self.filter_ids(candidate_metadata.get_isbns(), candidate)):
            return MatchResult(True, MatchReason.ISBN)

        unique_ids = set(self.filter_ids(metadata.get_unique_ids(), record))
        if unique_ids.intersection(self.filter_ids(candidate_metadata.get_unique_ids(), candidate)):
            return MatchResult(True, MatchReason.UNIQUE_ID)

        issns = set(self.filter_ids(metadata.get_issns(), record))
        candidate_issns = set(self.filter_ids(candidate_metadata.get_issns(), candidate))
        if issns and candidate_issns and not issns & candidate_issns:
            return MatchResult(False, MatchReason.ISSN)

        year = metadata.get_publication_year()
        candidate_year = candidate_metadata.get_publication_year()
        if year and candidate_year and year != candidate_year:
            return MatchResult(False, MatchReason.YEAR)

        pages = metadata.get_page_count()
        candidate_pages = candidate_metadata.get_page_count()
        if pages and candidate_pages and abs(pages - candidate_pages) > config.page_count_tolerance:
            return MatchResult(False, MatchReason.PAGES)

        if metadata.get_series_issn() != candidate_metadata.get_series_issn():
            return MatchResult(False, MatchReason.SERIES_ISSN)

        if metadata.get_series_numbering() != candidate_metadata.get_series_numbering():
            return MatchResult(False, MatchReason.SERIES_NUMBERING)

        title = normalize_key(metadata.get_title(for_filing=True))
        candidate_title = normalize_key(candidate_metadata.get_title(for_filing=True))
        if not title or not candidate_title:
            return MatchResult(False, MatchReason.NO_TITLE)

        title_distance = scaled_distance(title, candidate_title, config.distance_truncate)
        if title_distance >= config.title_distance_max:
            return MatchResult(False, MatchReason.TITLE_DISTANCE, title_distance)

        author = normalize_for_match(metadata.get_main_author())
        candidate_author = normalize_for_match(candidate_metadata.get_main_author())
        author_distance: float | None = None
        if author or candidate_author:
            if not author or not candidate_author:
                return MatchResult(False, MatchReason.AUTHOR_MISSING, title_distance)
            if not author_match(author, candidate_author):
                author_distance = scaled_distance(
                    author, candidate_author, config.distance_truncate
                )
                if author_distance > config.author_distance_max:
                    return MatchResult(
                        False, MatchReason.AUTHOR_DISTANCE, title_distance, author_distance
                    )

        return MatchResult(True, MatchReason.TITLE_AUTHOR, title_distance, author_distance)
