"""Dedup configuration and run result dataclasses."""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

from recdedup.normalize._helpers import normalize_key

__all__ = [
    "COMPONENT_PART_MODES",
    "CONFIG_SCHEMA",
    "ConfigError",
    "DedupConfig",
    "RunResult",
    "SourceSettings",
    "load_config",
]

# How component parts of a source are presented downstream
COMPONENT_PART_MODES = frozenset(
    {"as_is", "merge_all", "merge_non_articles", "merge_non_earticles"}
)

_THRESHOLD_FIELDS = {
    "title_distance_max": {"type": "number", "minimum": 0},
    "author_distance_max": {"type": "number", "minimum": 0},
    "page_count_tolerance": {"type": "integer", "minimum": 0},
    "max_candidates": {"type": "integer", "minimum": 1},
    "hot_key_max_candidates": {"type": "integer", "minimum": 1},
    "hot_key_cache_size": {"type": "integer", "minimum": 1},
    "slow_record_seconds": {"type": "number", "minimum": 0},
    "distance_truncate": {"type": "integer", "minimum": 1},
    "id_key_max_length": {"type": "integer", "minimum": 1},
    "title_key_max_long_words": {"type": "integer", "minimum": 1},
    "title_key_max_chars": {"type": "integer", "minimum": 1},
    "title_key_full_max_chars": {"type": "integer", "minimum": 1},
    "title_key_truncate": {"type": "integer", "minimum": 1},
    "progress_interval": {"type": "integer", "minimum": 1},
}

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        **_THRESHOLD_FIELDS,
        "full_title_prefixes": {"type": "array", "items": {"type": "string"}},
        "ignored_ids": {"type": "array", "items": {"type": "string"}},
        "article_formats": {"type": "array", "items": {"type": "string"}},
        "earticle_formats": {"type": "array", "items": {"type": "string"}},
        "sources": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "dedup": {"type": "boolean"},
                    "component_parts": {"enum": sorted(COMPONENT_PART_MODES)},
                    "format_map": {
                        "type": "object",
                        "additionalProperties": {"type": "string"},
                    },
                },
            },
        },
    },
}


class ConfigError(ValueError):
    """Raised when a dedup configuration is malformed."""


@dataclass
class SourceSettings:
    """Per-source dedup settings.

    Attributes
    ----------
    dedup : bool
        Whether records of the source take part in deduplication.
    component_parts : str
        Component part handling mode (see ``COMPONENT_PART_MODES``).
    format_map : dict[str, str]
        Raw format to normalized format mapping. The ``##empty`` entry
        supplies the value for records without a format.
    """

    dedup: bool = True
    component_parts: str = "as_is"
    format_map: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate component part mode."""
        if self.component_parts not in COMPONENT_PART_MODES:
            valid = ", ".join(sorted(COMPONENT_PART_MODES))
            raise ConfigError(
                f"Unknown component_parts mode: {self.component_parts!r}. Valid modes: {valid}"
            )


@dataclass
class DedupConfig:
    """Configuration for the dedup engine.

    Every threshold the match cascade and candidate search rely on is a
    named field so that components receive it explicitly at construction.

    Attributes
    ----------
    title_distance_max : float
        Scaled title distance at or above which titles differ (default: 10).
    author_distance_max : float
        Largest scaled author distance that still matches (default: 20).
    page_count_tolerance : int
        Largest page count difference that still matches (default: 10).
    max_candidates : int
        Candidates scored per key before the key is flagged hot.
    hot_key_max_candidates : int
        Candidates scored per key once the key is already hot.
    hot_key_cache_size : int
        Number of hot keys remembered per process.
    slow_record_seconds : float
        Per-record wall clock time above which an INFO event is logged.
    distance_truncate : int
        Strings are truncated to this length before Levenshtein distance.
    id_key_max_length : int
        Other-ID keys are truncated to this length.
    title_key_max_long_words : int
        Title key stops after this many words longer than 3 characters.
    title_key_max_chars : int
        Title key stops after this many characters.
    title_key_full_max_chars : int
        Character budget for titles starting with a full title prefix.
    title_key_truncate : int
        Hard length limit of the concatenated title key.
    progress_interval : int
        Records between progress events.
    full_title_prefixes : list[str]
        Title beginnings that need a longer title key (e.g., generic
        series titles). Normalized on load.
    ignored_ids : list[str]
        Identifiers never used for matching, as ``"id"`` or ``"id|title"``.
        With a title, the id is ignored only for records whose title key
        starts with that title's key.
    article_formats : list[str]
        Formats of printed articles.
    earticle_formats : list[str]
        Formats of electronic articles.
    sources : dict[str, SourceSettings]
        Per-source settings. Unknown sources do not deduplicate.
    """

    title_distance_max: float = 10
    author_distance_max: float = 20
    page_count_tolerance: int = 10
    max_candidates: int = 1000
    hot_key_max_candidates: int = 100
    hot_key_cache_size: int = 2000
    slow_record_seconds: float = 0.7
    distance_truncate: int = 255
    id_key_max_length: int = 200
    title_key_max_long_words: int = 3
    title_key_max_chars: int = 35
    title_key_full_max_chars: int = 100
    title_key_truncate: int = 200
    progress_interval: int = 1000
    full_title_prefixes: list[str] = field(default_factory=list)
    ignored_ids: list[str] = field(default_factory=list)
    article_formats: list[str] = field(default_factory=lambda: ["Article"])
    earticle_formats: list[str] = field(default_factory=lambda: ["eArticle"])
    sources: dict[str, SourceSettings] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate thresholds and coerce nested settings."""
        if self.hot_key_max_candidates > self.max_candidates:
            raise ConfigError(
                f"hot_key_max_candidates ({self.hot_key_max_candidates}) must not exceed "
                f"max_candidates ({self.max_candidates})"
            )

        if self.title_key_full_max_chars < self.title_key_max_chars:
            raise ConfigError(
                f"title_key_full_max_chars ({self.title_key_full_max_chars}) must not be "
                f"less than title_key_max_chars ({self.title_key_max_chars})"
            )

        for name in ("title_distance_max", "author_distance_max", "slow_record_seconds"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0, got {getattr(self, name)}")

        self.full_title_prefixes = [
            key for key in (normalize_key(p) for p in self.full_title_prefixes) if key
        ]

        self.sources = {
            source_id: settings
            if isinstance(settings, SourceSettings)
            else SourceSettings(**settings)
            for source_id, settings in self.sources.items()
        }

    def source(self, source_id: str) -> SourceSettings | None:
        """Return settings of a source, or None if it is not configured."""
        return self.sources.get(source_id)

    def dedup_enabled(self, source_id: str) -> bool:
        """Whether records of ``source_id`` take part in deduplication."""
        settings = self.sources.get(source_id)
        return settings is not None and settings.dedup

    @property
    def all_article_formats(self) -> list[str]:
        """Printed and electronic article formats."""
        return [*self.article_formats, *self.earticle_formats]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


def load_config(path: Path) -> DedupConfig:
    """Load and validate a JSON dedup configuration file.

    Parameters
    ----------
    path : Path
        Path to the JSON configuration.

    Returns
    -------
    DedupConfig
        Validated configuration.

    Raises
    ------
    ConfigError
        If the file cannot be read, is not valid JSON, or does not
        conform to ``CONFIG_SCHEMA``.
    """
    try:
        with Path(path).open(encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config {path}: {e}") from e

    try:
        jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"Invalid config {path} at {location}: {e.message}") from e

    return DedupConfig(**data)


@dataclass
class RunResult:
    """Counters from a dedup run.

    Attributes
    ----------
    success : bool
        Whether every record was processed without error.
    processed : int
        Records evaluated.
    deduplicated : int
        Records that were linked to a duplicate.
    failed : int
        Records whose evaluation raised.
    slow : int
        Records that took longer than ``slow_record_seconds``.
    duration_seconds : float
        Wall clock time of the run.
    fixes : list[str]
        Repair lines produced by an integrity check run.
    """

    success: bool = True
    processed: int = 0
    deduplicated: int = 0
    failed: int = 0
    slow: int = 0
    duration_seconds: float = 0.0
    fixes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
