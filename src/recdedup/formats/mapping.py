"""Per-source format mapping used by the match cascade."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from recdedup.engine.config import DedupConfig

__all__ = ["EMPTY_FORMAT_KEY", "FormatMapper"]

# Mapping table entry that supplies the value for an empty format
EMPTY_FORMAT_KEY = "##empty"


class FormatMapper:
    """Map raw record formats through per-source mapping tables.

    Parameters
    ----------
    config : DedupConfig
        Configuration holding each source's ``format_map``.
    """

    def __init__(self, config: DedupConfig) -> None:
        self.config = config

    def map_format(self, source_id: str, fmt: str) -> str:
        """Map ``fmt`` with the table of ``source_id``.

        Parameters
        ----------
        source_id : str
            Source the record belongs to.
        fmt : str
            Raw format.

        Returns
        -------
        str
            Mapped format, or ``fmt`` unchanged when the source has no
            mapping for it.
        """
        settings = self.config.source(source_id)
        if settings is None or not settings.format_map:
            return fmt
        if not fmt:
            return settings.format_map.get(EMPTY_FORMAT_KEY, fmt)
        return settings.format_map.get(fmt, fmt)
