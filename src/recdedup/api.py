"""Public API for loading records and opening stores.

This module provides the high-level helpers used by the CLI:
- Reading harvested record documents from JSONL
- Writing documents (records or dedup groups) to JSONL
- Opening a store by path
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from recdedup.store import MemoryStore, SQLiteStore, Store

__all__ = [
    "ParseError",
    "open_store",
    "read_jsonl",
    "write_jsonl",
]


class ParseError(Exception):
    """Raised when a JSONL input line cannot be read."""

    def __init__(
        self,
        message: str,
        file: str | None = None,
        line: int | None = None,
    ) -> None:
        """Initialize parse error.

        Parameters
        ----------
        message : str
            Error message.
        file : str | None, optional
            File where error occurred.
        line : int | None, optional
            1-based line number where error occurred.
        """
        super().__init__(message)
        self.file = file
        self.line = line


def read_jsonl(path: str | Path) -> Iterator[dict[str, Any]]:
    """Yield JSON objects from a JSONL file, skipping blank lines.

    Parameters
    ----------
    path : str | Path
        JSONL file.

    Yields
    ------
    dict[str, Any]
        One document per non-blank line.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ParseError
        If a line is not a JSON object.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with file_path.open(encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                doc = json.loads(line)
            except json.JSONDecodeError as e:
                raise ParseError(
                    f"{file_path.name}:{line_no}: invalid JSON: {e.msg}",
                    file=str(file_path),
                    line=line_no,
                ) from e
            if not isinstance(doc, dict):
                raise ParseError(
                    f"{file_path.name}:{line_no}: expected a JSON object",
                    file=str(file_path),
                    line=line_no,
                )
            yield doc


def write_jsonl(
    documents: Iterable[Mapping[str, Any]],
    path: str | Path,
    *,
    sort_keys: bool = True,
) -> int:
    """Write documents to a JSONL file (one JSON object per line).

    Parameters
    ----------
    documents : Iterable[Mapping[str, Any]]
        Documents to write.
    path : str | Path
        Output file path.
    sort_keys : bool, optional
        Whether to sort dictionary keys for deterministic output,
        by default True.

    Returns
    -------
    int
        Number of documents written.
    """
    file_path = Path(path)
    count = 0
    with file_path.open("w", encoding="utf-8", newline="\n") as f:
        for doc in documents:
            f.write(json.dumps(dict(doc), ensure_ascii=False, sort_keys=sort_keys) + "\n")
            count += 1
    return count


def open_store(path: str | Path | None) -> Store:
    """Open a store by path.

    Parameters
    ----------
    path : str | Path | None
        SQLite database file, or None (or ``":memory:"``) for a
        process-local ``MemoryStore``.

    Returns
    -------
    Store
        Opened store.

    Examples
    --------
        >>> store = open_store(None)
        >>> store.count_records({})
        0
    """
    if path is None or str(path) == ":memory:":
        return MemoryStore()
    return SQLiteStore(Path(path))
