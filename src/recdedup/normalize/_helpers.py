"""Helper functions and compiled regex patterns for key normalization.

This module provides the folding and cleanup primitives shared by
candidate key extraction and match scoring.
"""

import re
import unicodedata

# Pre-compiled regex patterns
ISBN_CANDIDATE_RE = re.compile(r"([0-9]{9,12}[0-9xX])")
ISBN10_RE = re.compile(r"^([0-9]{9})[0-9xX]$")
ISSN_RE = re.compile(r"([0-9]{4})-?([0-9]{3}[0-9xX])")
NON_WORD_RE = re.compile(r"[\W_]+", re.UNICODE)

# Letters that do not decompose into a base letter plus a combining mark
FOLDING_TABLE = str.maketrans(
    {
        "æ": "a",
        "ø": "o",
        "ð": "o",
        "þ": "b",
        "ß": "ss",
        "œ": "oe",
        "ł": "l",
        "đ": "d",
        "ı": "i",
    }
)


# ---------------------------------------------------------------------------
# Text normalization functions
# ---------------------------------------------------------------------------


def strip_accents(text: str) -> str:
    """Remove diacritical marks for cross-locale matching.

    Parameters
    ----------
    text : str
        Input text with potential diacritics.

    Returns
    -------
    str
        Text with diacritical marks removed.
    """
    nfd = unicodedata.normalize("NFD", text)
    stripped = "".join(c for c in nfd if unicodedata.category(c) != "Mn")
    return unicodedata.normalize("NFC", stripped)


def fold(text: str) -> str:
    """Casefold and fold letters to their unaccented base form."""
    text = unicodedata.normalize("NFKC", text)
    text = text.casefold().translate(FOLDING_TABLE)
    return strip_accents(text)


def normalize_key(text: str | None) -> str:
    """Normalize a string into a compact comparison key.

    Folds diacritics and case, then removes everything that is not a
    letter or a digit, whitespace included.

    Parameters
    ----------
    text : str | None
        Raw text.

    Returns
    -------
    str
        Normalized key, empty if nothing survives.

    Examples
    --------
    >>> normalize_key("Design Patterns: Elements")
    'designpatternselements'
    """
    if not text:
        return ""
    return NON_WORD_RE.sub("", fold(text))


def normalize_for_match(text: str | None) -> str:
    """Normalize a string for comparison while keeping word boundaries.

    Like :func:`normalize_key` but punctuation and whitespace runs are
    collapsed to a single space, so the result can still be split into
    words.

    Parameters
    ----------
    text : str | None
        Raw text.

    Returns
    -------
    str
        Normalized text.

    Examples
    --------
    >>> normalize_for_match("Smith, J.")
    'smith j'
    """
    if not text:
        return ""
    return " ".join(NON_WORD_RE.sub(" ", fold(text)).split())


# ---------------------------------------------------------------------------
# Identifier normalization
# ---------------------------------------------------------------------------


def _isbn10_check_char(digits: str) -> str:
    total = sum((10 - i) * int(d) for i, d in enumerate(digits[:9]))
    check = (11 - total % 11) % 11
    return "X" if check == 10 else str(check)


def _isbn13_check_digit(digits: str) -> str:
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(digits[:12]))
    return str((10 - total % 10) % 10)


def isbn10_to_13(isbn: str) -> str | None:
    """Convert a dashless ISBN-10 to ISBN-13.

    Parameters
    ----------
    isbn : str
        ISBN-10 without dashes.

    Returns
    -------
    str | None
        ISBN-13, or None if the input is not a valid ISBN-10.
    """
    match = ISBN10_RE.match(isbn)
    if not match:
        return None
    if isbn[9].upper() != _isbn10_check_char(isbn):
        return None
    stem = "978" + match.group(1)
    return stem + _isbn13_check_digit(stem)


def normalize_isbn(isbn: str | None) -> str:
    """Normalize an ISBN to ISBN-13 without dashes.

    Parameters
    ----------
    isbn : str | None
        ISBN in any common notation (dashes, trailing qualifiers).

    Returns
    -------
    str
        Normalized ISBN-13, or an empty string if none could be found.
    """
    if not isbn:
        return ""
    match = ISBN_CANDIDATE_RE.search(isbn.replace("-", ""))
    if not match:
        return ""
    value = match.group(1)
    if len(value) == 10:
        return isbn10_to_13(value) or ""
    return value


def normalize_issn(issn: str | None) -> str:
    """Normalize an ISSN to the ``NNNN-NNNC`` form.

    Returns an empty string when no ISSN can be found in the input.
    """
    if not issn:
        return ""
    match = ISSN_RE.search(issn)
    if not match:
        return ""
    return f"{match.group(1)}-{match.group(2).upper()}"
