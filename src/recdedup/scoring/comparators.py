"""String comparators for the match cascade.

Pure, deterministic functions over already normalized strings. Both
functions are symmetric in their arguments.
"""

from rapidfuzz.distance import Levenshtein

__all__ = ["author_match", "scaled_distance"]


def scaled_distance(a: str, b: str, truncate: int = 255) -> float:
    """Levenshtein distance scaled to the string length, in percent.

    Both strings are truncated to ``truncate`` characters before the
    distance is computed. The distance is scaled by each string's full
    length and the larger value is returned, so the result does not
    depend on argument order.

    Parameters
    ----------
    a : str
        First normalized string.
    b : str
        Second normalized string.
    truncate : int, optional
        Length limit applied before computing the distance.

    Returns
    -------
    float
        ``distance / min(len(a), len(b)) * 100``; 0 for two empty
        strings, infinity when only one is empty.

    Examples
    --------
    >>> scaled_distance("designpatterns", "designpatterns")
    0.0
    """
    if not a or not b:
        return 0.0 if a == b else float("inf")
    distance = Levenshtein.distance(a[:truncate], b[:truncate])
    return max(distance / len(a), distance / len(b)) * 100


def author_match(a1: str, a2: str) -> bool:
    """Lenient structural comparison of two normalized author names.

    Names match when they are equal; when both have at least 6
    characters and one is a prefix of the other; or word by word, when
    the first words are equal and every later word pair shares at least
    its initial letter.

    Parameters
    ----------
    a1 : str
        Normalized author ("last first"), words separated by spaces.
    a2 : str
        Normalized author.

    Returns
    -------
    bool
        True if the names are structurally compatible.

    Examples
    --------
    >>> author_match("smith john", "smith j")
    True
    >>> author_match("smith john", "smyth john")
    False
    """
    if a1 == a2:
        return True
    if len(a1) < 6 or len(a2) < 6:
        return False
    if a1.startswith(a2) or a2.startswith(a1):
        return True

    for i, (w1, w2) in enumerate(zip(a1.split(" "), a2.split(" "), strict=False)):
        if w1 == w2:
            continue
        # First word (surname) must match exactly
        if i == 0:
            return False
        if w1[:1] != w2[:1]:
            return False
    return True
