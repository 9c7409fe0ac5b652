"""Per-process LRU set of candidate keys that produced too many candidates."""

import threading
from collections import OrderedDict

__all__ = ["HotKeyCache"]


class HotKeyCache:
    """Bounded, thread-safe set of hot candidate keys.

    Membership only lowers the scan ceiling for a key; it is a cost
    bound, never a correctness signal, so losing entries on eviction
    is harmless.

    Parameters
    ----------
    max_size : int, optional
        Entries kept before the least recently flagged one is evicted.

    Examples
    --------
    >>> cache = HotKeyCache(max_size=2)
    >>> cache.add("title_keys=untitled")
    >>> "title_keys=untitled" in cache
    True
    """

    def __init__(self, max_size: int = 2000) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self._keys: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def make_key(key_type: str, key_value: str) -> str:
        """Build the cache entry for a candidate key."""
        return f"{key_type}={key_value}"

    def add(self, key: str) -> None:
        """Flag ``key`` as hot, evicting the oldest entry if full."""
        with self._lock:
            self._keys[key] = None
            self._keys.move_to_end(key)
            while len(self._keys) > self.max_size:
                self._keys.popitem(last=False)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
