"""
In-memory cache with TTL expiry and LRU eviction.
Holds learning artifacts keyed by (video_id, language) and content-keyed AI results.
"""

import hashlib
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from config.settings import settings


V = TypeVar("V")


def content_key(*parts: str) -> str:
    """Generate a cache key from text content."""
    return hashlib.md5("\0".join(parts).encode()).hexdigest()


class TTLCache(Generic[V]):
    """
    Bounded key/value store.

    Entries expire ``ttl`` seconds after being written; once ``max_entries`` is
    reached the least recently used entry is evicted. Concurrent writers of one
    key are last-writer-wins.
    """

    def __init__(
        self,
        max_entries: int = None,
        ttl: float = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries or settings.CACHE_MAX_ENTRIES
        self.ttl = ttl if ttl is not None else settings.CACHE_TTL_SECONDS
        self._clock = clock
        self._data: "OrderedDict[Hashable, Tuple[float, V]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                self.misses += 1
                return None

            expires_at, value = item
            if self.ttl and expires_at <= self._clock():
                del self._data[key]
                self.misses += 1
                return None

            self._data.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._data[key] = (self._clock() + self.ttl, value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._data)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            self._purge_expired()
            return {
                "size": len(self._data),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl,
                "hits": self.hits,
                "misses": self.misses,
                "keys": list(self._data.keys()),
            }

    def _purge_expired(self) -> None:
        # Caller holds the lock
        if not self.ttl:
            return
        now = self._clock()
        for key in [key for key, (expires_at, _) in self._data.items() if expires_at <= now]:
            del self._data[key]
