"""Size-bounded TTL cache for repeated collaborator lookups.

Entries are (value, expires_at) pairs. Expired entries are purged whenever
the cache is read, and the oldest entry is evicted once `max_entries` is
reached. There is no invalidation beyond expiry, so readers must tolerate
slightly stale values.
"""

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from threading import Lock
from typing import Any

_MISSING = object()


class TTLCache:
    """Thread-safe key -> value cache with per-entry expiry.

    Args:
        ttl_seconds: Default lifetime of an entry.
        max_entries: Maximum number of live entries kept.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[Any, float]] = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or `default` if missing or expired."""
        with self._lock:
            self._purge(self._clock())
            entry = self._entries.get(key)
            if entry is None:
                return default
            return entry[0]

    def set(self, key: Hashable, value: Any, ttl_seconds: float | None = None) -> None:
        """Store a value, evicting the oldest entries when full."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            now = self._clock()
            self._purge(now)
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = (value, now + ttl)

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        """Return the cached value or compute, store and return it.

        The factory runs outside the lock; concurrent misses may both
        compute, and the last writer wins.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = factory()
        self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


def make_key(prefix: str, **params: Any) -> tuple:
    """Build a deterministic cache key from a prefix and keyword params."""
    return (prefix, *sorted((k, str(v)) for k, v in params.items()))
