"""TTL cache service shared by the slot resolver and the compiler.

Expiry is lazy: an entry is checked against the clock when it is read and
dropped if stale. ``sweep()`` removes every stale entry in one pass for callers
that want bounded memory. No timers are created.

The clock is injected so tests can advance time deterministically:

    >>> now = [0.0]
    >>> cache = TTLCache(clock=lambda: now[0])
    >>> cache.set("k", "v", ttl_seconds=10)
    >>> now[0] = 11.0
    >>> cache.get("k") is None
    True
"""

import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

Clock = Callable[[], float]
"""Returns the current time in seconds (epoch or monotonic, as long as it is consistent)."""


@dataclass(frozen=True, slots=True)
class _Entry:
    value: Any
    stored_at: float
    ttl_seconds: float

    def expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl_seconds


class TTLCache:
    """Key/value store whose entries expire after a per-entry TTL.

    get/check-expiry/set sequences run under a lock so the cache stays coherent
    when shared across threads; within one event loop the lock is uncontended.
    """

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: dict[Hashable, _Entry] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if entry.expired(self._clock()):
                del self._entries[key]
                return default
            return entry.value

    def contains(self, key: Hashable) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def set(self, key: Hashable, value: Any, *, ttl_seconds: float) -> None:
        """Store ``value`` under ``key``. Last writer wins."""
        if ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = _Entry(value=value, stored_at=self._clock(), ttl_seconds=ttl_seconds)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["Clock", "TTLCache"]
