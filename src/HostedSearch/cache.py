"""Bounded LRU cache with per-entry expiry.

Used for search-result caching and for reusing :class:`Index` handles. Entries
expire ``ttl_s`` seconds after insertion; the least recently used entry is
evicted once ``max_size`` is exceeded.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_TTL_S = 120.0
DEFAULT_MAX_SIZE = 64


class ExpiringCache(Generic[K, V]):
    """Thread-safe LRU cache whose entries expire after a fixed TTL."""

    def __init__(
        self,
        ttl_s: float = DEFAULT_TTL_S,
        max_size: int = DEFAULT_MAX_SIZE,
        *,
        now_monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be positive, got {ttl_s}")
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.ttl_s = ttl_s
        self.max_size = max_size
        self._now = now_monotonic
        self._store: "OrderedDict[K, Tuple[V, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def put(self, key: K, value: V) -> Optional[V]:
        """Store ``value`` and return the previous live value for ``key``, if any."""
        with self._lock:
            previous = self._live(key)
            self._store[key] = (value, self._now() + self.ttl_s)
            self._store.move_to_end(key)
            while len(self._store) > self.max_size:
                self._store.popitem(last=False)
            return previous

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            value = self._live(key)
            if value is not None:
                self._store.move_to_end(key)
            return value

    def pop(self, key: K) -> Optional[V]:
        with self._lock:
            value = self._live(key)
            self._store.pop(key, None)
            return value

    def _live(self, key: K) -> Optional[V]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._now():
            del self._store[key]
            return None
        return value

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


__all__ = ["ExpiringCache"]
