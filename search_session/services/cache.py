"""Bounded result cache with lazy TTL expiry and FIFO eviction."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Generic, NamedTuple, TypeVar

from search_session.domain.models import CacheStats
from search_session.utils.clock import Clock, elapsed_ms

T = TypeVar("T")


class _Entry(NamedTuple):
    value: object
    inserted_at: float


class ResultCache(Generic[T]):
    """Key/value store bounded by count and age.

    Eviction follows insertion order, reads never promote an entry, and an
    expired entry is only dropped when someone tries to read it.
    """

    def __init__(
        self,
        max_size: int = 50,
        ttl_ms: int = 300_000,
        *,
        clock: Clock | None = None,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl_ms = ttl_ms
        self._clock = clock or time.monotonic
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def set(self, key: str, value: T) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = _Entry(value, self._clock())

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            age_ms = elapsed_ms(entry.inserted_at, self._clock())
            if age_ms > self.ttl_ms:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value  # type: ignore[return-value]

    def resize(self, max_size: int, ttl_ms: int) -> None:
        """Apply new bounds, trimming the oldest entries if needed."""

        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        with self._lock:
            self.max_size = max_size
            self.ttl_ms = ttl_ms
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                keys=tuple(self._entries),
            )

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["ResultCache"]
