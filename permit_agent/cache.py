"""Small in-memory TTL cache."""

from __future__ import annotations

import time
from typing import Callable, Generic, Optional, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Keyed cache whose entries expire after ``ttl`` seconds.

    When ``max_size`` is reached the oldest entry is evicted first.
    """

    def __init__(
        self,
        *,
        ttl: float,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self._ttl = ttl
        self._max_size = max(1, max_size)
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self._ttl:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: V) -> None:
        if key not in self._entries and len(self._entries) >= self._max_size:
            self._evict_expired()
            if len(self._entries) >= self._max_size:
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                self._entries.pop(oldest, None)
        self._entries[key] = (self._clock(), value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (ts, _) in self._entries.items() if now - ts > self._ttl]:
            self._entries.pop(key, None)
