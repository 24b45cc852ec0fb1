"""Explicit TTL cache owned by the component that needs it.

Entries expire lazily against an injectable monotonic clock, so tests can
advance time without sleeping and nothing runs in the background.
"""

import time
from typing import Callable, Generic, Hashable, Iterable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


class TTLCache(Generic[K, V]):
    """Key/value cache where every entry lives for ``ttl`` seconds."""

    def __init__(self, ttl: float, *, clock: Clock = time.monotonic) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.ttl = ttl
        self._clock = clock
        self._items: dict[K, tuple[float, V]] = {}

    def set(self, key: K, value: V) -> None:
        self._items[key] = (self._clock() + self.ttl, value)

    def get(self, key: K, default: V | None = None) -> V | None:
        item = self._items.get(key)
        if item is None:
            return default
        expires_at, value = item
        if expires_at <= self._clock():
            del self._items[key]
            return default
        return value

    def get_many(self, keys: Iterable[K]) -> tuple[dict[K, V], list[K]]:
        """Split keys into (cached hits, misses)."""
        hits: dict[K, V] = {}
        misses: list[K] = []
        for key in keys:
            value = self.get(key)
            if value is None:
                misses.append(key)
            else:
                hits[key] = value
        return hits, misses

    def discard(self, key: K) -> None:
        self._items.pop(key, None)

    def purge(self) -> int:
        """Drop expired entries. Returns how many were dropped."""
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._items.items() if expires_at <= now]
        for key in expired:
            del self._items[key]
        return len(expired)

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        self.purge()
        return len(self._items)
