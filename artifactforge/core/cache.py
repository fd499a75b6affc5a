"""Explicitly owned TTL cache for chain reads.

Shard bytecode never changes once deployed, so shards are stored with
``ttl=None``. Locators change only on redeploy and get a finite TTL plus
an explicit ``invalidate`` hook.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class TTLCacheEntry(Generic[T]):
    """Cached value with an absolute expiry (``None`` means never)."""

    value: T
    expires_at: float | None

    def is_valid(self, now: float) -> bool:
        return self.expires_at is None or now < self.expires_at


class TTLCache(Generic[T]):
    """Time-based cache keyed by string.

    Parameters
    ----------
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, TTLCacheEntry[T]] = {}

    def get(self, key: str) -> T | None:
        """Return the cached value, or ``None`` if absent or expired."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._store[key]
            return None
        return entry.value

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        expires_at = None if ttl is None else self._clock() + ttl
        self._store[key] = TTLCacheEntry(value=value, expires_at=expires_at)

    def invalidate(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._store)
