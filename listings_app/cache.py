# listings_app/cache.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Returned by TTLCache.get on a miss; a cached None is a real value.
MISSING: Any = _Missing()


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache(Generic[T]):
    """
    In-memory TTL cache for one query shape (all listings, one listing, a page...).
    - Entries are immutable and replaced wholesale on set
    - Expired entries are evicted lazily on get, and in bulk by cleanup()
    - Optional max_items bound: expired entries go first, then the oldest
    Operations are synchronous; callers share it from a single event loop.
    """

    def __init__(
        self,
        name: str,
        default_ttl: float,
        max_items: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl < 0:
            raise ValueError("default_ttl must be >= 0")
        self.name = name
        self.default_ttl = default_ttl
        self.max_items = max_items
        self._clock = clock
        self._store: Dict[str, CacheEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISSING

    def get(self, key: str) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return MISSING
        if entry.is_expired(self._clock()):
            self._store.pop(key, None)
            return MISSING
        return entry.value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        if self.max_items is not None and key not in self._store and len(self._store) >= self.max_items:
            self._make_room()
        self._store[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def cleanup(self) -> int:
        """Evict every expired entry; returns how many were dropped."""
        now = self._clock()
        dead = [k for k, e in self._store.items() if e.is_expired(now)]
        for k in dead:
            del self._store[k]
        return len(dead)

    def _make_room(self) -> None:
        if self.cleanup():
            return
        # nothing expired: drop the oldest entry
        victim = min(self._store.items(), key=lambda kv: kv[1].created_at)[0]
        del self._store[victim]
