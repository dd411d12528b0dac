"""In-memory key/value cache with per-entry time-to-live."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Mapping, Optional, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    value: T
    stored_at: float
    ttl_seconds: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl_seconds


@dataclass(slots=True)
class CacheStats:
    total_entries: int
    valid_entries: int
    expired_entries: int


class TTLCache(Generic[T]):
    """Cache whose entries expire ``ttl_seconds`` after they were stored.

    Expired entries are evicted on the read that discovers them and are never
    returned. The clock is injectable so callers and tests can run isolated
    caches against virtual time.
    """

    def __init__(
        self,
        default_ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}

    @property
    def default_ttl_seconds(self) -> float:
        return self._default_ttl

    def get(self, key: Hashable) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def get_entry(self, key: Hashable) -> Optional[CacheEntry[T]]:
        """Return the live entry (value plus timestamps) for ``key``."""
        if self.get(key) is None:
            return None
        return self._entries.get(key)

    def set(self, key: Hashable, value: T, ttl_seconds: float | None = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        self._entries[key] = CacheEntry(
            value=value, stored_at=self._clock(), ttl_seconds=ttl
        )

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def clean_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if entry.is_valid(now))
        return CacheStats(
            total_entries=len(self._entries),
            valid_entries=valid,
            expired_entries=len(self._entries) - valid,
        )

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def make_key(url: str, params: Mapping[str, Any] | None = None) -> str:
        """Build a stable key from a URL and its query parameters."""
        ordered = json.dumps(dict(params or {}), sort_keys=True, default=str)
        return f"{url}?{ordered}"


__all__ = ["CacheEntry", "CacheStats", "TTLCache"]
