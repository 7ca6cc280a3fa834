"""
Short-TTL in-memory price cache.

Bounds the request volume sent to venues between scans. A miss is ``None``;
cached values are never relied on for correctness.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple


class PriceCache:
    """Key/value store whose entries expire after a per-entry TTL."""

    def __init__(
        self,
        default_ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

        # Stats
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store a value; a non-positive TTL stores nothing."""
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = (value, self._clock() + ttl)

    def expire(self, key: str) -> None:
        """Drop a key immediately."""
        self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
        }
