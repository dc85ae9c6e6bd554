"""Bounded response cache for model calls.

Keys are ``<namespace>:<fingerprint>`` where the fingerprint is a SHA-256
of the canonical JSON of the request payload. Capacity is enforced on
insert: expired entries are dropped first, then the least-hit entries
(oldest first among ties) until the cache is back at ``max_entries``.

The cache is process-local and used from a single event loop, so no
locking is needed.
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


def fingerprint(payload: Any) -> str:
    """Stable hash of a JSON-serializable payload."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float
    hit_count: int = 0
    created_at: float = 0.0


@dataclass
class CacheStats:
    """Cache performance counters."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0
    max_entries: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "size": self.size,
            "max_entries": self.max_entries,
            "hit_rate": round(self.hit_rate, 4),
        }


class ResponseCache:
    """TTL cache with expiry-first, then least-hit eviction.

    Args:
        max_entries: Capacity ceiling.
        default_ttl: TTL in seconds when ``set`` is called without one.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._stats = CacheStats(max_entries=max_entries)

    @staticmethod
    def make_key(namespace: str, payload: Any) -> str:
        return f"{namespace}:{fingerprint(payload)}"

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.expires_at > self._clock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            self._stats.expirations += 1
            self._stats.misses += 1
            return None
        entry.hit_count += 1
        self._stats.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        now = self._clock()
        ttl = self._default_ttl if ttl is None else ttl
        existing = self._entries.get(key)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            expires_at=now + ttl,
            hit_count=existing.hit_count if existing else 0,
            created_at=now,
        )
        if len(self._entries) > self._max_entries:
            self._evict()

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def _evict(self) -> None:
        self.purge_expired()
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        victims = sorted(
            self._entries.values(), key=lambda e: (e.hit_count, e.created_at)
        )[:overflow]
        for entry in victims:
            del self._entries[entry.key]
        self._stats.evictions += len(victims)
        logger.debug(f"Evicted {len(victims)} cache entries over capacity")

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._stats.expirations += len(expired)
        return len(expired)

    def clear(self, namespace: Optional[str] = None) -> int:
        """Remove all entries, or only those under ``namespace``."""
        if namespace is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        prefix = f"{namespace}:"
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def stats(self) -> CacheStats:
        self._stats.size = len(self._entries)
        return CacheStats(**{k: v for k, v in vars(self._stats).items()})
