"""In-memory TTL cache for authenticated GET responses.

Designed to be swapped for Redis while keeping the same interface: entries are
namespaced per user so a user's cached responses can be invalidated together
when their data changes.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Iterable

logger = logging.getLogger(__name__)


@dataclass
class CacheItem:
    """Container for cached values with expiration metadata."""

    value: dict[str, Any]
    expires_at: float


class ResponseCache:
    """Thread-safe, in-memory TTL cache with LRU eviction.

    Attributes:
        ttl_seconds: Time-to-live applied to entries without an explicit TTL.
        max_entries: Maximum number of cached items (None for unlimited).
    """

    def __init__(self, ttl_seconds: int = 1800, max_entries: int | None = 1024) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._store: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ResponseCache(ttl_seconds={self._ttl}, max_entries={self._max_entries}, "
            f"size={len(self._store)}, hits={self._hits}, misses={self._misses}, "
            f"evictions={self._evictions})"
        )

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the cached payload for ``key`` or None if missing/expired."""

        with self._lock:
            item = self._store.get(key)
            if item is None:
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:24], "reason": "not_found"})
                return None

            if time.time() > item.expires_at:
                self._evict_single(key)
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:24], "reason": "expired"})
                return None

            self._hits += 1
            self._store.move_to_end(key)
            logger.debug("cache.hit", extra={"cache_key": key[:24]})
            return item.value

    def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        """Store a payload, evicting expired and least recently used entries."""

        ttl = ttl_seconds or self._ttl
        with self._lock:
            self._evict_expired_locked()
            self._store[key] = CacheItem(value=value, expires_at=time.time() + ttl)
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()

            logger.debug(
                "cache.set",
                extra={"cache_key": key[:24], "size": len(self._store), "ttl_s": ttl},
            )

    def delete(self, key: str) -> bool:
        """Remove a single entry. Returns True if it existed."""

        with self._lock:
            return self._store.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``."""

        with self._lock:
            keys = [k for k in self._store if k.startswith(prefix)]
            for key in keys:
                del self._store[key]

        if keys:
            logger.debug("cache.invalidated", extra={"cache_prefix": prefix, "removed": len(keys)})
        return len(keys)

    def invalidate_user(self, user_id: int) -> int:
        """Drop all cached responses belonging to ``user_id``."""

        return self.delete_prefix(user_key_prefix(user_id))

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | None]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "ttl_seconds": self._ttl,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        now = time.time()
        expired_keys = [k for k, item in self._store.items() if item.expires_at <= now]
        for key in expired_keys:
            self._evict_single(key)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            self._store.popitem(last=False)
            self._evictions += 1


def user_key_prefix(user_id: int) -> str:
    return f"cache:user:{user_id}:"


def build_cache_key(path: str, user_id: int, query_params: Iterable[tuple[str, str]] = ()) -> str:
    """Build a stable per-user cache key for a GET request.

    Query parameters are sorted so ``?a=1&b=2`` and ``?b=2&a=1`` share a key.

    Args:
        path: Request path.
        user_id: Authenticated user id.
        query_params: (name, value) pairs, repeated names allowed.

    Returns:
        ``cache:user:<id>:<sha256 hex>``.
    """

    parts = [path]
    params = sorted(f"{name}:{value}" for name, value in query_params)
    if params:
        parts.append(",".join(params))

    digest = sha256(":".join(parts).encode()).hexdigest()
    return f"{user_key_prefix(user_id)}{digest}"
