"""
Storage backends for the durable cache tier.

Provides a ``CacheBackend`` protocol with in-memory and Redis
implementations. ``DurableCache`` stores serialized ``CacheEntry`` dicts in
one of these; the backend itself only knows string keys and JSON values.

Architecture:
    ::

        CacheBackend (Protocol)
        ├── InMemoryCache  - single-process, bounded LRU (tests, one device)
        └── RedisCache     - shared across processes

        API: get(key) → value | None
             set(key, value, ttl_seconds=None)
             delete(key)
             exists(key) → bool
             keys(prefix) → list[str]
             clear()

Guardrails:
    ❌ DON'T: Use InMemoryCache when several processes must share entries
    ✅ DO: Set OPSYNC_REDIS_URL so the durable tier is shared

Tags:
    cache, redis, in-memory, ttl, opsync
"""

from __future__ import annotations

import json
import time
from collections import OrderedDict
from typing import Any, Protocol


class CacheBackend(Protocol):
    """Protocol for cache backend implementations.

    Keys are strings, values are JSON-serializable.

    Implementations:
        - :class:`InMemoryCache` - single-process, bounded LRU cache
        - :class:`RedisCache` - distributed, Redis-backed cache
    """

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key, or ``None`` if not found or expired."""
        ...

    def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        """Store a value with optional TTL (``None`` → backend default)."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. No-op if key does not exist."""
        ...

    def exists(self, key: str) -> bool:
        ...

    def keys(self, prefix: str = "") -> list[str]:
        """List live keys starting with ``prefix``."""
        ...

    def clear(self) -> None:
        """Remove all keys."""
        ...


# ------------------------------------------------------------------ #
# In-Memory Cache
# ------------------------------------------------------------------ #


class InMemoryCache:
    """Bounded in-memory cache with TTL support.

    Uses LRU eviction when ``max_size`` is reached.

    Attributes:
        max_size: Maximum number of keys before LRU eviction.
        default_ttl_seconds: Default TTL for keys (``None`` → no expiry).
    """

    def __init__(
        self,
        *,
        max_size: int = 10_000,
        default_ttl_seconds: float | None = None,
    ):
        self._store: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds

    def _live(self, key: str) -> bool:
        if key not in self._store:
            return False
        _, expires_at = self._store[key]
        if expires_at is not None and time.time() > expires_at:
            del self._store[key]
            return False
        return True

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        if not self._live(key):
            return None
        self._store.move_to_end(key)
        return self._store[key][0]

    def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = (time.time() + ttl) if ttl else None

        if key not in self._store and len(self._store) >= self._max_size:
            self._store.popitem(last=False)

        self._store[key] = (value, expires_at)
        self._store.move_to_end(key)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def exists(self, key: str) -> bool:
        return self._live(key)

    def keys(self, prefix: str = "") -> list[str]:
        return [key for key in list(self._store) if key.startswith(prefix) and self._live(key)]

    def clear(self) -> None:
        self._store.clear()

    def size(self) -> int:
        """Return current number of cached keys."""
        return len(self._store)


# ------------------------------------------------------------------ #
# Redis Cache (optional)
# ------------------------------------------------------------------ #


class RedisCache:
    """Redis-backed distributed cache.

    Requires ``redis`` package (install via ``pip install opsync[redis]``).

    Example:
        cache = RedisCache("redis://localhost:6379/0", default_ttl_seconds=900)
        cache.set("app:user:42", {"value": {...}, "cached_at": ..., ...})

    Raises:
        ImportError: If ``redis`` package is not installed.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        default_ttl_seconds: float | None = None,
    ):
        try:
            import redis
        except ImportError as exc:
            msg = (
                "Redis backend requires 'redis' package. "
                "Install with: pip install opsync[redis]"
            )
            raise ImportError(msg) from exc

        self._client = redis.from_url(url, decode_responses=False)
        self._default_ttl = default_ttl_seconds

    def get(self, key: str) -> Any | None:
        raw = self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        serialized = json.dumps(value)

        if ttl:
            self._client.setex(key, max(1, int(ttl)), serialized)
        else:
            self._client.set(key, serialized)

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(key))

    def keys(self, prefix: str = "") -> list[str]:
        found = []
        for key in self._client.scan_iter(match=f"{prefix}*"):
            found.append(key.decode() if isinstance(key, bytes) else key)
        return found

    def clear(self) -> None:
        """Flush the current Redis database.

        Warning: use ``DurableCache.clear()`` to drop only one namespace.
        """
        self._client.flushdb()


__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
]
