"""
Tier B: durable cache with TTL and version per entry.

Each value is wrapped in a ``CacheEntry`` recording when it was cached, its
TTL and the cache version it was written under. Reads treat expired or
version-mismatched entries as absent and delete them.

Examples:
    >>> from opsync.core.cache.backends import InMemoryCache
    >>> from opsync.core.cache.durable import DurableCache
    >>> from opsync.core.cache.keys import CacheKey
    >>> durable = DurableCache(InMemoryCache(), namespace="users", ttl_seconds=900)
    >>> durable.set(CacheKey("user", "42"), {"name": "A"})
    >>> durable.get(CacheKey("user", "42"))
    {'name': 'A'}

Guardrails:
    - Values must be JSON-serializable when the backend is Redis
    - Backend exceptions propagate; ``CacheSynchronizer`` decides what to log
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from opsync.core.cache.backends import CacheBackend
from opsync.core.cache.keys import SEPARATOR, CacheKey
from opsync.core.logging import get_logger


T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value with its freshness metadata.

    Attributes:
        value: The cached value
        cached_at: Epoch seconds when the value was written
        ttl: Lifetime in seconds
        version: Cache version the value was written under
    """

    value: T
    cached_at: float
    ttl: float
    version: str

    def is_stale(self, now: float, version: str) -> bool:
        return now - self.cached_at > self.ttl or self.version != version

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "cached_at": self.cached_at,
            "ttl": self.ttl,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry[Any]:
        return cls(
            value=data["value"],
            cached_at=float(data["cached_at"]),
            ttl=float(data["ttl"]),
            version=str(data["version"]),
        )


class DurableCache:
    """Namespaced, versioned view over a ``CacheBackend``."""

    def __init__(
        self,
        backend: CacheBackend,
        *,
        namespace: str = "app",
        ttl_seconds: float = 5 * 60,
        version: str = "1.0",
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend
        self._namespace = namespace
        self._ttl = ttl_seconds
        self._version = version
        self._clock = clock

    @property
    def version(self) -> str:
        return self._version

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def storage_key(self, key: CacheKey | str) -> str:
        return f"{self._namespace}{SEPARATOR}{key}"

    def get_entry(self, key: CacheKey | str) -> CacheEntry[Any] | None:
        """Return the fresh entry for ``key``; stale entries are removed."""
        storage_key = self.storage_key(key)
        raw = self._backend.get(storage_key)
        if raw is None:
            return None
        try:
            entry = CacheEntry.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("durable_cache_corrupt_entry", key=storage_key)
            self._backend.delete(storage_key)
            return None
        if entry.is_stale(self._clock(), self._version):
            logger.debug(
                "durable_cache_stale",
                key=storage_key,
                entry_version=entry.version,
                version=self._version,
            )
            self._backend.delete(storage_key)
            return None
        return entry

    def get(self, key: CacheKey | str) -> Any | None:
        entry = self.get_entry(key)
        return None if entry is None else entry.value

    def set(self, key: CacheKey | str, value: Any, *, ttl_seconds: float | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl
        entry = CacheEntry(value=value, cached_at=self._clock(), ttl=ttl, version=self._version)
        self._backend.set(self.storage_key(key), entry.to_dict(), ttl_seconds=ttl)

    def remove(self, key: CacheKey | str) -> None:
        self._backend.delete(self.storage_key(key))

    def get_or_set(self, key: CacheKey | str, loader: Callable[[], Any]) -> Any:
        """Return the cached value, or load, store and return it."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value)
        return value

    def keys(self, prefix: CacheKey | str = "") -> list[str]:
        """Keys in this namespace starting with ``prefix`` (namespace stripped)."""
        namespace_prefix = f"{self._namespace}{SEPARATOR}"
        return [
            storage_key[len(namespace_prefix):]
            for storage_key in self._backend.keys(f"{namespace_prefix}{prefix}")
        ]

    def clear(self) -> int:
        """Remove every key of this namespace. Returns the number removed."""
        storage_keys = self._backend.keys(f"{self._namespace}{SEPARATOR}")
        for storage_key in storage_keys:
            self._backend.delete(storage_key)
        logger.debug("durable_cache_cleared", namespace=self._namespace, count=len(storage_keys))
        return len(storage_keys)

    def update_options(
        self, *, ttl_seconds: float | None = None, version: str | None = None
    ) -> None:
        """Change TTL and/or version. A new version clears the namespace."""
        if ttl_seconds is not None:
            self._ttl = ttl_seconds
        if version is not None and version != self._version:
            self._version = version
            self.clear()


__all__ = ["CacheEntry", "DurableCache"]
