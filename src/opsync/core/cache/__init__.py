"""Two-tier entity caching.

Modules
-------
keys          CacheKey -- hierarchical addressing shared by both tiers
backends      CacheBackend protocol, InMemoryCache, RedisCache
durable       Tier B -- DurableCache with TTL + version per entry
reactive      Tier A -- ReactiveCache with change notification
synchronizer  CacheSynchronizer -- keeps both tiers consistent per entity
"""

from opsync.core.cache.backends import CacheBackend, InMemoryCache, RedisCache
from opsync.core.cache.durable import CacheEntry, DurableCache
from opsync.core.cache.keys import CacheKey
from opsync.core.cache.reactive import CacheChange, ReactiveCache
from opsync.core.cache.synchronizer import (
    CacheSynchronizer,
    EntityCacheSpec,
    create_cache_synchronizer,
)

__all__ = [
    "CacheBackend",
    "CacheChange",
    "CacheEntry",
    "CacheKey",
    "CacheSynchronizer",
    "DurableCache",
    "EntityCacheSpec",
    "InMemoryCache",
    "ReactiveCache",
    "RedisCache",
    "create_cache_synchronizer",
]
