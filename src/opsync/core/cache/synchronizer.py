"""
Two-tier entity cache synchronizer.

``CacheSynchronizer`` keeps the reactive tier (what views render) and the
durable tier (what survives restarts and may be shared between processes)
consistent for whole entities. One instance is built per session and
injected into every controller; ``close()`` tears it down on logout.

Manifesto:
    A user is cached under several keys at once: the canonical key, sub-views
    such as ``profile`` and ``settings`` and secondary indexes such as
    lookup-by-email. Invalidating only the canonical key leaves the others
    serving stale data. The synchronizer records the full key set at every
    write so ``invalidate()`` can cascade to all of them.

    - **Tier A authoritative:** A write is visible to the next read in the
      same session even when the durable write fails
    - **Tier B best-effort:** Durable failures are logged, never raised
    - **Reads never throw:** Missing, stale or unreadable keys give ``None``

Architecture:
    ::

        cache_entity(user)
            │
            ├─► Tier A  user:42  user:42:profile  user:42:settings  user:email:a@b.se
            ├─► Tier B  (same keys, CacheEntry with ttl + version)
            └─► key record  user:42:__keys__  (process dict + Tier B)

        get(key):     Tier A ──miss──► Tier B ──hit──► backfill Tier A
        invalidate:   canonical + sub-views + recorded secondary keys, both tiers

Examples:
    >>> spec = EntityCacheSpec(
    ...     "user",
    ...     sub_views={"profile": lambda u: u["profile"], "settings": lambda u: u["settings"]},
    ...     secondary_indexes={"email": lambda u: u["email"]},
    ... )
    >>> sync = CacheSynchronizer(ReactiveCache(), DurableCache(InMemoryCache()), [spec])
    >>> user = {"id": "42", "email": "a@b.se", "profile": {}, "settings": {}}
    >>> _ = sync.cache_entity("user", user)
    >>> sync.get_by_index("user", "email", "a@b.se")["id"]
    '42'
    >>> _ = sync.invalidate("user", "42")
    >>> sync.get(CacheKey("user", "42")) is None
    True

Tags:
    cache, synchronization, invalidation, reactive, durable, opsync
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from opsync.core.cache.backends import CacheBackend, InMemoryCache, RedisCache
from opsync.core.cache.durable import DurableCache
from opsync.core.cache.keys import CacheKey, as_prefix
from opsync.core.cache.reactive import ReactiveCache
from opsync.core.logging import get_logger


logger = get_logger(__name__)

KEY_RECORD = "__keys__"


def default_id_of(entity: Any) -> Any:
    """Read ``id`` from a mapping or an attribute."""
    if isinstance(entity, Mapping):
        return entity["id"]
    return entity.id


def to_jsonable(value: Any) -> Any:
    """Convert pydantic models and dataclasses to plain data for Tier B."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


@dataclass(frozen=True)
class EntityCacheSpec:
    """
    Key layout of one entity type.

    Attributes:
        entity_type: First key segment (``user``, ``team``, ...)
        id_of: Extracts the entity id
        sub_views: ``name -> extractor``; stored under ``type:id:name``
        secondary_indexes: ``name -> extractor``; the entity is stored under
            ``type:name:<extracted value>``. ``None`` values are skipped
        model: Pydantic model used to rebuild entities read from Tier B
    """

    entity_type: str
    id_of: Callable[[Any], Any] = default_id_of
    sub_views: Mapping[str, Callable[[Any], Any]] = field(default_factory=dict)
    secondary_indexes: Mapping[str, Callable[[Any], Any]] = field(default_factory=dict)
    model: type[BaseModel] | None = None

    def canonical_key(self, entity_id: Any) -> CacheKey:
        entity_id = str(entity_id)
        if entity_id in self.secondary_indexes:
            raise ValueError(
                f"{self.entity_type} id {entity_id!r} collides with the secondary index name"
            )
        return CacheKey(self.entity_type, entity_id)

    def index_key(self, index: str, value: Any) -> CacheKey:
        return CacheKey(self.entity_type, index, str(value))

    def keys_for(self, entity: Any) -> list[tuple[CacheKey, Any]]:
        """Every (key, value) pair ``cache_entity`` writes for ``entity``."""
        canonical = self.canonical_key(self.id_of(entity))
        pairs: list[tuple[CacheKey, Any]] = [(canonical, entity)]
        for name, extract in self.sub_views.items():
            pairs.append((canonical.child(name), extract(entity)))
        for name, extract in self.secondary_indexes.items():
            value = extract(entity)
            if value is None or value == "":
                continue
            pairs.append((self.index_key(name, value), entity))
        return pairs

    def load(self, key: CacheKey, raw: Any) -> Any:
        """Rebuild a Tier B value; sub-views stay plain data."""
        if self.model is None or raw is None or key.subresource in self.sub_views:
            return raw
        if key.subresource is None or key.id in self.secondary_indexes:
            return self.model.model_validate(raw)
        return raw


class CacheSynchronizer:
    """Keeps Tier A and Tier B consistent for registered entity types."""

    def __init__(
        self,
        reactive: ReactiveCache,
        durable: DurableCache,
        specs: Iterable[EntityCacheSpec] = (),
    ):
        self.reactive = reactive
        self.durable = durable
        self._specs: dict[str, EntityCacheSpec] = {}
        self._written: dict[CacheKey, tuple[CacheKey, ...]] = {}
        self._snapshots: dict[CacheKey, list[Any]] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: EntityCacheSpec) -> None:
        self._specs[spec.entity_type] = spec

    def spec(self, entity_type: str) -> EntityCacheSpec:
        try:
            return self._specs[entity_type]
        except KeyError:
            raise KeyError(f"No cache spec registered for entity type {entity_type!r}") from None

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def cache_entity(
        self, entity_type: str, entity: Any, *, ttl_seconds: float | None = None
    ) -> list[CacheKey]:
        """Write canonical, sub-view and secondary-index keys for ``entity``.

        Tier A is written first and is not rolled back when Tier B fails.
        Keys recorded by the previous write that are no longer produced
        (e.g. the old email index after an email change) are invalidated.

        Returns:
            The keys written.
        """
        spec = self.spec(entity_type)
        pairs = spec.keys_for(entity)
        canonical = pairs[0][0]
        keys = tuple(key for key, _ in pairs)

        orphaned = [key for key in self._recorded_keys(canonical) if key not in keys]
        for key in orphaned:
            self.reactive.invalidate(key)

        for key, value in pairs:
            self.reactive.set(key, value)
        self._written[canonical] = keys

        try:
            for key in orphaned:
                self.durable.remove(key)
            for key, value in pairs:
                self.durable.set(key, to_jsonable(value), ttl_seconds=ttl_seconds)
            self.durable.set(
                canonical.child(KEY_RECORD), [str(key) for key in keys], ttl_seconds=ttl_seconds
            )
        except Exception as e:
            logger.warning(
                "durable_cache_write_failed",
                entity_type=entity_type,
                entity_id=canonical.id,
                error=str(e),
            )

        logger.debug("entity_cached", key=str(canonical), keys=len(keys))
        return list(keys)

    def update_entity(
        self, entity_type: str, entity_id: Any, patch: Mapping[str, Any]
    ) -> Any | None:
        """Merge ``patch`` into the cached entity and re-cache it.

        Returns:
            The merged entity, or ``None`` when nothing is cached for the id.
        """
        current = self.get(self.spec(entity_type).canonical_key(entity_id))
        if current is None:
            return None
        merged = merge_entity(current, patch)
        self.cache_entity(entity_type, merged)
        return merged

    def put(self, key: CacheKey, value: Any) -> None:
        """Write a single key; ``None`` invalidates it.

        On the canonical key of a registered entity type this re-runs
        ``cache_entity`` so sub-views and indexes follow the value.
        """
        spec = self._specs.get(key.entity_type)
        is_canonical = spec is not None and key.subresource is None
        if value is None:
            if is_canonical:
                self.invalidate(key.entity_type, key.id)
            else:
                self._invalidate_keys([key])
            return
        if is_canonical:
            self.cache_entity(key.entity_type, value)
            return
        self.reactive.set(key, value)
        try:
            self.durable.set(key, to_jsonable(value))
        except Exception as e:
            logger.warning("durable_cache_write_failed", key=str(key), error=str(e))

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get(self, key: CacheKey) -> Any | None:
        """Tier A first; on a miss Tier B, backfilling Tier A on a hit.

        A key invalidated in Tier A reads as ``None`` without consulting
        Tier B.
        """
        value = self.reactive.get(key)
        if value is not None or self.reactive.is_stale(key):
            return value
        try:
            raw = self.durable.get(key)
        except Exception as e:
            logger.warning("durable_cache_read_failed", key=str(key), error=str(e))
            return None
        if raw is None:
            return None
        spec = self._specs.get(key.entity_type)
        loaded = spec.load(key, raw) if spec is not None else raw
        self.reactive.set(key, loaded)
        return loaded

    peek = get

    def get_entity(self, entity_type: str, entity_id: Any) -> Any | None:
        return self.get(self.spec(entity_type).canonical_key(entity_id))

    def get_by_index(self, entity_type: str, index: str, value: Any) -> Any | None:
        """Resolve a secondary index and backfill the canonical key."""
        spec = self.spec(entity_type)
        entity = self.get(spec.index_key(index, value))
        if entity is None:
            return None
        canonical = spec.canonical_key(spec.id_of(entity))
        if not self.reactive.contains(canonical) and not self.reactive.is_stale(canonical):
            self.reactive.set(canonical, entity)
        return entity

    # ------------------------------------------------------------------ #
    # Optimistic snapshot chains
    # ------------------------------------------------------------------ #

    def push_snapshot(self, key: CacheKey, snapshot: Any) -> int:
        """Push an in-flight mutation's snapshot onto the chain for ``key``.

        Every coordinator writing through this synchronizer shares the chain,
        so overlapping mutations from different operations stay ordered.

        Returns:
            The chain depth after the push.
        """
        chain = self._snapshots.setdefault(key, [])
        chain.append(snapshot)
        return len(chain)

    def detach_snapshot(self, key: CacheKey, snapshot: Any) -> tuple[bool, Any | None]:
        """Remove ``snapshot`` from the chain for ``key``.

        Returns:
            ``(was_top, next_later)``: whether the snapshot was the most
            recent one, and the snapshot pushed right after it, if any.
            ``(False, None)`` when it is not on the chain.
        """
        chain = self._snapshots.get(key, [])
        index = next((i for i, item in enumerate(chain) if item is snapshot), None)
        if index is None:
            return False, None
        was_top = index == len(chain) - 1
        del chain[index]
        later = chain[index] if index < len(chain) else None
        if not chain:
            del self._snapshots[key]
        return was_top, later

    def pending_snapshots(self, key: CacheKey) -> int:
        """Number of in-flight optimistic mutations on ``key``."""
        return len(self._snapshots.get(key, ()))

    # ------------------------------------------------------------------ #
    # Invalidation
    # ------------------------------------------------------------------ #

    def invalidate(self, entity_type: str, entity_id: Any) -> list[CacheKey]:
        """Invalidate every key recorded for the entity in both tiers."""
        spec = self.spec(entity_type)
        canonical = spec.canonical_key(entity_id)
        keys = [canonical, *(canonical.child(name) for name in spec.sub_views)]
        for key in self._recorded_keys(canonical):
            if key not in keys:
                keys.append(key)

        self._invalidate_keys(keys)
        self._written.pop(canonical, None)
        try:
            self.durable.remove(canonical.child(KEY_RECORD))
        except Exception as e:
            logger.warning("durable_cache_remove_failed", key=str(canonical), error=str(e))

        logger.debug("entity_invalidated", key=str(canonical), keys=len(keys))
        return keys

    def invalidate_many(self, prefix: tuple[str, ...] | CacheKey | str) -> list[CacheKey]:
        """Invalidate every key under ``prefix`` in both tiers."""
        parts = as_prefix(prefix)
        invalidated = self.reactive.invalidate_many(parts)
        for canonical in [key for key in self._written if key.startswith(parts)]:
            del self._written[canonical]
        try:
            for stored in self.durable.keys(parts[0] if parts else ""):
                try:
                    stored_key = CacheKey.parse(stored)
                except ValueError:
                    continue
                if stored_key.startswith(parts):
                    self.durable.remove(stored)
        except Exception as e:
            logger.warning("durable_cache_remove_failed", prefix=":".join(parts), error=str(e))
        return invalidated

    def close(self) -> None:
        """Drop both tiers; call on logout."""
        self.reactive.clear()
        self._written.clear()
        self._snapshots.clear()
        try:
            self.durable.clear()
        except Exception as e:
            logger.warning("durable_cache_clear_failed", error=str(e))

    def _invalidate_keys(self, keys: Iterable[CacheKey]) -> None:
        for key in keys:
            self.reactive.invalidate(key)
            try:
                self.durable.remove(key)
            except Exception as e:
                logger.warning("durable_cache_remove_failed", key=str(key), error=str(e))

    def _recorded_keys(self, canonical: CacheKey) -> tuple[CacheKey, ...]:
        recorded = self._written.get(canonical)
        if recorded is not None:
            return recorded
        try:
            stored = self.durable.get(canonical.child(KEY_RECORD))
        except Exception as e:
            logger.warning("durable_cache_read_failed", key=str(canonical), error=str(e))
            return ()
        if not stored:
            return ()
        return tuple(CacheKey.parse(key) for key in stored)


def merge_entity(current: Any, patch: Mapping[str, Any]) -> Any:
    """Shallow-merge ``patch`` into mappings, pydantic models or dataclasses."""
    if isinstance(current, Mapping):
        return {**current, **patch}
    if isinstance(current, BaseModel):
        return current.model_copy(update=dict(patch))
    if dataclasses.is_dataclass(current) and not isinstance(current, type):
        return dataclasses.replace(current, **patch)
    merged = copy.copy(current)
    for name, value in patch.items():
        setattr(merged, name, value)
    return merged


def create_cache_synchronizer(
    settings: Any, specs: Iterable[EntityCacheSpec] = ()
) -> CacheSynchronizer:
    """Build the per-session synchronizer from ``OpsyncSettings``.

    Tier B uses Redis when ``settings.redis_url`` is set, otherwise an
    in-process ``InMemoryCache``.
    """
    backend: CacheBackend
    if settings.redis_url:
        backend = RedisCache(settings.redis_url)
    else:
        backend = InMemoryCache(max_size=settings.cache_max_size)
    durable = DurableCache(
        backend,
        namespace=settings.cache_namespace,
        ttl_seconds=settings.cache_ttl_seconds,
        version=settings.cache_version,
    )
    return CacheSynchronizer(ReactiveCache(), durable, specs)


__all__ = [
    "CacheSynchronizer",
    "EntityCacheSpec",
    "create_cache_synchronizer",
    "default_id_of",
    "merge_entity",
    "to_jsonable",
]
