"""Hierarchical cache keys shared by both cache tiers."""

from __future__ import annotations

from dataclasses import dataclass


SEPARATOR = ":"


@dataclass(frozen=True, slots=True)
class CacheKey:
    """
    Address of an entity or one of its sub-views.

    ``CacheKey("user", "42")`` is the canonical key, ``CacheKey("user", "42",
    "profile")`` a sub-view and ``CacheKey("user", "email", "a@b.se")`` a
    secondary index. The string form (``user:42:profile``) is what the durable
    tier stores.
    """

    entity_type: str
    id: str
    subresource: str | None = None

    def __post_init__(self) -> None:
        if not self.entity_type:
            raise ValueError("CacheKey.entity_type must not be empty")
        object.__setattr__(self, "id", str(self.id))
        # only the subresource may hold the separator, so parse(str(key)) == key
        for name in ("entity_type", "id"):
            if SEPARATOR in getattr(self, name):
                raise ValueError(
                    f"CacheKey.{name} must not contain {SEPARATOR!r}: {getattr(self, name)!r}"
                )

    @property
    def parts(self) -> tuple[str, ...]:
        if self.subresource is None:
            return (self.entity_type, self.id)
        return (self.entity_type, self.id, self.subresource)

    @property
    def canonical(self) -> CacheKey:
        """The entity key this key belongs to."""
        return CacheKey(self.entity_type, self.id)

    def child(self, subresource: str) -> CacheKey:
        return CacheKey(self.entity_type, self.id, subresource)

    def startswith(self, prefix: tuple[str, ...] | CacheKey) -> bool:
        """True when ``prefix`` is a leading part of this key."""
        parts = prefix.parts if isinstance(prefix, CacheKey) else tuple(str(p) for p in prefix)
        return self.parts[: len(parts)] == parts

    def __str__(self) -> str:
        return SEPARATOR.join(self.parts)

    @classmethod
    def parse(cls, value: str) -> CacheKey:
        """Inverse of ``str()``; the subresource keeps any further separators."""
        entity_type, _, rest = value.partition(SEPARATOR)
        key_id, _, subresource = rest.partition(SEPARATOR)
        if not entity_type or not key_id:
            raise ValueError(f"Not a cache key: {value!r}")
        return cls(entity_type, key_id, subresource or None)


def as_prefix(prefix: tuple[str, ...] | CacheKey | str) -> tuple[str, ...]:
    """Normalize a prefix given as key, tuple or ``a:b`` string."""
    if isinstance(prefix, CacheKey):
        return prefix.parts
    if isinstance(prefix, str):
        return tuple(prefix.split(SEPARATOR))
    return tuple(str(p) for p in prefix)


__all__ = ["CacheKey", "as_prefix", "SEPARATOR"]
