"""
Tier A: process-local reactive cache.

Holds the values view bindings render from. Every write or invalidation is
announced to subscribers whose prefix matches the key, which is how a view
knows to re-render. Invalidated entries stay in place marked stale: a read
returns ``None`` and asks the registered refetcher to reload the key.

Examples:
    >>> from opsync.core.cache.keys import CacheKey
    >>> from opsync.core.cache.reactive import ReactiveCache
    >>> cache = ReactiveCache()
    >>> seen = []
    >>> unsubscribe = cache.subscribe(("team",), lambda change: seen.append(change.kind))
    >>> cache.set(CacheKey("team", "7"), {"name": "Sales"})
    >>> cache.invalidate(CacheKey("team", "7"))
    >>> seen
    ['set', 'invalidate']
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from opsync.core.cache.keys import CacheKey, as_prefix
from opsync.core.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheChange:
    """Notification delivered to subscribers."""

    key: CacheKey
    kind: str  # set | invalidate | delete
    value: Any = None


Listener = Callable[[CacheChange], None]
Refetcher = Callable[[CacheKey], None]


@dataclass
class _Slot:
    value: Any
    stale: bool = False


class ReactiveCache:
    """In-memory key/value store with change notification and stale marking."""

    def __init__(self) -> None:
        self._slots: dict[CacheKey, _Slot] = {}
        self._listeners: dict[int, tuple[tuple[str, ...], Listener]] = {}
        self._refetchers: list[tuple[tuple[str, ...], Refetcher]] = []
        self._next_listener_id = 0

    # ------------------------------------------------------------------ #
    # Reads and writes
    # ------------------------------------------------------------------ #

    def get(self, key: CacheKey) -> Any | None:
        """Return the value, or ``None`` when missing or stale.

        A stale read triggers the refetcher registered for the key.
        """
        slot = self._slots.get(key)
        if slot is None:
            return None
        if slot.stale:
            self._request_refetch(key)
            return None
        return slot.value

    def contains(self, key: CacheKey) -> bool:
        """True when ``key`` holds a fresh value."""
        slot = self._slots.get(key)
        return slot is not None and not slot.stale

    def is_stale(self, key: CacheKey) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.stale

    def set(self, key: CacheKey, value: Any) -> None:
        self._slots[key] = _Slot(value)
        self._notify(CacheChange(key, "set", value))

    def delete(self, key: CacheKey) -> None:
        if self._slots.pop(key, None) is not None:
            self._notify(CacheChange(key, "delete"))

    def invalidate(self, key: CacheKey) -> bool:
        """Mark ``key`` stale. Returns False when the key was not cached."""
        slot = self._slots.get(key)
        if slot is None:
            return False
        slot.stale = True
        self._notify(CacheChange(key, "invalidate"))
        return True

    def invalidate_many(self, prefix: tuple[str, ...] | CacheKey | str) -> list[CacheKey]:
        """Mark every key under ``prefix`` stale and return them."""
        parts = as_prefix(prefix)
        matched = [key for key in self._slots if key.startswith(parts)]
        for key in matched:
            self.invalidate(key)
        return matched

    def keys(self, prefix: tuple[str, ...] | CacheKey | str = ()) -> list[CacheKey]:
        parts = as_prefix(prefix) if prefix else ()
        return [key for key in self._slots if key.startswith(parts)]

    def clear(self) -> None:
        self._slots.clear()

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    def subscribe(
        self, prefix: tuple[str, ...] | CacheKey | str, listener: Listener
    ) -> Callable[[], None]:
        """Call ``listener`` for every change under ``prefix``.

        Returns:
            A function that removes the subscription.
        """
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = (as_prefix(prefix) if prefix else (), listener)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def register_refetch(
        self, prefix: tuple[str, ...] | CacheKey | str, refetcher: Refetcher
    ) -> None:
        """Register the callback asked to reload stale keys under ``prefix``.

        The most specific (longest) prefix wins.
        """
        self._refetchers.append((as_prefix(prefix), refetcher))
        self._refetchers.sort(key=lambda item: len(item[0]), reverse=True)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, change: CacheChange) -> None:
        for prefix, listener in list(self._listeners.values()):
            if not change.key.startswith(prefix):
                continue
            try:
                listener(change)
            except Exception as e:
                logger.warning(
                    "cache_listener_error",
                    key=str(change.key),
                    change=change.kind,
                    error=str(e),
                )

    def _request_refetch(self, key: CacheKey) -> None:
        for prefix, refetcher in self._refetchers:
            if key.startswith(prefix):
                try:
                    refetcher(key)
                except Exception as e:
                    logger.warning("cache_refetch_error", key=str(key), error=str(e))
                return


__all__ = ["CacheChange", "ReactiveCache"]
