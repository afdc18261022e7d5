"""
Optimistic mutations with snapshot and rollback.

``OptimisticMutationCoordinator`` writes a provisional value into the
``CacheSynchronizer`` before the mutating operation runs, and either
confirms it (optionally replacing it with the server's value) or restores
the value it replaced.

Manifesto:
    - **Rollback before error:** The cache is restored inside the wrapped
      operation function, before the controller publishes the error, so no
      view sees the speculative value next to the error message
    - **Per-key LIFO chain:** Overlapping mutations on one key stack their
      snapshots on the shared synchronizer, whichever coordinator issued
      them; a failing mutation restores only what it replaced and never
      clobbers a later mutation that is still pending
    - **No locks:** Cache writes are synchronous, so each apply/commit/rollback
      is atomic with respect to the event loop

Architecture:
    ::

        key "team:7"        cache shows
        ─────────────       ───────────
        M1 apply  A→B       B            chain: [M1(prev=A)]
        M2 apply  B→C       C            chain: [M1(prev=A), M2(prev=B)]
        M1 fails            C            chain: [M2(prev=A)]   (handed down)
        M2 fails            A            chain: []             (top restores)

Examples:
    >>> coordinator = OptimisticMutationCoordinator(
    ...     sync,
    ...     rename_team,
    ...     ErrorContext(domain="team"),
    ...     key_fn=lambda p: CacheKey("team", p["id"]),
    ...     apply_fn=lambda current, p: {**current, "name": p["name"]},
    ... )
    >>> await coordinator.execute({"id": "7", "name": "Closers"})

Tags:
    optimistic-update, rollback, snapshot, cache, opsync
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Generic, TypeVar

from opsync.core.cache.keys import CacheKey
from opsync.core.cache.synchronizer import CacheSynchronizer
from opsync.core.errors import EnhancedError, ErrorContext, utcnow
from opsync.core.logging import get_logger
from opsync.core.result import Ok, Result
from opsync.execution.operation import (
    OperationController,
    OperationFn,
    OperationState,
    OperationStatus,
    ProgressInfo,
    ProgressReporter,
    StateListener,
)
from opsync.execution.retry import RetryableOperationController, RetryPolicy


P = TypeVar("P")
T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(eq=False)
class OptimisticSnapshot(Generic[T]):
    """What one in-flight mutation replaced.

    Attributes:
        key: Cache key the mutation wrote
        previous_value: Value to restore if the mutation fails; rewritten when
            an earlier mutation on the same key settles first
        speculative_value: Provisional value written by the mutation
        applied_at: When the provisional value was written
    """

    key: CacheKey
    previous_value: T | None
    speculative_value: T | None
    applied_at: datetime = field(default_factory=utcnow)


class OptimisticMutationCoordinator(Generic[P, T]):
    """
    Snapshot/apply/rollback discipline around a mutating operation.

    Args:
        cache: The session's CacheSynchronizer
        operation_fn: ``async (params, report_progress) -> Result``
        context: Fixed error context
        key_fn: Cache key the mutation affects, from the params
        apply_fn: ``(current_value, params) -> provisional value``
        reconcile: After success, write the server value into the cache. A
            callable ``(server_value, params) -> cache value`` maps it first.
            ``None`` server values are never written
        policy: When given, the wrapped controller retries with this policy
    """

    def __init__(
        self,
        cache: CacheSynchronizer,
        operation_fn: OperationFn[P, T],
        context: ErrorContext | None = None,
        *,
        key_fn: Callable[[P], CacheKey],
        apply_fn: Callable[[Any, P], Any],
        reconcile: bool | Callable[[T, P], Any] = True,
        policy: RetryPolicy | None = None,
        auto_retry: bool = True,
        on_progress: Callable[[ProgressInfo], None] | None = None,
    ):
        self._cache = cache
        self._operation_fn = operation_fn
        self._key_fn = key_fn
        self._apply_fn = apply_fn
        self._reconcile = reconcile

        # errors are named after operation_fn, not _mutate
        context = context or ErrorContext()
        if context.operation is None:
            context = replace(context, operation=getattr(operation_fn, "__name__", None))

        self.controller: OperationController[P, T]
        if policy is not None:
            self.controller = RetryableOperationController(
                self._mutate, context, policy, auto_retry=auto_retry, on_progress=on_progress
            )
        else:
            self.controller = OperationController(self._mutate, context, on_progress=on_progress)

    # ------------------------------------------------------------------ #
    # Controller facade
    # ------------------------------------------------------------------ #

    async def execute(self, params: P) -> Result[T, EnhancedError]:
        return await self.controller.execute(params)

    async def retry(self) -> Result[T, EnhancedError] | None:
        if not isinstance(self.controller, RetryableOperationController):
            raise TypeError("retry() needs a coordinator built with a RetryPolicy")
        return await self.controller.retry()

    def reset(self) -> None:
        self.controller.reset()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        return self.controller.subscribe(listener)

    @property
    def state(self) -> OperationState[T]:
        return self.controller.state

    @property
    def status(self) -> OperationStatus:
        return self.controller.status

    @property
    def data(self) -> T | None:
        return self.controller.data

    @property
    def error(self) -> EnhancedError | None:
        return self.controller.error

    @property
    def progress(self) -> ProgressInfo | None:
        return self.controller.progress

    def pending(self, key: CacheKey) -> int:
        """Number of in-flight mutations on ``key``, from any coordinator."""
        return self._cache.pending_snapshots(key)

    # ------------------------------------------------------------------ #
    # Snapshot discipline
    # ------------------------------------------------------------------ #

    def apply(self, key: CacheKey, params: P) -> OptimisticSnapshot[Any]:
        """Write the provisional value and push its snapshot."""
        previous = self._cache.peek(key)
        speculative = self._apply_fn(previous, params)
        snapshot = OptimisticSnapshot(key, previous, speculative)
        self._cache.put(key, speculative)
        depth = self._cache.push_snapshot(key, snapshot)
        logger.debug("optimistic_applied", key=str(key), depth=depth)
        return snapshot

    def commit(self, snapshot: OptimisticSnapshot[Any], server_value: Any = None) -> None:
        """Discard the snapshot after success, reconciling with ``server_value``."""
        is_top, later = self._cache.detach_snapshot(snapshot.key, snapshot)
        if server_value is None:
            return
        if is_top:
            self._cache.put(snapshot.key, server_value)
        elif later is not None:
            later.previous_value = server_value

    def rollback(self, snapshot: OptimisticSnapshot[Any]) -> None:
        """Restore what the mutation replaced without touching later mutations."""
        is_top, later = self._cache.detach_snapshot(snapshot.key, snapshot)
        if is_top:
            self._cache.put(snapshot.key, snapshot.previous_value)
        elif later is not None:
            later.previous_value = snapshot.previous_value
        logger.info("optimistic_rolled_back", key=str(snapshot.key), restored_visible=is_top)

    async def _mutate(self, params: P, report_progress: ProgressReporter) -> Result[T, Any]:
        snapshot = self.apply(self._key_fn(params), params)
        try:
            result = await self._operation_fn(params, report_progress)
        except BaseException:
            self.rollback(snapshot)
            raise
        if isinstance(result, Ok):
            self.commit(snapshot, self._server_value(result.value, params))
        else:
            self.rollback(snapshot)
        return result

    def _server_value(self, value: T, params: P) -> Any:
        if callable(self._reconcile):
            return self._reconcile(value, params)
        return value if self._reconcile else None


__all__ = ["OptimisticMutationCoordinator", "OptimisticSnapshot"]
