"""Retry policy, cancellable scheduler and the retryable operation controller.

The backoff math (``RetryPolicy``) and the timer (``RetryScheduler``) are
independent of any view binding; ``RetryableOperationController`` combines
them with ``OperationController`` and exposes the outcome only through the
controller's state transitions.

Example:
    >>> from opsync.execution.retry import RetryPolicy
    >>>
    >>> policy = RetryPolicy(delay_ms=1000, backoff_factor=1.5, max_delay_ms=10_000)
    >>> [policy.delay_for(attempt) for attempt in (1, 2, 5, 10)]
    [1000.0, 1500.0, 5062.5, 10000.0]
"""

from __future__ import annotations

import asyncio
import functools
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from opsync.core.errors import EnhancedError, ErrorContext
from opsync.core.logging import get_logger
from opsync.core.result import Result
from opsync.execution.operation import OperationController, OperationFn, ProgressInfo


P = TypeVar("P")
T = TypeVar("T")

logger = get_logger(__name__)


def _accept_all(error: EnhancedError) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters.

    Delay before retry ``n`` (1-based) =
    ``min(delay_ms * backoff_factor ** (n - 1), max_delay_ms)``

    Attributes:
        max_retries: Maximum number of retries after the first failure
        delay_ms: Delay before the first retry
        backoff_factor: Exponential multiplier
        max_delay_ms: Maximum delay cap
        retry_predicate: Extra filter on top of ``error.retryable``
    """

    max_retries: int = 3
    delay_ms: float = 1000.0
    backoff_factor: float = 2.0
    max_delay_ms: float = 30_000.0
    retry_predicate: Callable[[EnhancedError], bool] = field(default=_accept_all, compare=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        object.__setattr__(self, "delay_ms", float(self.delay_ms))
        object.__setattr__(self, "max_delay_ms", float(self.max_delay_ms))

    def delay_for(self, attempt: int) -> float:
        """Delay in milliseconds before retry ``attempt`` (1-based)."""
        return compute_delay(self, attempt)

    def should_retry(self, attempt: int, error: EnhancedError) -> bool:
        """True when ``error`` allows retry number ``attempt + 1``."""
        if attempt >= self.max_retries or not error.retryable:
            return False
        try:
            return bool(self.retry_predicate(error))
        except Exception as e:
            logger.warning("retry_predicate_error", code=error.code.value, error=str(e))
            return False


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Backoff delay in milliseconds for retry ``attempt`` (1-based)."""
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    base, cap, factor = policy.delay_ms, policy.max_delay_ms, policy.backoff_factor
    if base == 0 or factor == 1 or base >= cap:
        return min(base, cap)
    # manual retries may go past max_retries; never raise the factor past the cap
    if attempt - 1 >= math.log(cap / base, factor):
        return cap
    return min(base * factor ** (attempt - 1), cap)


NO_RETRY = RetryPolicy(max_retries=0)


# ------------------------------------------------------------------ #
# Scheduler
# ------------------------------------------------------------------ #


class RetryTicket:
    """Cancellation token for one scheduled retry.

    A ticket ends exactly once: either cancelled, or fired and finished.
    Firing after cancellation does nothing.
    """

    def __init__(self, delay_seconds: float) -> None:
        self.delay_seconds = delay_seconds
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[Any] | None = None
        self._cancelled = False
        self._fired = False
        self._done: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def done(self) -> bool:
        return self._done.done()

    def cancel(self) -> bool:
        """Cancel the pending timer. Returns True only for the first effective call."""
        if self._cancelled or self._fired:
            return False
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._resolve()
        return True

    async def wait(self) -> None:
        """Wait until the ticket is cancelled or its callback has finished."""
        await asyncio.shield(self._done)

    def _resolve(self) -> None:
        if not self._done.done():
            self._done.set_result(None)


class RetryScheduler:
    """Single-slot timer: scheduling replaces whatever was pending.

    Example::

        scheduler = RetryScheduler()
        ticket = scheduler.schedule(1.5, controller_retry)
        scheduler.cancel()      # True
        scheduler.cancel()      # False, nothing pending
    """

    def __init__(self) -> None:
        self._pending: RetryTicket | None = None
        self._running: RetryTicket | None = None

    @property
    def pending(self) -> RetryTicket | None:
        return self._pending

    @property
    def running(self) -> RetryTicket | None:
        return self._running

    def schedule(
        self, delay_seconds: float, callback: Callable[[], Awaitable[Any]]
    ) -> RetryTicket:
        """Run ``callback`` after ``delay_seconds``; cancels the previous ticket."""
        self.cancel()
        ticket = RetryTicket(delay_seconds)
        loop = asyncio.get_running_loop()
        ticket._handle = loop.call_later(delay_seconds, self._fire, ticket, callback)
        self._pending = ticket
        return ticket

    def cancel(self) -> bool:
        """Cancel the pending ticket, if any."""
        ticket, self._pending = self._pending, None
        if ticket is None:
            return False
        return ticket.cancel()

    async def join(self) -> None:
        """Wait until nothing is pending or running, following rescheduled chains."""
        while True:
            if self._pending is not None and self._pending.done:
                self._pending = None
            ticket = self._pending or self._running
            if ticket is None:
                return
            await ticket.wait()

    def _fire(self, ticket: RetryTicket, callback: Callable[[], Awaitable[Any]]) -> None:
        if ticket.cancelled:
            return
        ticket._fired = True
        ticket._handle = None
        if self._pending is ticket:
            self._pending = None
        self._running = ticket
        task = asyncio.ensure_future(callback())
        ticket._task = task
        task.add_done_callback(lambda done: self._finish(ticket, done))

    def _finish(self, ticket: RetryTicket, task: asyncio.Future[Any]) -> None:
        if self._running is ticket:
            self._running = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("scheduled_retry_failed", error=str(task.exception()))
        ticket._resolve()


# ------------------------------------------------------------------ #
# Retryable controller
# ------------------------------------------------------------------ #


class RetryableOperationController(OperationController[P, T]):
    """
    Operation controller with scheduled backoff retries.

    On an error that is retryable, accepted by ``policy.retry_predicate`` and
    with ``retry_count < max_retries``, a re-execution with the last params is
    scheduled after ``policy.delay_for(retry_count + 1)`` milliseconds.

    Args:
        operation_fn: ``async (params, report_progress) -> Result``
        context: Fixed error context
        policy: Backoff parameters (defaults to ``RetryPolicy()``)
        auto_retry: Schedule retries automatically; ``retry()`` works either way
        on_retry: Called as ``on_retry(attempt, delay_ms)`` before each retry
        scheduler: Timer to use (one per controller by default)
    """

    def __init__(
        self,
        operation_fn: OperationFn[P, T],
        context: ErrorContext | None = None,
        policy: RetryPolicy | None = None,
        *,
        auto_retry: bool = True,
        on_retry: Callable[[int, float], None] | None = None,
        on_progress: Callable[[ProgressInfo], None] | None = None,
        scheduler: RetryScheduler | None = None,
    ):
        super().__init__(operation_fn, context, on_progress=on_progress)
        self.policy = policy or RetryPolicy()
        self.auto_retry = auto_retry
        self._on_retry = on_retry
        self._scheduler = scheduler or RetryScheduler()
        self._attempt = 0
        self._has_params = False
        self._last_params: P | None = None
        self._next_delay_ms: float | None = None
        self._generation = 0

    @property
    def retry_count(self) -> int:
        return self._attempt

    @property
    def max_retries(self) -> int:
        return self.policy.max_retries

    @property
    def next_retry_delay_ms(self) -> float | None:
        """Delay of the pending automatic retry, or None."""
        return self._next_delay_ms

    @property
    def scheduler(self) -> RetryScheduler:
        return self._scheduler

    async def execute(self, params: P) -> Result[T, EnhancedError]:
        """Start a new logical call: cancels pending retries, resets the attempt count."""
        self._cancel_pending()
        self._attempt = 0
        self._last_params = params
        self._has_params = True
        return await self._run(params)

    async def retry(self) -> Result[T, EnhancedError] | None:
        """Force one more attempt with the last params, outside the schedule.

        Returns:
            The attempt's result, or None when nothing was executed yet.
        """
        if not self._has_params:
            return None
        self._cancel_pending()
        return await self._retry_once()

    def reset(self) -> None:
        self._cancel_pending()
        self._attempt = 0
        self._has_params = False
        self._last_params = None
        super().reset()

    def close(self) -> None:
        """Cancel pending retries when the binding goes away."""
        self._cancel_pending()

    async def join(self) -> None:
        """Wait for the pending retry chain to settle."""
        await self._scheduler.join()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _run(self, params: P) -> Result[T, EnhancedError]:
        token = self._begin()
        result = await self._execute(params, token)
        if result.is_err() and self._is_current(token):
            self._schedule_next(result.unwrap_err())
        return result

    async def _retry_once(self) -> Result[T, EnhancedError]:
        self._attempt += 1
        delay_ms = self.policy.delay_for(self._attempt)
        logger.info(
            "operation_retry",
            operation=self.context.operation,
            attempt=self._attempt,
            max_retries=self.policy.max_retries,
        )
        if self._on_retry is not None:
            try:
                self._on_retry(self._attempt, delay_ms)
            except Exception as e:
                logger.warning("on_retry_callback_error", error=str(e))
        return await self._run(self._last_params)  # type: ignore[arg-type]

    async def _fire_scheduled(self, generation: int) -> None:
        # a timer that fired before the controller moved on is stale
        if generation != self._generation or not self._has_params:
            logger.debug("stale_retry_ignored", operation=self.context.operation)
            return
        self._next_delay_ms = None
        await self._retry_once()

    def _schedule_next(self, error: EnhancedError) -> None:
        if not self.auto_retry or not self.policy.should_retry(self._attempt, error):
            return
        delay_ms = self.policy.delay_for(self._attempt + 1)
        self._next_delay_ms = delay_ms
        self._scheduler.schedule(
            delay_ms / 1000, functools.partial(self._fire_scheduled, self._generation)
        )
        logger.info(
            "retry_scheduled",
            operation=self.context.operation,
            attempt=self._attempt + 1,
            delay_ms=delay_ms,
            code=error.code.value,
        )

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._scheduler.cancel():
            logger.debug("retry_cancelled", operation=self.context.operation)
        self._next_delay_ms = None


__all__ = [
    "NO_RETRY",
    "RetryPolicy",
    "RetryScheduler",
    "RetryTicket",
    "RetryableOperationController",
    "compute_delay",
]
