"""
Operation controller: one async unit of work with observable state.

An ``OperationController`` wraps a caller-supplied operation function and
exposes ``status``, ``data``, ``error`` and ``progress`` to a view binding.
It performs no I/O itself; all I/O lives in the operation function.

Manifesto:
    - **Errors are state:** Nothing raised by the operation function escapes
      ``execute()``; it is classified into ``EnhancedError`` and published
    - **Latest call wins:** Every ``execute()`` takes a call token; responses
      of superseded calls never touch visible state
    - **Snapshots, not fields:** Subscribers receive immutable
      ``OperationState`` values and can diff them freely

Architecture:
    ::

        execute(params)
            │  token = next token
            ▼
        LOADING (progress: indeterminate)
            │  await operation_fn(params, report_progress)
            ├── Ok(value) ─────────► SUCCESS (data=value, progress 100%)
            ├── Err(payload) ──────► classify ─► ERROR (error=EnhancedError)
            └── raises Exception ──► classify ─► ERROR
                   (only if token is still the latest)

        reset() ─► IDLE, supersedes in-flight calls

Examples:
    >>> async def load_team(team_id, report_progress):
    ...     return await repository.find_by_id(team_id)
    >>> controller = OperationController(load_team, ErrorContext(domain="team"))
    >>> result = await controller.execute("team-7")
    >>> controller.status
    <OperationStatus.SUCCESS: 'success'>

Guardrails:
    ❌ DON'T: Mutate caches from inside the operation function
    ✅ DO: Route visible state changes through CacheSynchronizer

    ❌ DON'T: Enforce timeouts in the controller
    ✅ DO: Use asyncio.wait_for inside the operation function; the timeout
       surfaces as TIMEOUT_ERROR

Tags:
    operation, controller, async, state-machine, opsync
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Generic, TypeVar

from opsync.core.errors import EnhancedError, ErrorContext, classify, log_level_for
from opsync.core.logging import get_logger, operation_context
from opsync.core.result import Err, Result, is_result


P = TypeVar("P")
T = TypeVar("T")

logger = get_logger(__name__)


class OperationStatus(str, Enum):
    """Lifecycle status of an operation."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressInfo:
    """
    Progress of a running operation.

    Either ``percent`` (0..100) or ``indeterminate`` is meaningful in one
    update, never both. Views render the two differently.
    """

    percent: float | None = None
    indeterminate: bool = False
    message: str | None = None

    def __post_init__(self) -> None:
        if self.percent is not None:
            if self.indeterminate:
                raise ValueError("ProgressInfo cannot be both indeterminate and have a percent")
            if not 0 <= self.percent <= 100:
                raise ValueError(f"ProgressInfo.percent must be within 0..100, got {self.percent}")

    @classmethod
    def coerce(cls, value: ProgressInfo | Mapping[str, Any]) -> ProgressInfo:
        if isinstance(value, ProgressInfo):
            return value
        return cls(**value)


@dataclass(frozen=True)
class OperationState(Generic[T]):
    """Immutable snapshot of a controller's visible state."""

    status: OperationStatus = OperationStatus.IDLE
    data: T | None = None
    error: EnhancedError | None = None
    progress: ProgressInfo | None = None

    def __post_init__(self) -> None:
        if self.data is not None and self.status is not OperationStatus.SUCCESS:
            raise ValueError("OperationState.data is only set when status is success")
        if self.error is not None and self.status is not OperationStatus.ERROR:
            raise ValueError("OperationState.error is only set when status is error")

    @property
    def is_idle(self) -> bool:
        return self.status is OperationStatus.IDLE

    @property
    def is_loading(self) -> bool:
        return self.status is OperationStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status is OperationStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is OperationStatus.ERROR


IDLE_STATE: OperationState[Any] = OperationState()

ProgressReporter = Callable[[ProgressInfo | Mapping[str, Any]], None]
OperationFn = Callable[[P, ProgressReporter], Awaitable[Result[T, Any]]]
StateListener = Callable[[OperationState[Any]], None]


class OperationController(Generic[P, T]):
    """
    Stateful wrapper around one async unit of work.

    Args:
        operation_fn: ``async (params, report_progress) -> Result``
        context: Fixed error context (domain/operation); the operation name
            defaults to the function's ``__name__``
        on_progress: Called with every accepted progress update
    """

    def __init__(
        self,
        operation_fn: OperationFn[P, T],
        context: ErrorContext | None = None,
        *,
        on_progress: Callable[[ProgressInfo], None] | None = None,
    ):
        self._operation_fn = operation_fn
        context = context or ErrorContext()
        if context.operation is None:
            context = replace(context, operation=getattr(operation_fn, "__name__", None))
        self.context = context
        self._on_progress = on_progress
        self._state: OperationState[T] = IDLE_STATE
        self._token = 0
        self._listeners: dict[int, StateListener] = {}
        self._next_listener_id = 0

    # ------------------------------------------------------------------ #
    # Visible state
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> OperationState[T]:
        return self._state

    @property
    def status(self) -> OperationStatus:
        return self._state.status

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def error(self) -> EnhancedError | None:
        return self._state.error

    @property
    def progress(self) -> ProgressInfo | None:
        return self._state.progress

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def is_success(self) -> bool:
        return self._state.is_success

    @property
    def is_error(self) -> bool:
        return self._state.is_error

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Deliver every new state to ``listener``; returns an unsubscribe function."""
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #

    async def execute(self, params: P) -> Result[T, EnhancedError]:
        """Run the operation function once.

        Returns:
            The ``Ok`` from the operation, or ``Err(EnhancedError)``. A call
            superseded by a later ``execute``/``reset`` still returns its own
            result but does not change visible state.
        """
        return await self._execute(params, self._begin())

    def reset(self) -> None:
        """Return to idle and supersede any in-flight call. Idempotent."""
        self._token += 1
        self._set_state(IDLE_STATE)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _begin(self) -> int:
        self._token += 1
        return self._token

    def _is_current(self, token: int) -> bool:
        return token == self._token

    async def _execute(self, params: P, token: int) -> Result[T, EnhancedError]:
        self._set_state(
            OperationState(OperationStatus.LOADING, progress=ProgressInfo(indeterminate=True))
        )
        try:
            with operation_context(self.context):
                result = await self._operation_fn(params, self._progress_reporter(token))
        except asyncio.CancelledError:
            if self._is_current(token):
                self._set_state(IDLE_STATE)
            raise
        except Exception as e:
            return self._fail(token, params, e)

        if not is_result(result):
            return self._fail(
                token,
                params,
                TypeError(f"operation returned {type(result).__name__}, expected Ok or Err"),
            )
        if isinstance(result, Err):
            return self._fail(token, params, result.error)

        if self._is_current(token):
            self._set_state(
                OperationState(OperationStatus.SUCCESS, data=result.value, progress=ProgressInfo(percent=100))
            )
        else:
            self._log_discarded(token)
        return result

    def _fail(self, token: int, params: P, raw: Any) -> Err[EnhancedError]:
        error = classify(raw, self.context.merge(params=params))
        log = getattr(logger, log_level_for(error.code))
        log(
            "operation_failed",
            domain=error.context.domain,
            operation=error.context.operation,
            code=error.code.value,
            retryable=error.retryable,
            error=error.message,
        )
        if self._is_current(token):
            self._set_state(OperationState(OperationStatus.ERROR, error=error))
        else:
            self._log_discarded(token)
        return Err(error)

    def _progress_reporter(self, token: int) -> ProgressReporter:
        def report_progress(progress: ProgressInfo | Mapping[str, Any]) -> None:
            if not self._is_current(token) or not self._state.is_loading:
                return
            info = ProgressInfo.coerce(progress)
            self._set_state(replace(self._state, progress=info))
            if self._on_progress is not None:
                self._on_progress(info)

        return report_progress

    def _log_discarded(self, token: int) -> None:
        logger.debug(
            "stale_response_discarded",
            operation=self.context.operation,
            token=token,
            latest=self._token,
        )

    def _set_state(self, state: OperationState[T]) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners.values()):
            try:
                listener(state)
            except Exception as e:
                logger.warning(
                    "state_listener_error",
                    operation=self.context.operation,
                    error=str(e),
                )


__all__ = [
    "IDLE_STATE",
    "OperationController",
    "OperationFn",
    "OperationState",
    "OperationStatus",
    "ProgressInfo",
    "ProgressReporter",
]
