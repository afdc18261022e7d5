"""
Error taxonomy and classifier for operation failures.

Every failure that reaches a view binding is an ``EnhancedError``: a closed
``ErrorKind``, a user-facing message, a retryability flag and a context
describing where it happened. ``classify()`` is the single place where raw
failures (raised exceptions, ``Err`` payloads, HTTP-ish error objects,
plain strings) are turned into that envelope.

Manifesto:
    - **Closed taxonomy:** Seven kinds, no ad-hoc strings
    - **Explicit retry semantics:** Each kind has a default retryability
    - **Total classification:** ``classify()`` never raises; anything it
      cannot recognize becomes ``UNKNOWN`` and is not retryable
    - **Traceability:** ``original_error`` always points at the raw value

Architecture:
    ::

        raw failure ──► classify(raw, context) ──► EnhancedError
                          │                          (code, message,
                          ├─ EnhancedError           retryable, context,
                          ├─ OperationError          original_error)
                          ├─ status code (4xx/5xx)
                          ├─ exception type
                          ├─ message shape
                          └─ UNKNOWN

        OperationError (raisable, default_kind / default_retryable)
        ├── ValidationError        VALIDATION_ERROR  retryable=False
        ├── NotFoundError          NOT_FOUND         retryable=False
        ├── ServerError            SERVER_ERROR      retryable=True
        ├── NetworkError           NETWORK_ERROR     retryable=True
        ├── OperationTimeoutError  TIMEOUT_ERROR     retryable=True
        └── ApiError               API_ERROR         retryable=True

Examples:
    >>> from opsync.core.errors import classify, ErrorContext, ErrorKind
    >>> error = classify(ConnectionError("reset by peer"),
    ...                  ErrorContext(domain="team", operation="load_team"))
    >>> error.code is ErrorKind.NETWORK_ERROR, error.retryable
    (True, True)
    >>> classify(object()).code
    <ErrorKind.UNKNOWN: 'UNKNOWN'>

Guardrails:
    ❌ DON'T: Set retryable=True for validation errors
    ✅ DO: Let the kind's default retryability handle it

    ❌ DON'T: Raise from classify() callers when classification looks odd
    ✅ DO: Trust the UNKNOWN fallback and log the original error

Tags:
    error-handling, classification, retry-logic, opsync
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class ErrorKind(str, Enum):
    """
    Closed set of error kinds surfaced to view bindings.

    Attributes:
        VALIDATION_ERROR: Input rejected by the remote store or a use case
        NOT_FOUND: Entity does not exist
        SERVER_ERROR: Remote store failed (5xx)
        NETWORK_ERROR: Connection could not be established or was lost
        TIMEOUT_ERROR: Operation exceeded its deadline
        API_ERROR: Remote store refused the request (other 4xx)
        UNKNOWN: Anything unrecognized
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    API_ERROR = "API_ERROR"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class KindConfig:
    """Per-kind defaults: retryability, fallback message and log level."""

    retryable: bool
    default_message: str
    log_level: str


KIND_CONFIG: dict[ErrorKind, KindConfig] = {
    ErrorKind.VALIDATION_ERROR: KindConfig(
        False, "The input contains errors. Check it and try again.", "info"
    ),
    ErrorKind.NOT_FOUND: KindConfig(
        False, "The requested information could not be found.", "info"
    ),
    ErrorKind.SERVER_ERROR: KindConfig(
        True, "A server error occurred. Please try again later.", "error"
    ),
    ErrorKind.NETWORK_ERROR: KindConfig(
        True, "Could not connect to the server. Check your internet connection.", "warning"
    ),
    ErrorKind.TIMEOUT_ERROR: KindConfig(
        True, "The request took too long. Please try again.", "warning"
    ),
    ErrorKind.API_ERROR: KindConfig(
        True, "An error occurred while talking to the server.", "error"
    ),
    ErrorKind.UNKNOWN: KindConfig(False, "An unknown error occurred.", "error"),
}


def default_retryable(kind: ErrorKind) -> bool:
    return KIND_CONFIG[kind].retryable


def default_message(kind: ErrorKind) -> str:
    return KIND_CONFIG[kind].default_message


def log_level_for(kind: ErrorKind) -> str:
    return KIND_CONFIG[kind].log_level


@dataclass(frozen=True)
class ErrorContext:
    """
    Where an error happened.

    Attributes:
        domain: Feature area (``team``, ``user``, ``organization``, ``goal``)
        operation: Name of the operation function
        details: Free-form key/value pairs (params, attempt number, ...)
        timestamp: When the context was captured (UTC)
    """

    domain: str | None = None
    operation: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def merge(self, **details: Any) -> ErrorContext:
        """Return a copy with extra details and a fresh timestamp."""
        return replace(self, details={**self.details, **details}, timestamp=utcnow())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {"timestamp": self.timestamp.isoformat()}
        if self.domain is not None:
            result["domain"] = self.domain
        if self.operation is not None:
            result["operation"] = self.operation
        if self.details:
            result["details"] = {k: repr(v) for k, v in self.details.items()}
        return result


class EnhancedError(Exception):
    """
    Classified error envelope.

    Produced by ``classify()`` and exposed by controllers as ``state.error``.
    View bindings show ``message`` and offer a retry action only when
    ``retryable`` is true.
    """

    def __init__(
        self,
        code: ErrorKind,
        message: str,
        *,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        original_error: Any = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = default_retryable(code) if retryable is None else retryable
        self.context = context or ErrorContext()
        self.original_error = original_error
        if isinstance(original_error, BaseException):
            self.__cause__ = original_error

    def with_context(self, context: ErrorContext) -> EnhancedError:
        """Return a copy of this error bound to another context."""
        return EnhancedError(
            self.code,
            self.message,
            retryable=self.retryable,
            context=context,
            original_error=self.original_error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
        }
        if self.original_error is not None:
            result["original_error"] = _safe_repr(self.original_error)
        return result

    def __repr__(self) -> str:
        return f"EnhancedError({self.code.value}, {self.message!r}, retryable={self.retryable})"


# =============================================================================
# RAISABLE ERRORS
# =============================================================================


class OperationError(Exception):
    """
    Base exception for failures raised by operation functions.

    Subclasses set ``default_kind`` and ``default_retryable``; the classifier
    maps them without looking at the message.
    """

    default_kind: ErrorKind = ErrorKind.UNKNOWN
    default_retryable: bool | None = None

    def __init__(
        self,
        message: str = "",
        *,
        retryable: bool | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable
        elif self.default_retryable is not None:
            self.retryable = self.default_retryable
        else:
            self.retryable = default_retryable(self.default_kind)

    @property
    def kind(self) -> ErrorKind:
        return self.default_kind


class ValidationError(OperationError):
    """Input rejected."""

    default_kind = ErrorKind.VALIDATION_ERROR


class NotFoundError(OperationError):
    default_kind = ErrorKind.NOT_FOUND


class ServerError(OperationError):
    default_kind = ErrorKind.SERVER_ERROR


class NetworkError(OperationError):
    default_kind = ErrorKind.NETWORK_ERROR


class OperationTimeoutError(OperationError):
    """Deadline exceeded inside an operation function."""

    default_kind = ErrorKind.TIMEOUT_ERROR


class ApiError(OperationError):
    default_kind = ErrorKind.API_ERROR


# =============================================================================
# CLASSIFIER
# =============================================================================


_MESSAGE_RULES: tuple[tuple[tuple[str, ...], ErrorKind], ...] = (
    (("timeout", "timed out"), ErrorKind.TIMEOUT_ERROR),
    (("network", "connection", "fetch"), ErrorKind.NETWORK_ERROR),
    (("not found",), ErrorKind.NOT_FOUND),
    (("invalid", "validation"), ErrorKind.VALIDATION_ERROR),
    (("server error",), ErrorKind.SERVER_ERROR),
)


def classify(
    raw: Any,
    context: ErrorContext | None = None,
    *,
    message: str | None = None,
) -> EnhancedError:
    """
    Map any failure value to an ``EnhancedError``.

    Total: never raises. Values that cannot be recognized (or that raise
    while being inspected) become ``UNKNOWN`` with ``retryable=False``.

    Args:
        raw: A raised exception, an ``Err`` payload, a mapping or anything else
        context: Where the failure happened
        message: Overrides the message derived from ``raw``

    Returns:
        EnhancedError whose ``original_error`` is ``raw``
    """
    try:
        return _classify(raw, context, message)
    except Exception:
        return EnhancedError(
            ErrorKind.UNKNOWN,
            message or default_message(ErrorKind.UNKNOWN),
            retryable=False,
            context=context,
            original_error=raw,
        )


def _classify(raw: Any, context: ErrorContext | None, message: str | None) -> EnhancedError:
    if isinstance(raw, EnhancedError):
        if context is not None and raw.context.operation is None:
            return raw.with_context(context)
        return raw

    if isinstance(raw, OperationError):
        return _build(raw.kind, raw, context, message, retryable=raw.retryable)

    status = _status_code(raw)
    if status is not None:
        kind = _kind_for_status(status)
        if kind is not None:
            return _build(kind, raw, context, message)

    kind = _kind_for_exception(raw)
    if kind is not None:
        return _build(kind, raw, context, message)

    text = _message_of(raw).lower()
    for needles, kind in _MESSAGE_RULES:
        if any(needle in text for needle in needles):
            return _build(kind, raw, context, message)

    return _build(ErrorKind.UNKNOWN, raw, context, message, retryable=False)


def _build(
    kind: ErrorKind,
    raw: Any,
    context: ErrorContext | None,
    message: str | None,
    *,
    retryable: bool | None = None,
) -> EnhancedError:
    return EnhancedError(
        kind,
        message or _message_of(raw) or default_message(kind),
        retryable=retryable,
        context=context,
        original_error=raw,
    )


def _status_code(raw: Any) -> int | None:
    candidates: list[Any] = []
    if isinstance(raw, Mapping):
        candidates += [raw.get("status_code"), raw.get("status"), raw.get("statusCode")]
        response = raw.get("response")
    else:
        candidates += [getattr(raw, "status_code", None), getattr(raw, "status", None)]
        response = getattr(raw, "response", None)
    if response is not None:
        candidates.append(getattr(response, "status_code", None))
    for candidate in candidates:
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
        if isinstance(candidate, str) and candidate.isdigit():
            return int(candidate)
    return None


def _kind_for_status(status: int) -> ErrorKind | None:
    if status in (400, 422):
        return ErrorKind.VALIDATION_ERROR
    if status in (404, 410):
        return ErrorKind.NOT_FOUND
    if status == 408:
        return ErrorKind.TIMEOUT_ERROR
    if 500 <= status < 600:
        return ErrorKind.SERVER_ERROR
    if 400 <= status < 500:
        return ErrorKind.API_ERROR
    return None


def _kind_for_exception(raw: Any) -> ErrorKind | None:
    if not isinstance(raw, BaseException):
        return None
    if isinstance(raw, (TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.TIMEOUT_ERROR
    if isinstance(raw, ConnectionError):
        return ErrorKind.NETWORK_ERROR
    if isinstance(raw, (ValueError, TypeError)):
        return ErrorKind.VALIDATION_ERROR
    if isinstance(raw, LookupError):
        return ErrorKind.NOT_FOUND
    return None


def _message_of(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping):
        value = raw.get("message") or raw.get("error") or ""
        return value if isinstance(value, str) else str(value)
    value = getattr(raw, "message", None)
    if isinstance(value, str) and value:
        return value
    if isinstance(raw, BaseException):
        return str(raw)
    return ""


def _safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return f"<unreprable {type(value).__name__}>"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Any) -> bool:
    """Check if a failure value is retryable after classification."""
    if isinstance(error, (EnhancedError, OperationError)):
        return error.retryable
    return classify(error).retryable


__all__ = [
    "ErrorKind",
    "KindConfig",
    "KIND_CONFIG",
    "ErrorContext",
    "EnhancedError",
    "OperationError",
    "ValidationError",
    "NotFoundError",
    "ServerError",
    "NetworkError",
    "OperationTimeoutError",
    "ApiError",
    "classify",
    "default_message",
    "default_retryable",
    "log_level_for",
    "is_retryable",
    "utcnow",
]
