"""
Result envelope for consistent success/failure handling.

Provides a typed Result[T, E] pattern that makes success/failure explicit for
every use-case and repository function. Expected failures travel as values
(``Err``); only unexpected exceptions are thrown, and those are caught at the
operation controller boundary.

Manifesto:
    - **Explicit over Implicit:** Repositories return ``Err("not found")``
      instead of raising, so callers cannot forget the failure path
    - **Fail-fast accessors:** Reading the value of an ``Err`` (or the error
      of an ``Ok``) raises immediately instead of returning ``None``
    - **Any error payload:** The repository contract uses plain strings,
      controllers use ``EnhancedError``; both fit in ``Err``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                     Result[T, E]                             │
        ├─────────────────┬─────────────────┬─────────────────────────┤
        │     Ok[T]       │     Err[E]      │     Utilities           │
        ├─────────────────┼─────────────────┼─────────────────────────┤
        │ • value: T      │ • error: E      │ • ok() / err()          │
        │ • map()         │ • map_err()     │ • try_result()          │
        │ • flat_map()    │ • or_else()     │ • try_result_async()    │
        │ • unwrap()      │ • unwrap_err()  │ • from_optional()       │
        └─────────────────┴─────────────────┴─────────────────────────┘

Examples:
    >>> from opsync.core.result import ok, err
    >>> ok(5).map(lambda x: x * 2).unwrap()
    10
    >>> err("team not found").unwrap_or(None) is None
    True
    >>> err("boom").unwrap_err()
    'boom'

Guardrails:
    ❌ DON'T: Call unwrap() without checking is_ok() first
    ✅ DO: Use unwrap_or() or pattern matching for safe extraction

    ❌ DON'T: Raise from a repository for "row missing"
    ✅ DO: Return err("...") and let the controller classify it

Tags:
    result-pattern, error-handling, monadic, opsync
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar


T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")
F = TypeVar("F")


class ResultAccessError(Exception):
    """Raised when a Result accessor is used on the wrong variant."""


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Successful result containing a value.

    Ok is immutable; transformations return new results. Error-side
    combinators (``map_err``, ``or_else``) are no-ops.
    """

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_err(self) -> Any:
        """Fail fast: an Ok carries no error."""
        raise ResultAccessError(f"unwrap_err() called on Ok({self.value!r})")

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_or_else(self, f: Callable[[Any], T]) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U, Any]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def map_err(self, f: Callable[[Any], F]) -> Result[T, F]:
        return self

    def flat_map(self, f: Callable[[T], Result[U, Any]]) -> Result[U, Any]:
        """Chain to another Result-returning function."""
        return f(self.value)

    def and_then(self, f: Callable[[T], Result[U, Any]]) -> Result[U, Any]:
        """Alias for flat_map."""
        return f(self.value)

    def or_else(self, f: Callable[[Any], Result[T, Any]]) -> Result[T, Any]:
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failed result containing an error payload.

    The payload may be any value: a message string (repository contract), an
    exception, or an ``EnhancedError`` produced by the classifier. Value-side
    combinators short-circuit and return the same error.
    """

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """Raise the error if it is an exception, otherwise ResultAccessError."""
        if isinstance(self.error, BaseException):
            raise self.error
        raise ResultAccessError(f"unwrap() called on Err({self.error!r})")

    def unwrap_err(self) -> E:
        return self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_or_else(self, f: Callable[[E], T]) -> T:
        return f(self.error)

    def map(self, f: Callable[[Any], U]) -> Result[U, E]:
        return self

    def map_err(self, f: Callable[[E], F]) -> Result[Any, F]:
        """Transform the error."""
        return Err(f(self.error))

    def flat_map(self, f: Callable[[Any], Result[U, Any]]) -> Result[U, E]:
        return self

    def and_then(self, f: Callable[[Any], Result[U, Any]]) -> Result[U, E]:
        return self

    def or_else(self, f: Callable[[E], Result[T, Any]]) -> Result[T, Any]:
        """Call f with the error to try recovery."""
        return f(self.error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        to_dict = getattr(self.error, "to_dict", None)
        if callable(to_dict):
            return {"ok": False, "error": to_dict()}
        if isinstance(self.error, BaseException):
            return {
                "ok": False,
                "error": {
                    "error_type": type(self.error).__name__,
                    "message": str(self.error),
                },
            }
        return {"ok": False, "error": self.error}

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[E]


# =============================================================================
# RESULT CONSTRUCTORS AND UTILITIES
# =============================================================================


def ok(value: T) -> Ok[T]:
    """Construct a successful result."""
    return Ok(value)


def err(error: E) -> Err[E]:
    """Construct a failed result."""
    return Err(error)


def is_result(value: Any) -> bool:
    """Return True when ``value`` is an Ok or an Err."""
    return isinstance(value, (Ok, Err))


def try_result(f: Callable[[], T]) -> Result[T, Exception]:
    """
    Execute a function and wrap the outcome in a Result.

    Bridges exception-throwing code (third-party clients, stdlib parsing)
    into the Result pattern.

    Args:
        f: Zero-argument callable that may raise exceptions

    Returns:
        Ok with the return value, or Err with the raised exception
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


async def try_result_async(
    f: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
) -> Result[T, Exception]:
    """Await ``f(*args, **kwargs)`` and wrap the outcome in a Result."""
    try:
        return Ok(await f(*args, **kwargs))
    except Exception as e:
        return Err(e)


def from_optional(value: T | None, error: E) -> Result[T, E]:
    """
    Convert an optional value to a Result.

    Repositories use this for lookups: ``from_optional(row, "team not found")``.
    """
    if value is None:
        return Err(error)
    return Ok(value)


__all__ = [
    "Ok",
    "Err",
    "Result",
    "ResultAccessError",
    "ok",
    "err",
    "is_result",
    "try_result",
    "try_result_async",
    "from_optional",
]
