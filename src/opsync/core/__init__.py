"""opsync core -- primitives shared by every controller.

Architecture::

    Layer 1 -- Type System & Errors
        result.py          Result[T, E] envelope (Ok / Err / try_result)
        errors.py          ErrorKind, EnhancedError, classify()

    Layer 2 -- Ambient
        logging.py         structlog configuration + get_logger
        settings.py        OpsyncSettings (pydantic-settings)

    Layer 3 -- Caching
        cache/             CacheKey, Tier A/Tier B, CacheSynchronizer

``settings`` and ``cache`` are imported by path so that importing the error
and result primitives stays cheap.
"""

from opsync.core.errors import (
    ApiError,
    EnhancedError,
    ErrorContext,
    ErrorKind,
    NetworkError,
    NotFoundError,
    OperationError,
    OperationTimeoutError,
    ServerError,
    ValidationError,
    classify,
    is_retryable,
)
from opsync.core.result import (
    Err,
    Ok,
    Result,
    ResultAccessError,
    err,
    from_optional,
    ok,
    try_result,
    try_result_async,
)

__all__ = [
    # result
    "Ok",
    "Err",
    "Result",
    "ResultAccessError",
    "ok",
    "err",
    "from_optional",
    "try_result",
    "try_result_async",
    # errors
    "ErrorKind",
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
    "is_retryable",
]
