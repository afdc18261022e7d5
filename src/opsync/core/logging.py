"""
Standardized structured logging for opsync.

Controllers, the retry scheduler and the cache synchronizer all log through
structlog so that error classification, scheduled retries and Tier B cache
failures show up as structured events with the same field names.

Manifesto:
    - **Structured:** Event names plus key/value context, never f-strings
    - **Flexible output:** JSON for log shipping, colored console for dev
    - **Correlated:** ``bind_context`` propagates session/user ids through
      contextvars, which follow asyncio tasks
    - **Operation-scoped:** While an operation function runs, every event
      (cache writes included) carries the controller's ``domain`` and
      ``operation``

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="opsync")
            │
            ▼
        structlog processor chain:
          1. TimeStamper(iso)
          2. merge_contextvars          (session ids, domain, operation)
          3. add_log_level / add_logger_name
          4. service metadata           (service.name, opsync.version)
          5. ECS field names            (JSON only: opsync.domain, error.code, ...)
          6. JSONRenderer (or ConsoleRenderer on a tty)

Examples:
    >>> from opsync.core.errors import ErrorContext
    >>> from opsync.core.logging import configure_logging, get_logger, operation_context
    >>> configure_logging(level="DEBUG", json_format=False, service="pling-app")
    >>> logger = get_logger(__name__)
    >>> with operation_context(ErrorContext(domain="team", operation="load_team")):
    ...     logger.info("retry_scheduled", attempt=2, delay_ms=1500.0)

Tags:
    logging, structlog, observability, opsync
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from opsync import __version__

if TYPE_CHECKING:
    from opsync.core.errors import ErrorContext


# Store service name for metadata
_SERVICE_NAME = "opsync"

# opsync event fields -> ECS-style names used in JSON output
ECS_FIELDS = {
    "timestamp": "@timestamp",
    "level": "log.level",
    "domain": "opsync.domain",
    "operation": "opsync.operation",
    "attempt": "opsync.retry.attempt",
    "delay_ms": "opsync.retry.delay_ms",
    "key": "opsync.cache.key",
    "code": "error.code",
    "retryable": "error.retryable",
    "error": "error.message",
}


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service.name", _SERVICE_NAME)
    event_dict.setdefault("opsync.version", __version__)
    return event_dict


def _rename_ecs_fields(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Rename opsync fields to their ECS names; already-set targets win."""
    for name, ecs_name in ECS_FIELDS.items():
        if name in event_dict and ecs_name not in event_dict:
            event_dict[ecs_name] = event_dict.pop(name)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "opsync",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(_rename_ecs_fields)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def configure_from_settings(settings: Any) -> None:
    """Configure logging from an ``OpsyncSettings`` instance."""
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service=settings.service_name,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(session_id="abc123", user_id="u-42")
        logger.info("team_loaded")  # Includes session_id and user_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def operation_context(context: ErrorContext, **extra: Any) -> Iterator[None]:
    """Bind ``domain`` and ``operation`` from ``context`` for the enclosed block.

    ``None`` fields are not bound. Previous values are restored on exit, so
    nested operations (a use case calling another controller) log correctly.
    """
    fields = {"domain": context.domain, "operation": context.operation, **extra}
    with structlog.contextvars.bound_contextvars(
        **{name: value for name, value in fields.items() if value is not None}
    ):
        yield


__all__ = [
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "operation_context",
    "ECS_FIELDS",
]
