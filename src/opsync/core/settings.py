"""Session-level settings for opsync.

Retry defaults, cache TTL/version and the optional Redis URL for the durable
cache tier all come from the environment (prefix ``OPSYNC_``) or a ``.env``
file, validated by pydantic at startup.

Examples:
    >>> from opsync.core.settings import OpsyncSettings
    >>> settings = OpsyncSettings(retry_delay_ms=500)
    >>> settings.retry_policy().delay_ms
    500.0

Tags:
    settings, configuration, pydantic, environment, opsync
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from opsync.execution.retry import RetryPolicy


class OpsyncSettings(BaseSettings):
    """Settings shared by every controller and cache built for a session.

    Fields
    ──────
    service_name         : Service name stamped on every log line
    log_level            : Structlog log level
    log_json             : JSON output (None → auto-detect from tty)
    cache_namespace      : Prefix for durable cache keys
    cache_ttl_seconds    : Time-to-live of durable cache entries
    cache_version        : Durable entries written under another version are stale
    redis_url            : When set, the durable tier lives in Redis
    retry_*              : Default RetryPolicy parameters
    """

    model_config = SettingsConfigDict(
        env_prefix="OPSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    service_name: str = "opsync"
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Cache ────────────────────────────────────────────────────
    cache_namespace: str = "app"
    cache_ttl_seconds: float = Field(default=15 * 60, gt=0)
    cache_version: str = "1.1"
    cache_max_size: int = Field(default=10_000, gt=0)
    redis_url: str | None = None

    # ── Retry ────────────────────────────────────────────────────
    retry_max_retries: int = Field(default=3, ge=0)
    retry_delay_ms: float = Field(default=1000, ge=0)
    retry_backoff_factor: float = Field(default=2.0, ge=1.0)
    retry_max_delay_ms: float = Field(default=30_000, ge=0)

    def retry_policy(self) -> RetryPolicy:
        """Build the default RetryPolicy from these settings."""
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            delay_ms=self.retry_delay_ms,
            backoff_factor=self.retry_backoff_factor,
            max_delay_ms=self.retry_max_delay_ms,
        )


__all__ = ["OpsyncSettings"]
