"""Tests for core.settings module.

Covers:
- OpsyncSettings defaults
- Environment variable and .env overrides
- Validation of retry and cache fields
- RetryPolicy built from settings
"""

import pytest
from pydantic import ValidationError

from opsync.core.settings import OpsyncSettings
from opsync.execution.retry import RetryPolicy


class TestOpsyncSettingsDefaults:
    def test_cache_defaults(self):
        s = OpsyncSettings()
        assert s.cache_namespace == "app"
        assert s.cache_ttl_seconds == 900
        assert s.cache_version == "1.1"
        assert s.redis_url is None

    def test_retry_defaults_match_policy(self):
        assert OpsyncSettings().retry_policy() == RetryPolicy()

    def test_log_defaults(self):
        s = OpsyncSettings()
        assert s.log_level == "INFO"
        assert s.log_json is None


class TestOpsyncSettingsEnvOverride:
    def test_prefix_is_required(self, monkeypatch):
        monkeypatch.setenv("CACHE_VERSION", "9.9")
        assert OpsyncSettings().cache_version == "1.1"

    def test_retry_from_env(self, monkeypatch):
        monkeypatch.setenv("OPSYNC_RETRY_MAX_RETRIES", "5")
        monkeypatch.setenv("OPSYNC_RETRY_DELAY_MS", "250")
        policy = OpsyncSettings().retry_policy()
        assert policy.max_retries == 5
        assert policy.delay_ms == 250.0

    def test_redis_url_from_env(self, monkeypatch):
        monkeypatch.setenv("OPSYNC_REDIS_URL", "redis://cache:6379/2")
        assert OpsyncSettings().redis_url == "redis://cache:6379/2"

    def test_env_file(self, tmp_env_file):
        tmp_env_file.write_text("OPSYNC_CACHE_NAMESPACE=users\nOPSYNC_LOG_JSON=true\n")
        s = OpsyncSettings(_env_file=tmp_env_file)
        assert s.cache_namespace == "users"
        assert s.log_json is True

    def test_unknown_keys_ignored(self, monkeypatch):
        monkeypatch.setenv("OPSYNC_NOT_A_SETTING", "x")
        OpsyncSettings()


class TestOpsyncSettingsValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"retry_max_retries": -1},
            {"retry_backoff_factor": 0.5},
            {"cache_ttl_seconds": 0},
        ],
    )
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ValidationError):
            OpsyncSettings(**kwargs)
