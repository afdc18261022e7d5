"""
Shared pytest fixtures for opsync tests.

This module provides:
- structlog reset between tests so ``capture_logs`` sees every event
- A user entity layout with sub-views and an email index
- A CacheSynchronizer over an in-memory durable tier with a fake clock

Usage:
    Fixtures are auto-discovered by pytest::

        def test_invalidate(sync, user):
            sync.cache_entity("user", user)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import structlog

from opsync.core.cache import (
    CacheSynchronizer,
    DurableCache,
    EntityCacheSpec,
    InMemoryCache,
    ReactiveCache,
)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if "unit" not in markers:
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Restore structlog defaults so configuration never leaks between tests."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Cache Fixtures
# =============================================================================


class FakeClock:
    """Manually advanced epoch clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


USER_SPEC = EntityCacheSpec(
    "user",
    sub_views={
        "profile": lambda user: user["profile"],
        "settings": lambda user: user["settings"],
    },
    secondary_indexes={"email": lambda user: user.get("email")},
)

TEAM_SPEC = EntityCacheSpec("team")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def durable(backend: InMemoryCache, clock: FakeClock) -> DurableCache:
    return DurableCache(backend, namespace="test", ttl_seconds=900, version="1.1", clock=clock)


@pytest.fixture
def sync(durable: DurableCache) -> CacheSynchronizer:
    return CacheSynchronizer(ReactiveCache(), durable, [USER_SPEC, TEAM_SPEC])


@pytest.fixture
def user() -> dict[str, Any]:
    return {
        "id": "42",
        "email": "anna@example.se",
        "name": "Anna",
        "profile": {"avatar": "a.png"},
        "settings": {"theme": "dark"},
    }


@pytest.fixture
def tmp_env_file(tmp_path: Path) -> Path:
    return tmp_path / ".env"
