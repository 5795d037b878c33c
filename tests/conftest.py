# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- In-memory SQLite storage with the schema applied (fresh per test)
- An AnalyticsService pinned to a fixed clock
- Helpers for building epoch-ms timestamps relative to that clock
"""

from datetime import UTC, datetime

import pytest

from siteanalytics.infrastructure.storage import SQLiteStorage
from siteanalytics.service import AnalyticsService
from siteanalytics.utils.config import Settings, get_settings
from siteanalytics.utils.db import ensure_schema

# Wednesday 2024-03-13 12:00:00 UTC
FIXED_NOW = 1_710_331_200_000
MS_PER_DAY = 86_400_000


def at(date: str, hour: int = 12, minute: int = 0, second: int = 0) -> int:
    """Epoch ms for a UTC date (YYYY-MM-DD) and time of day."""
    parsed = datetime.strptime(date, "%Y-%m-%d").replace(
        hour=hour, minute=minute, second=second, tzinfo=UTC
    )
    return int(parsed.timestamp() * 1000)


@pytest.fixture()
def settings():
    """Default settings, independent of the process environment cache."""
    return Settings()


@pytest.fixture()
def storage():
    """A private in-memory SQLite store with tables and indexes created."""
    store = SQLiteStorage(":memory:")
    store.connect()
    ensure_schema(store)
    yield store
    store.close()


@pytest.fixture()
def service(storage, settings):
    """An AnalyticsService whose clock is frozen at FIXED_NOW."""
    return AnalyticsService(storage, settings, clock=lambda: FIXED_NOW)


@pytest.fixture()
def clear_settings_cache():
    """Reset the cached settings before and after a test that changes env."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
