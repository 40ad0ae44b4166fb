"""
Pytest configuration and fixtures for health exporter tests.
"""

import os
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

import pytest
from cryptography.fernet import Fernet

from health_exporter.config.store import InMemorySettingsStore
from health_exporter.secret_store import InMemorySecretStore
from health_exporter.telemetry.schemas import CollectionWindow, WorkoutSample
from health_exporter.telemetry.storage import MemoryBlobStore, MetricCache


def pytest_configure(config):
    """
    Set environment variables before any test modules are imported.
    This runs very early in the pytest lifecycle.
    """
    os.environ["HEALTH_EXPORTER_SECRET"] = "test-secret-for-testing"
    os.environ["HEALTH_EXPORTER_ENCRYPTION_SALT"] = "test-salt-sixteen-chars-long"


class FakeBiometricSource:
    """In-memory BiometricSource with per-category failure injection."""

    def __init__(self):
        self.available = True
        self.cumulative: Dict[str, float] = {}
        self.latest: Dict[str, Tuple[float, str]] = {}
        self.events: Dict[str, int] = {}
        self.daily: Dict[str, List[Tuple[date, float]]] = {}
        self.workouts: List[WorkoutSample] = []
        self.failing: Set[str] = set()
        self.calls: List[str] = []

    def _check(self, category: str) -> None:
        self.calls.append(category)
        if category in self.failing:
            raise RuntimeError(f"{category} query failed")

    async def is_available(self) -> bool:
        return self.available

    async def fetch_cumulative(self, category: str, window: CollectionWindow) -> Optional[float]:
        self._check(category)
        return self.cumulative.get(category)

    async def fetch_latest(self, category: str) -> Optional[Tuple[float, str]]:
        self._check(category)
        return self.latest.get(category)

    async def fetch_category_events(
        self, category: str, predicate: str, window: CollectionWindow
    ) -> int:
        self._check(category)
        if category not in self.events:
            # Nothing recorded for this category
            raise LookupError(category)
        return self.events[category]

    async def fetch_daily_series(self, category: str, days: int) -> List[Tuple[date, float]]:
        self._check(category)
        return self.daily.get(category, [])

    async def fetch_workouts(self, window: CollectionWindow) -> List[WorkoutSample]:
        self._check("workouts")
        return list(self.workouts)


class FixedClock:
    """Settable clock returning timezone-aware UTC datetimes."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class RecordingSleep:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def source():
    """Biometric source with nothing recorded."""
    return FakeBiometricSource()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def cache(blob_store, clock):
    return MetricCache(blob_store, clock=clock)


@pytest.fixture
def settings_store():
    return InMemorySettingsStore()


@pytest.fixture
def secret_store():
    return InMemorySecretStore()


@pytest.fixture
def prometheus_settings(settings_store):
    """Settings store pointing at a Pushgateway."""
    settings_store.set("use_influxdb", False)
    settings_store.set("pushgateway_url", "https://push.example.com")
    return settings_store


@pytest.fixture
def influx_settings(settings_store, secret_store):
    """Settings store pointing at InfluxDB, token stored."""
    settings_store.set("use_influxdb", True)
    settings_store.set("influxdb_url", "https://influx.example.com/")
    settings_store.set("influxdb_org", "my org")
    settings_store.set("influxdb_bucket", "health")
    secret_store.put("influxdb-token", "t0ken")
    return settings_store


@pytest.fixture
def fernet_key():
    return Fernet.generate_key()
