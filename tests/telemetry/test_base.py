"""
Unit tests for the collector base class.
"""

import asyncio

import pytest

from health_exporter.telemetry.base import BaseCollector


class TestCollector(BaseCollector[int]):
    """Concrete test implementation of BaseCollector."""

    __test__ = False

    def __init__(self):
        super().__init__("TestCollector", timeout_seconds=0.05)

    async def collect(self) -> int:
        self._record_collection()
        return 1

    async def is_available(self) -> bool:
        return True


class TestBaseCollector:
    """Test BaseCollector functionality."""

    @pytest.mark.asyncio
    async def test_guarded_fetch_returns_value(self):
        collector = TestCollector()

        async def fetch():
            return 42

        assert await collector.guarded_fetch("answer", fetch()) == 42

    @pytest.mark.asyncio
    async def test_guarded_fetch_swallows_errors(self):
        collector = TestCollector()

        async def fetch():
            raise RuntimeError("store error")

        assert await collector.guarded_fetch("broken", fetch()) is None

    @pytest.mark.asyncio
    async def test_guarded_fetch_timeout(self):
        collector = TestCollector()

        assert await collector.guarded_fetch("slow", asyncio.sleep(10)) is None

    @pytest.mark.asyncio
    async def test_stats(self):
        collector = TestCollector()

        await collector.collect()
        collector._record_error("boom")
        collector._record_collection(from_cache=True)
        stats = collector.get_stats()

        assert stats.collections == 3
        assert stats.errors == 1
        assert stats.error_rate == pytest.approx(1 / 3)
        assert stats.cache_fallbacks == 1
        assert stats.last_error == "boom"

    def test_reset_stats(self):
        collector = TestCollector()
        collector._record_error("boom")

        collector.reset_stats()
        stats = collector.get_stats()

        assert stats.collections == 0
        assert stats.errors == 0
        assert stats.last_error is None
        assert stats.error_rate == 0
