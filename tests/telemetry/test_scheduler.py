"""
Unit tests for the push scheduler.

Collector and dispatcher are mocks, the timer sleep is a controllable fake
so interval ticks are driven explicitly.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List
from unittest.mock import AsyncMock, Mock

import pytest

from health_exporter.config.store import InMemorySettingsStore
from health_exporter.telemetry.errors import (
    ConfigurationError,
    NoDataAvailable,
    SourceUnreachable,
    TransportError,
)
from health_exporter.telemetry.scheduler import PushScheduler
from health_exporter.telemetry.schemas import (
    CollectionResult,
    DestinationKind,
    Metric,
    MetricKind,
    PrometheusDestination,
    PushResult,
)


class TickSleep:
    """Sleep that blocks until tick() is called."""

    def __init__(self):
        self.delays: List[float] = []
        self._events: List[asyncio.Event] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        event = asyncio.Event()
        self._events.append(event)
        await event.wait()

    def tick(self) -> None:
        for event in self._events:
            event.set()
        self._events = []


class UnwritableLastPushStore(InMemorySettingsStore):
    """Settings store whose disk fills up once a push time is recorded."""

    def _persist(self) -> None:
        if "last_push_time" in self._values:
            raise OSError("disk full")


async def settle():
    """Let background tasks run until they block."""
    for _ in range(20):
        await asyncio.sleep(0)


def make_collector():
    collector = Mock()
    collector.collect = AsyncMock(
        return_value=CollectionResult(
            metrics=[Metric(name="x_total", value=1, kind=MetricKind.COUNTER)],
            attempts=1,
            collected_at=datetime(2024, 5, 1),
        )
    )
    return collector


def make_dispatcher():
    dispatcher = Mock()
    dispatcher.resolve_destination = Mock(
        return_value=PrometheusDestination(url="https://push.example.com")
    )
    dispatcher.push = AsyncMock(
        return_value=PushResult(
            destination=DestinationKind.PROMETHEUS,
            attempts=1,
            status_code=200,
            metric_count=1,
            duration_ms=5,
        )
    )
    return dispatcher


@pytest.fixture
def collector():
    return make_collector()


@pytest.fixture
def dispatcher():
    return make_dispatcher()


@pytest.fixture
def tick_sleep():
    return TickSleep()


@pytest.fixture
def scheduler(collector, dispatcher, settings_store, tick_sleep, clock):
    return PushScheduler(
        collector=collector,
        dispatcher=dispatcher,
        config_source=settings_store,
        sleep=tick_sleep,
        clock=clock,
    )


class TestLifecycle:
    """Test start/stop behaviour."""

    @pytest.mark.asyncio
    async def test_start_runs_cycle_immediately(self, scheduler, dispatcher, tick_sleep):
        await scheduler.start()
        await settle()

        assert dispatcher.push.await_count == 1
        assert tick_sleep.delays == [300.0]
        assert scheduler.is_running

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_one_push_per_interval(self, scheduler, dispatcher, tick_sleep):
        await scheduler.start()
        await settle()

        tick_sleep.tick()
        await settle()
        tick_sleep.tick()
        await settle()

        assert dispatcher.push.await_count == 3

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_idempotent_restart(self, scheduler, dispatcher, tick_sleep):
        """Test starting twice leaves exactly one active timer."""
        await scheduler.start()
        await scheduler.start()
        await settle()

        assert dispatcher.push.await_count == 1

        tick_sleep.tick()
        await settle()

        # One push for the interval, not two
        assert dispatcher.push.await_count == 2
        assert len(tick_sleep.delays) == 2

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_restart_after_running(self, scheduler, dispatcher, tick_sleep):
        await scheduler.start()
        await settle()
        await scheduler.start()
        await settle()

        assert dispatcher.push.await_count == 2

        tick_sleep.tick()
        await settle()

        assert dispatcher.push.await_count == 3

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop(self, scheduler, dispatcher, tick_sleep):
        await scheduler.start()
        await settle()

        await scheduler.stop()
        await scheduler.stop()
        tick_sleep.tick()
        await settle()

        assert not scheduler.is_running
        assert dispatcher.push.await_count == 1

    @pytest.mark.asyncio
    async def test_interval_measured_from_cycle_start(
        self, scheduler, collector, tick_sleep, clock
    ):
        result = collector.collect.return_value

        async def slow_collect(**kwargs):
            clock.now += timedelta(seconds=40)
            return result

        collector.collect.side_effect = slow_collect

        await scheduler.start()
        await settle()

        assert tick_sleep.delays == [260.0]

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_overrunning_cycle_does_not_wait(self, scheduler, collector, tick_sleep, clock):
        result = collector.collect.return_value

        async def very_slow_collect(**kwargs):
            clock.now += timedelta(minutes=7)
            return result

        collector.collect.side_effect = very_slow_collect

        await scheduler.start()
        await settle()

        assert tick_sleep.delays == [0.0]

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_interval_from_configuration(self, scheduler, settings_store, tick_sleep):
        settings_store.set("push_interval", 15)

        await scheduler.start()
        await settle()

        assert tick_sleep.delays == [900.0]
        assert scheduler.get_stats().interval_seconds == 900.0

        await scheduler.stop()

    def test_non_positive_interval_uses_default(
        self, collector, dispatcher, settings_store, tick_sleep
    ):
        settings_store.set("push_interval", 0)
        scheduler = PushScheduler(
            collector, dispatcher, settings_store, default_interval_minutes=5, sleep=tick_sleep
        )

        assert scheduler.interval_seconds == 300.0

    def test_fixed_interval(self, collector, dispatcher, settings_store):
        scheduler = PushScheduler(collector, dispatcher, settings_store, interval_seconds=30)
        assert scheduler.interval_seconds == 30.0


class TestCycle:
    """Test a single cycle."""

    @pytest.mark.asyncio
    async def test_success_records_last_push_time(
        self, scheduler, dispatcher, collector, settings_store, clock
    ):
        result = await scheduler.run_cycle()

        assert result.status_code == 200
        collector.collect.assert_awaited_once_with(max_attempts=3, retry_delay=2.0)
        dispatcher.push.assert_awaited_once()
        assert settings_store.get_string("last_push_time") == clock.now.isoformat()
        stats = scheduler.get_stats()
        assert stats.successes == 1
        assert stats.last_success_at == clock.now

    @pytest.mark.asyncio
    async def test_last_push_time_write_failure_keeps_timer(
        self, collector, dispatcher, tick_sleep, clock
    ):
        """Test a settings store that cannot persist does not stop the timer."""
        store = UnwritableLastPushStore()
        scheduler = PushScheduler(collector, dispatcher, store, sleep=tick_sleep, clock=clock)

        await scheduler.start()
        await settle()
        tick_sleep.tick()
        await settle()

        assert scheduler.is_running
        assert dispatcher.push.await_count == 2
        assert len(tick_sleep.delays) == 2
        assert scheduler.get_stats().successes == 2

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_last_push_time_write_failure_returns_result(
        self, collector, dispatcher, clock
    ):
        scheduler = PushScheduler(collector, dispatcher, UnwritableLastPushStore(), clock=clock)

        result = await scheduler.run_cycle()

        assert result.status_code == 200
        assert scheduler.get_stats().failures == 0

    @pytest.mark.asyncio
    async def test_configuration_error_skips_collection(
        self, scheduler, dispatcher, collector, settings_store
    ):
        dispatcher.resolve_destination.side_effect = ConfigurationError("no url")

        assert await scheduler.run_cycle() is None

        collector.collect.assert_not_awaited()
        dispatcher.push.assert_not_awaited()
        assert settings_store.get_string("last_push_time") is None
        assert scheduler.get_stats().failures == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            NoDataAvailable("empty"),
            SourceUnreachable("gone"),
            RuntimeError("boom"),
        ],
    )
    async def test_collection_errors_are_contained(self, scheduler, collector, dispatcher, error):
        collector.collect.side_effect = error

        assert await scheduler.run_cycle() is None

        dispatcher.push.assert_not_awaited()
        stats = scheduler.get_stats()
        assert stats.failures == 1
        assert stats.last_error == str(error)

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_timer(self, scheduler, dispatcher, tick_sleep):
        dispatcher.push.side_effect = TransportError("rejected", status_code=500)

        await scheduler.start()
        await settle()
        tick_sleep.tick()
        await settle()

        assert scheduler.is_running
        assert dispatcher.push.await_count == 2
        assert scheduler.get_stats().failures == 2

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_cycle_reason_on_records(self, scheduler, dispatcher, caplog):
        caplog.set_level(logging.INFO, logger="health_exporter.telemetry")
        dispatcher.push.side_effect = TransportError("rejected", status_code=500)

        await scheduler.run_cycle(reason="source_change")

        failure = next(r for r in caplog.records if r.levelno == logging.ERROR)
        assert failure.cycle == "source_change"

    @pytest.mark.asyncio
    async def test_raise_errors(self, scheduler, dispatcher):
        dispatcher.push.side_effect = TransportError("rejected", status_code=500)

        with pytest.raises(TransportError):
            await scheduler.run_cycle(raise_errors=True)

        assert scheduler.get_stats().failures == 1

    @pytest.mark.asyncio
    async def test_failure_callback(self, collector, dispatcher, settings_store):
        callback = AsyncMock()
        error = NoDataAvailable("empty")
        collector.collect.side_effect = error
        scheduler = PushScheduler(
            collector, dispatcher, settings_store, on_cycle_failure=callback
        )

        await scheduler.run_cycle()

        callback.assert_awaited_once_with(error)

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self, collector, dispatcher, settings_store):
        collector.collect.side_effect = NoDataAvailable("empty")
        scheduler = PushScheduler(
            collector,
            dispatcher,
            settings_store,
            on_cycle_failure=AsyncMock(side_effect=RuntimeError("notify failed")),
        )

        assert await scheduler.run_cycle() is None


class TestTriggers:
    """Test out-of-band cycles."""

    @pytest.mark.asyncio
    async def test_trigger_does_not_start_timer(self, scheduler, dispatcher):
        task = scheduler.trigger("source_change")
        await task

        assert dispatcher.push.await_count == 1
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_overlapping_cycle_skipped(self, scheduler, collector, dispatcher):
        """Test a cycle requested while another is in flight is skipped."""
        release = asyncio.Event()
        original = collector.collect.return_value

        async def slow_collect(**kwargs):
            await release.wait()
            return original

        collector.collect.side_effect = slow_collect

        task = scheduler.trigger("first")
        await settle()
        assert await scheduler.run_cycle(reason="second") is None

        release.set()
        await task

        assert dispatcher.push.await_count == 1
        stats = scheduler.get_stats()
        assert stats.skipped == 1
        assert stats.cycles == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_triggered_cycle(self, scheduler, collector, dispatcher):
        async def hang(**kwargs):
            await asyncio.Event().wait()

        collector.collect.side_effect = hang

        task = scheduler.trigger()
        await settle()
        await scheduler.stop()

        assert task.cancelled()
        dispatcher.push.assert_not_awaited()
