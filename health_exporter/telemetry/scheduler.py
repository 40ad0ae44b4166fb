"""
Push scheduler.

Drives the collect, format and push chain on a timer and on explicit
triggers, with at most one cycle in flight at any time.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Set

from health_exporter.config.store import LAST_PUSH_TIME, PUSH_INTERVAL
from health_exporter.logging_config import TELEMETRY_LOGGER, LogContext
from health_exporter.telemetry.collectors.biometric_collector import BiometricCollector
from health_exporter.telemetry.dispatcher import PushDispatcher
from health_exporter.telemetry.errors import (
    ConfigurationError,
    NoDataAvailable,
    SourceUnreachable,
    TransportError,
)
from health_exporter.telemetry.protocols import ConfigurationSource
from health_exporter.telemetry.schemas import PushResult, SchedulerStats

logger = logging.getLogger(__name__)

FailureCallback = Callable[[Exception], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PushScheduler:
    """
    Runs push cycles periodically.

    A cycle resolves the destination, collects a batch, pushes it and
    records the time of the successful push. Cycle errors are logged and
    counted, they never stop the timer.
    """

    def __init__(
        self,
        collector: BiometricCollector,
        dispatcher: PushDispatcher,
        config_source: ConfigurationSource,
        interval_seconds: Optional[float] = None,
        default_interval_minutes: int = 5,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        on_cycle_failure: Optional[FailureCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize scheduler.

        Args:
            collector: Produces the batch of each cycle
            dispatcher: Resolves the destination and pushes the batch
            config_source: Provides the push interval, receives the last push time
            interval_seconds: Fixed interval, read from configuration when omitted
            default_interval_minutes: Interval when configuration has none
            max_attempts: Collection attempts per cycle
            retry_delay: Delay between collection attempts
            on_cycle_failure: Awaited with the error of every failed cycle
            sleep: Awaitable sleep used between cycles
            clock: Returns the current UTC time
        """
        self.collector = collector
        self.dispatcher = dispatcher
        self.config_source = config_source
        self.fixed_interval_seconds = interval_seconds
        self.default_interval_minutes = default_interval_minutes
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.on_cycle_failure = on_cycle_failure
        self._sleep = sleep
        self._clock = clock

        self.interval_seconds = self._resolve_interval()
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._triggered: Set[asyncio.Task] = set()
        self._cycle_lock = asyncio.Lock()

        # Statistics
        self._cycles = 0
        self._successes = 0
        self._failures = 0
        self._skipped = 0
        self._last_success_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    def _resolve_interval(self) -> float:
        if self.fixed_interval_seconds and self.fixed_interval_seconds > 0:
            return float(self.fixed_interval_seconds)
        minutes = self.config_source.get_int(PUSH_INTERVAL)
        if minutes <= 0:
            minutes = self.default_interval_minutes
        return float(minutes * 60)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start(self) -> None:
        """Start the timer, restarting it when already running."""
        if self._running:
            logger.info("Push scheduler already running, restarting")
            await self.stop()

        self.interval_seconds = self._resolve_interval()
        self._running = True
        self._task = asyncio.create_task(self._push_loop())
        logger.info(f"Started push scheduler every {self.interval_seconds:g}s")

    async def stop(self) -> None:
        """Stop the timer and cancel in-flight triggered cycles."""
        if not self._running and self._task is None and not self._triggered:
            return

        self._running = False
        tasks = list(self._triggered)
        if self._task:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._task = None
        self._triggered.clear()
        logger.info("Stopped push scheduler")

    async def _push_loop(self) -> None:
        """Main timer loop, ticking every interval from the start of each cycle."""
        while self._running:
            started = self._clock()
            try:
                await self.run_cycle(reason="timer")
            except Exception as e:
                logger.error(f"Push loop error: {e}")

            elapsed = (self._clock() - started).total_seconds()
            await self._sleep(max(0.0, self.interval_seconds - elapsed))

    def trigger(self, reason: str = "manual") -> asyncio.Task:
        """
        Run one out-of-band cycle in the background.

        The timer is left untouched.

        Args:
            reason: Logged with the cycle

        Returns:
            Task running the cycle
        """
        task = asyncio.create_task(self.run_cycle(reason=reason))
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)
        return task

    # ========================================================================
    # CYCLE
    # ========================================================================

    async def run_cycle(
        self, reason: str = "manual", raise_errors: bool = False
    ) -> Optional[PushResult]:
        """
        Collect and push once.

        Args:
            reason: Logged with the cycle
            raise_errors: Re-raise the cycle error after counting it

        Returns:
            Push result, or None when the cycle failed or was skipped
        """
        if self._cycle_lock.locked():
            self._skipped += 1
            logger.info(f"Push cycle ({reason}) skipped, another cycle is in flight")
            return None

        async with self._cycle_lock:
            with LogContext(logging.getLogger(TELEMETRY_LOGGER), cycle=reason):
                return await self._run_locked(reason, raise_errors)

    async def _run_locked(self, reason: str, raise_errors: bool) -> Optional[PushResult]:
        self._cycles += 1
        logger.debug(f"Starting push cycle ({reason})")
        try:
            destination = self.dispatcher.resolve_destination()
            collection = await self.collector.collect(
                max_attempts=self.max_attempts, retry_delay=self.retry_delay
            )
            result = await self.dispatcher.push(collection.metrics, destination)
        except ConfigurationError as e:
            logger.warning(f"Push cycle ({reason}) skipped, destination not configured: {e}")
            await self._record_failure(e)
            if raise_errors:
                raise
            return None
        except NoDataAvailable as e:
            logger.warning(f"Push cycle ({reason}) had nothing to push: {e}")
            await self._record_failure(e)
            if raise_errors:
                raise
            return None
        except (SourceUnreachable, TransportError) as e:
            logger.error(f"Push cycle ({reason}) failed: {e}")
            await self._record_failure(e)
            if raise_errors:
                raise
            return None
        except Exception as e:
            logger.error(f"Unexpected error in push cycle ({reason}): {e}")
            await self._record_failure(e)
            if raise_errors:
                raise
            return None

        now = self._clock()
        self._successes += 1
        self._last_success_at = now
        self._last_error = None
        try:
            self.config_source.set(LAST_PUSH_TIME, now)
        except Exception as e:
            logger.error(f"Failed to record last push time: {e}")
        logger.info(
            f"Push cycle ({reason}) succeeded: {result.metric_count} metrics "
            f"to {result.destination.value}"
            f"{' from cache' if collection.from_cache else ''}"
        )
        return result

    async def _record_failure(self, error: Exception) -> None:
        self._failures += 1
        self._last_error = str(error)
        if self.on_cycle_failure is None:
            return
        try:
            await self.on_cycle_failure(error)
        except Exception as e:
            logger.error(f"Cycle failure callback raised: {e}")

    # ========================================================================
    # STATUS
    # ========================================================================

    @property
    def is_running(self) -> bool:
        """Check if the timer is running."""
        return self._running

    def get_stats(self) -> SchedulerStats:
        return SchedulerStats(
            running=self._running,
            interval_seconds=self.interval_seconds,
            cycles=self._cycles,
            successes=self._successes,
            failures=self._failures,
            skipped=self._skipped,
            last_success_at=self._last_success_at,
            last_error=self._last_error,
        )
