"""
Biometric metrics collector implementation.

Queries every category of the catalog from a BiometricSource, retries when
an attempt yields nothing and falls back to the metric cache when all
attempts fail.
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from health_exporter.config.store import get_last_push_time
from health_exporter.telemetry import catalog
from health_exporter.telemetry.base import BaseCollector
from health_exporter.telemetry.errors import NoDataAvailable, SourceUnreachable
from health_exporter.telemetry.protocols import BiometricSource, ConfigurationSource
from health_exporter.telemetry.schemas import (
    CollectionResult,
    CollectionWindow,
    Metric,
    MetricKind,
    WorkoutSample,
)
from health_exporter.telemetry.storage.cache import MetricCache

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BiometricCollector(BaseCollector[CollectionResult]):
    """Collects health metrics from a biometric source."""

    def __init__(
        self,
        source: BiometricSource,
        cache: MetricCache,
        device_name: str,
        config_source: Optional[ConfigurationSource] = None,
        window_days: int = 1,
        category_timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize biometric collector.

        Args:
            source: Health store to query
            cache: Fallback snapshot, rewritten after every successful attempt
            device_name: Value of the instance label
            config_source: Settings holding the last push time, optional
            window_days: Days covered by cumulative queries
            category_timeout: Timeout for each category fetch
            sleep: Awaitable sleep used between attempts
            clock: Returns the current UTC time
        """
        super().__init__(name="BiometricCollector", timeout_seconds=category_timeout)
        self.source = source
        self.cache = cache
        self.device_name = device_name
        self.config_source = config_source
        self.window_days = window_days
        self._sleep = sleep
        self._clock = clock

    async def is_available(self) -> bool:
        """Check if the biometric source can be queried."""
        try:
            return bool(await self.source.is_available())
        except Exception as e:
            logger.warning(f"Biometric source availability check failed: {e}")
            return False

    async def collect(self, max_attempts: int = 3, retry_delay: float = 2.0) -> CollectionResult:
        """
        Collect a batch of metrics.

        Args:
            max_attempts: Attempts made before falling back to the cache
            retry_delay: Constant delay between attempts in seconds

        Returns:
            Fresh metrics, or cached metrics labelled with their age

        Raises:
            SourceUnreachable: Source unavailable and no valid cache entry
            NoDataAvailable: Every attempt was empty and no valid cache entry
        """
        if not await self.is_available():
            logger.warning("Biometric source unavailable, skipping fresh collection")
            result = await self._from_cache(attempts=0)
            if result is None:
                self._record_error("Biometric source unreachable")
                raise SourceUnreachable("Biometric source is unreachable and no valid cache exists")
            return result

        for attempt in range(1, max_attempts + 1):
            metrics = await self.collect_once()
            if metrics:
                metrics.extend(self._last_sync_metrics())
                await self._write_through(metrics)
                self._record_collection()
                logger.info(f"Collected {len(metrics)} metrics on attempt {attempt}")
                return CollectionResult(
                    metrics=metrics, from_cache=False, attempts=attempt, collected_at=self._clock()
                )

            if attempt < max_attempts:
                logger.warning(
                    f"No metrics collected on attempt {attempt}, retrying in {retry_delay}s"
                )
                await self._sleep(retry_delay)

        result = await self._from_cache(attempts=max_attempts)
        if result is None:
            self._record_error("No metrics available (fresh or cached)")
            raise NoDataAvailable(f"No metrics collected after {max_attempts} attempts")
        return result

    async def collect_once(self) -> List[Metric]:
        """
        Run one collection attempt over the whole catalog.

        Categories are fetched concurrently. Failed categories are logged and
        left out.

        Returns:
            Metrics in catalog order
        """
        window = CollectionWindow.for_days(self.window_days)

        cumulative = [
            self.guarded_fetch(c.category, self.source.fetch_cumulative(c.category, window))
            for c in catalog.CUMULATIVE_CATEGORIES
        ]
        latest = [
            self.guarded_fetch(c.category, self.source.fetch_latest(c.category))
            for c in catalog.LATEST_SAMPLE_CATEGORIES
        ]
        sleep_minutes = self.guarded_fetch(
            catalog.SLEEP_CATEGORY, self.source.fetch_cumulative(catalog.SLEEP_CATEGORY, window)
        )
        events = [
            self.guarded_fetch(
                e.category, self.source.fetch_category_events(e.category, e.predicate, window)
            )
            for e in catalog.EVENT_CATEGORIES
        ]
        summary = [
            self.guarded_fetch(f.category, self.source.fetch_daily_series(f.category, 1))
            for f in catalog.ACTIVITY_SUMMARY_FIELDS
        ]
        workouts = self.guarded_fetch("workouts", self.source.fetch_workouts(window))

        results = await asyncio.gather(
            *cumulative, *latest, sleep_minutes, *events, *summary, workouts
        )

        # Unpack in the order the coroutines were passed
        pos = 0
        cumulative_values = results[pos : pos + len(cumulative)]
        pos += len(cumulative)
        latest_values = results[pos : pos + len(latest)]
        pos += len(latest)
        sleep_value = results[pos]
        pos += 1
        event_values = results[pos : pos + len(events)]
        pos += len(events)
        summary_values = results[pos : pos + len(summary)]
        pos += len(summary)
        workout_values = results[pos]

        metrics: List[Metric] = []

        for entry, value in zip(catalog.CUMULATIVE_CATEGORIES, cumulative_values):
            if value is not None:
                self._convert(metrics, entry.category, self._quantity_metric, entry, value)

        for entry, sample in zip(catalog.LATEST_SAMPLE_CATEGORIES, latest_values):
            if sample is not None:
                self._convert(metrics, entry.category, self._latest_metric, entry, sample)

        if sleep_value:
            self._convert(
                metrics,
                catalog.SLEEP_CATEGORY,
                self._counter_metric,
                catalog.SLEEP_METRIC,
                sleep_value,
                "min",
            )

        for entry, count in zip(catalog.EVENT_CATEGORIES, event_values):
            if count is not None:
                self._convert(
                    metrics, entry.category, self._counter_metric, entry.metric_name, count, "count"
                )

        for entry, series in zip(catalog.ACTIVITY_SUMMARY_FIELDS, summary_values):
            if series:
                self._convert(metrics, entry.category, self._summary_metric, entry, series)

        if workout_values:
            self._convert(metrics, "workouts", self._workout_metrics, workout_values)

        return metrics

    def _convert(
        self,
        metrics: List[Metric],
        category: str,
        build: Callable[..., Union[Metric, List[Metric], None]],
        *args: Any,
    ) -> None:
        """Append what ``build`` makes of one category result, skipping it when malformed."""
        try:
            built = build(*args)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"{self.name}: discarding malformed {category} result: {e}")
            return
        if isinstance(built, Metric):
            metrics.append(built)
        elif built:
            metrics.extend(built)

    def _quantity_metric(self, entry: catalog.QuantityCategory, value: float) -> Metric:
        return Metric(
            name=entry.metric_name,
            value=value,
            kind=entry.kind,
            labels={"instance": self.device_name},
            unit=entry.unit,
        )

    def _latest_metric(self, entry: catalog.QuantityCategory, sample: Tuple[float, str]) -> Metric:
        value, source_label = sample
        return Metric(
            name=entry.metric_name,
            value=value,
            kind=entry.kind,
            labels={"instance": self.device_name, "source": source_label},
            unit=entry.unit,
        )

    def _counter_metric(self, name: str, value: float, unit: str) -> Metric:
        return Metric(
            name=name,
            value=value,
            kind=MetricKind.COUNTER,
            labels={"instance": self.device_name},
            unit=unit,
        )

    def _summary_metric(
        self, entry: catalog.SummaryField, series: List[Tuple[date, float]]
    ) -> Optional[Metric]:
        _, value = series[-1]
        if entry.only_positive and value <= 0:
            return None
        return Metric(
            name=entry.metric_name,
            value=value,
            kind=MetricKind.GAUGE,
            labels={"instance": self.device_name},
            unit=entry.unit,
        )

    def _workout_metrics(self, workouts: List[WorkoutSample]) -> List[Metric]:
        minutes_by_activity: Dict[str, float] = {}
        calories_by_activity: Dict[str, float] = {}
        for workout in workouts:
            activity = catalog.workout_activity_label(workout.activity)
            minutes_by_activity[activity] = (
                minutes_by_activity.get(activity, 0.0) + workout.duration_minutes
            )
            if workout.energy_kcal is not None:
                calories_by_activity[activity] = (
                    calories_by_activity.get(activity, 0.0) + workout.energy_kcal
                )

        metrics = []
        aggregates: Tuple[Tuple[str, Dict[str, float], str], ...] = (
            (catalog.WORKOUT_MINUTES_METRIC, minutes_by_activity, "min"),
            (catalog.WORKOUT_CALORIES_METRIC, calories_by_activity, "kcal"),
        )
        for name, totals, unit in aggregates:
            for activity, total in totals.items():
                metrics.append(
                    Metric(
                        name=name,
                        value=total,
                        kind=MetricKind.COUNTER,
                        labels={"instance": self.device_name, "activity": activity},
                        unit=unit,
                    )
                )
        return metrics

    def _last_sync_metrics(self) -> List[Metric]:
        if self.config_source is None:
            return []
        last_push = get_last_push_time(self.config_source)
        if last_push is None:
            return []
        if last_push.tzinfo is None:
            last_push = last_push.replace(tzinfo=timezone.utc)

        seconds = (self._clock() - last_push).total_seconds()
        return [
            Metric(
                name=catalog.LAST_SYNC_METRIC,
                value=seconds,
                kind=MetricKind.GAUGE,
                labels={"instance": self.device_name},
                unit="s",
            )
        ]

    async def _write_through(self, metrics: List[Metric]) -> None:
        try:
            await self.cache.save(metrics, observed_at=self._clock())
        except Exception as e:
            logger.error(f"Failed to update metric cache: {e}")

    async def _from_cache(self, attempts: int) -> Optional[CollectionResult]:
        now = self._clock()
        entries = await self.cache.load_valid()
        if not entries:
            return None

        metrics = [
            entry.metric.with_labels(
                data_age_minutes=str(entry.age_minutes(now)), cached="true"
            )
            for entry in entries
        ]
        self._record_collection(from_cache=True)
        logger.info(f"Using {len(metrics)} cached metrics as fallback")
        return CollectionResult(
            metrics=metrics, from_cache=True, attempts=attempts, collected_at=now
        )
