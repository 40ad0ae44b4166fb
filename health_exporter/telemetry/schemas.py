"""
Type-safe schemas for the health telemetry export pipeline.

These schemas define the canonical metric model, the cache records,
push destinations and the result/statistics models returned by the
pipeline components. No Dict[str, Any] payloads cross component seams.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

METRIC_NAME_PATTERN = r"^[a-z_][a-z0-9_]*$"

# Cached entries older than this are never served as a fallback
MAX_CACHE_AGE = timedelta(hours=1)


# ============================================================================
# ENUMS - No magic strings
# ============================================================================


class MetricKind(str, Enum):
    """Exposition type of a metric."""

    GAUGE = "gauge"
    COUNTER = "counter"


class DestinationKind(str, Enum):
    """Remote time-series endpoint flavours."""

    PROMETHEUS = "prometheus"
    INFLUXDB = "influxdb"


# ============================================================================
# METRIC MODEL
# ============================================================================


class Metric(BaseModel):
    """One observed value plus its metadata."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(pattern=METRIC_NAME_PATTERN, description="Wire identifier")
    value: float
    kind: MetricKind
    labels: Dict[str, str] = Field(default_factory=dict)
    unit: str = Field(default="", description="Display unit, not interpreted on the wire")

    def with_labels(self, **extra: str) -> "Metric":
        """Return a copy with ``extra`` merged over the existing labels."""
        return self.model_copy(update={"labels": {**self.labels, **extra}})


class CachedMetric(BaseModel):
    """A metric together with the moment it was observed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    metric: Metric
    observed_at: datetime

    def age(self, now: Optional[datetime] = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        return now - self.observed_at

    def age_minutes(self, now: Optional[datetime] = None) -> int:
        return int(self.age(now).total_seconds() // 60)

    def is_valid(self, now: Optional[datetime] = None, max_age: timedelta = MAX_CACHE_AGE) -> bool:
        return self.age(now) <= max_age


# ============================================================================
# SOURCE MODELS - What the biometric source hands back
# ============================================================================


class CollectionWindow(BaseModel):
    """Time range a cumulative query is evaluated over."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @classmethod
    def for_days(cls, days: int = 1, now: Optional[datetime] = None) -> "CollectionWindow":
        """
        Build the window for the last ``days`` days.

        A single day means "since local midnight", any other value means a
        rolling window of ``days`` * 24 hours ending now.
        """
        now = now or datetime.now().astimezone()
        if days == 1:
            start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        else:
            start = now - timedelta(days=days)
        return cls(start=start, end=now)


class WorkoutSample(BaseModel):
    """A single recorded workout."""

    model_config = ConfigDict(frozen=True)

    activity: str = Field(min_length=1)
    duration_minutes: float = Field(ge=0)
    energy_kcal: Optional[float] = Field(None, ge=0)


# ============================================================================
# DESTINATIONS - Computed per push from configuration + secrets
# ============================================================================


class BasicAuthCredential(BaseModel):
    """Username/password pair for the Pushgateway."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class PrometheusDestination(BaseModel):
    """Prometheus Pushgateway target."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[DestinationKind.PROMETHEUS] = DestinationKind.PROMETHEUS
    url: str = Field(min_length=1)
    basic_auth: Optional[BasicAuthCredential] = None


class InfluxDBDestination(BaseModel):
    """InfluxDB v2 write API target."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[DestinationKind.INFLUXDB] = DestinationKind.INFLUXDB
    url: str = Field(min_length=1)
    org: str = Field(min_length=1)
    bucket: str = Field(min_length=1)
    token: str = Field(min_length=1, repr=False)


PushDestination = Annotated[
    Union[PrometheusDestination, InfluxDBDestination], Field(discriminator="kind")
]


# ============================================================================
# RESULTS AND STATISTICS
# ============================================================================


class CollectionResult(BaseModel):
    """Outcome of one Collector.collect() call."""

    model_config = ConfigDict(frozen=True)

    metrics: List[Metric]
    from_cache: bool = False
    attempts: int = Field(ge=0)
    collected_at: datetime


class PushResult(BaseModel):
    """Outcome of a successful push."""

    model_config = ConfigDict(frozen=True)

    destination: DestinationKind
    attempts: int = Field(ge=1)
    status_code: int
    metric_count: int = Field(ge=0)
    duration_ms: int = Field(ge=0)


class CollectorStats(BaseModel):
    """Statistics for the biometric collector."""

    name: str
    collections: int = Field(ge=0)
    errors: int = Field(ge=0)
    error_rate: float = Field(ge=0, le=1)
    cache_fallbacks: int = Field(ge=0)
    last_collection: Optional[str] = None  # ISO timestamp
    last_error: Optional[str] = None


class SchedulerStats(BaseModel):
    """Statistics for the push scheduler."""

    running: bool
    interval_seconds: float = Field(gt=0)
    cycles: int = Field(ge=0)
    successes: int = Field(ge=0)
    failures: int = Field(ge=0)
    skipped: int = Field(ge=0)
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
