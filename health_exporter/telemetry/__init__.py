"""
Health telemetry export pipeline.

Collects biometric metrics, serializes them for Prometheus or InfluxDB and
pushes them to the configured endpoint.
"""

from health_exporter.telemetry.errors import (
    ConfigurationError,
    ExportError,
    NoDataAvailable,
    SourceUnavailable,
    SourceUnreachable,
    TransportError,
)
from health_exporter.telemetry.formatters import (
    ExpositionFormatter,
    LineProtocolFormatter,
    format_exposition,
    format_line_protocol,
)
from health_exporter.telemetry.protocols import (
    BiometricSource,
    ConfigurationSource,
    Notifier,
    SecretStore,
)
from health_exporter.telemetry.schemas import (
    CachedMetric,
    CollectionResult,
    CollectionWindow,
    DestinationKind,
    InfluxDBDestination,
    Metric,
    MetricKind,
    PrometheusDestination,
    PushResult,
    WorkoutSample,
)

__all__ = [
    # Errors
    "ConfigurationError",
    "ExportError",
    "NoDataAvailable",
    "SourceUnavailable",
    "SourceUnreachable",
    "TransportError",
    # Formatters
    "ExpositionFormatter",
    "LineProtocolFormatter",
    "format_exposition",
    "format_line_protocol",
    # Protocols
    "BiometricSource",
    "ConfigurationSource",
    "Notifier",
    "SecretStore",
    # Schemas
    "CachedMetric",
    "CollectionResult",
    "CollectionWindow",
    "DestinationKind",
    "InfluxDBDestination",
    "Metric",
    "MetricKind",
    "PrometheusDestination",
    "PushResult",
    "WorkoutSample",
]
