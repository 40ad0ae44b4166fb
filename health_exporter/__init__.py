"""health-exporter - Push biometric health metrics to time-series backends."""

__version__ = "0.4.0"

from .telemetry.service import HealthExportService, run_export_service

__all__ = ["HealthExportService", "run_export_service"]
