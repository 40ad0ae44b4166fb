"""
Collectors for the export pipeline.
"""

from health_exporter.telemetry.collectors.biometric_collector import BiometricCollector

__all__ = ["BiometricCollector"]
