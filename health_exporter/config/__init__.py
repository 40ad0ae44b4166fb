"""
Exporter configuration.

Static settings are loaded from YAML, runtime settings live in a
ConfigurationSource.
"""

from health_exporter.config.settings import ExporterSettings
from health_exporter.config.store import (
    DestinationUpdate,
    InMemorySettingsStore,
    JsonFileSettingsStore,
    apply_destination_settings,
    is_destination_configured,
)

__all__ = [
    "ExporterSettings",
    "DestinationUpdate",
    "InMemorySettingsStore",
    "JsonFileSettingsStore",
    "apply_destination_settings",
    "is_destination_configured",
]
