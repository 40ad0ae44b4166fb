"""
Static exporter configuration.

Everything the host decides once at startup lives here: device identity,
retry policy, storage locations and logging. Runtime settings that the user
edits (destination URLs, push interval) go through a ConfigurationSource
instead, see health_exporter.config.store.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DeviceConfig(BaseModel):
    """Identity of the device the metrics come from."""

    name: str = Field(default="health-exporter", min_length=1)
    job: str = Field(default="my_health_data", min_length=1)


class CollectionConfig(BaseModel):
    """Collector retry behaviour."""

    max_attempts: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=2.0, ge=0)
    category_timeout_seconds: float = Field(default=10.0, gt=0)
    window_days: int = Field(default=1, ge=1)


class PushConfig(BaseModel):
    """Dispatcher retry behaviour."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=2.0, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    default_interval_minutes: int = Field(default=5, ge=1)


class StorageConfig(BaseModel):
    """Where durable state is kept."""

    state_dir: str = "/var/lib/health-exporter"
    settings_file: Optional[str] = None
    secrets_file: Optional[str] = None
    cache_max_age_seconds: int = Field(default=3600, gt=0)

    @property
    def resolved_settings_file(self) -> Path:
        if self.settings_file:
            return Path(self.settings_file)
        return Path(self.state_dir) / "settings.json"

    @property
    def resolved_secrets_file(self) -> Path:
        if self.secrets_file:
            return Path(self.secrets_file)
        return Path(self.state_dir) / "secrets.json"


class LoggingConfig(BaseModel):
    """Logging setup passed to setup_logging()."""

    log_dir: str = "/var/log/health-exporter"
    console_level: str = "INFO"
    file_level: str = "DEBUG"
    use_json: bool = False


class ExporterSettings(BaseModel):
    """Top-level exporter configuration."""

    device: DeviceConfig = Field(default_factory=DeviceConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    push: PushConfig = Field(default_factory=PushConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ExporterSettings":
        """
        Load configuration from a YAML file.

        A missing file yields the defaults so a fresh install works
        without any configuration.

        Args:
            path: Path to the YAML configuration file

        Returns:
            Parsed configuration
        """
        config_path = Path(path)
        if not config_path.exists():
            logger.info(f"No configuration file at {config_path}, using defaults")
            return cls()

        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")

        logger.info(f"Loaded configuration from {config_path}")
        return cls.model_validate(data)

    def save(self, path: Union[str, Path]) -> None:
        """Write configuration to a YAML file."""
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)
