"""
Runtime settings stores and destination maintenance.

Provides ConfigurationSource implementations backed by memory or a JSON
file, plus the operation that switches the active push destination and
clears the settings of the inactive one.
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from health_exporter.telemetry.protocols import (
    INFLUXDB_TOKEN_KEY,
    PUSHGATEWAY_BASIC_AUTH_KEY,
    ConfigurationSource,
    SecretStore,
)
from health_exporter.telemetry.schemas import DestinationKind

logger = logging.getLogger(__name__)

# Setting keys
USE_INFLUXDB = "use_influxdb"
PUSHGATEWAY_URL = "pushgateway_url"
INFLUXDB_URL = "influxdb_url"
INFLUXDB_ORG = "influxdb_org"
INFLUXDB_BUCKET = "influxdb_bucket"
PUSH_INTERVAL = "push_interval"
LAST_PUSH_TIME = "last_push_time"

INFLUXDB_SETTING_KEYS = (INFLUXDB_URL, INFLUXDB_ORG, INFLUXDB_BUCKET)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _coerce_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class InMemorySettingsStore:
    """ConfigurationSource kept in a dictionary."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get_string(self, key: str) -> Optional[str]:
        value = self._values.get(key)
        return None if value is None else str(value)

    def get_bool(self, key: str) -> bool:
        return _coerce_bool(self._values.get(key, False))

    def get_int(self, key: str) -> int:
        return _coerce_int(self._values.get(key, 0))

    def set(self, key: str, value: object) -> None:
        if isinstance(value, datetime):
            value = value.isoformat()
        with self._lock:
            self._values[key] = value
            self._persist()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._values.pop(key, None) is not None:
                self._persist()

    def snapshot(self) -> Dict[str, Any]:
        """Copy of all stored values."""
        return dict(self._values)

    def _persist(self) -> None:
        """Hook for durable subclasses, called with the lock held."""


class JsonFileSettingsStore(InMemorySettingsStore):
    """ConfigurationSource persisted as a JSON document."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.info(f"No settings file at {self.path}, starting fresh")
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load settings from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Settings file {self.path} is not a JSON object, ignoring it")
            return {}
        return data

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write atomically using temp file
        temp_file = self.path.with_suffix(".tmp")
        temp_file.write_text(json.dumps(self._values, indent=2, sort_keys=True))
        temp_file.replace(self.path)


# ============================================================================
# DESTINATION MAINTENANCE
# ============================================================================


class DestinationUpdate(BaseModel):
    """Settings entered by the user for the destination they selected."""

    kind: DestinationKind
    push_interval_minutes: int = Field(default=5, ge=0)

    # Prometheus Pushgateway
    pushgateway_url: str = ""
    username: str = ""
    password: str = ""

    # InfluxDB
    influxdb_url: str = ""
    influxdb_org: str = ""
    influxdb_bucket: str = ""
    influxdb_token: str = ""


def apply_destination_settings(
    config: ConfigurationSource, secrets: SecretStore, update: DestinationUpdate
) -> None:
    """
    Persist the selected destination and clear the other one.

    Keeping only one destination's settings around prevents a stale
    Pushgateway URL from being used after switching to InfluxDB, and
    vice versa.

    Args:
        config: Settings store to write to
        secrets: Credential store to write to
        update: The user's destination settings
    """
    use_influxdb = update.kind == DestinationKind.INFLUXDB
    config.set(USE_INFLUXDB, use_influxdb)
    config.set(PUSH_INTERVAL, update.push_interval_minutes)

    if use_influxdb:
        config.set(INFLUXDB_URL, update.influxdb_url)
        config.set(INFLUXDB_ORG, update.influxdb_org)
        config.set(INFLUXDB_BUCKET, update.influxdb_bucket)
        if update.influxdb_token:
            secrets.put(INFLUXDB_TOKEN_KEY, update.influxdb_token)

        config.remove(PUSHGATEWAY_URL)
        secrets.delete(PUSHGATEWAY_BASIC_AUTH_KEY)
    else:
        config.set(PUSHGATEWAY_URL, update.pushgateway_url)
        if update.username and update.password:
            secrets.put(PUSHGATEWAY_BASIC_AUTH_KEY, f"{update.username}:{update.password}")
        else:
            secrets.delete(PUSHGATEWAY_BASIC_AUTH_KEY)

        for key in INFLUXDB_SETTING_KEYS:
            config.remove(key)
        secrets.delete(INFLUXDB_TOKEN_KEY)

    logger.info(f"Destination settings saved (destination={update.kind.value})")


def is_destination_configured(config: ConfigurationSource, secrets: SecretStore) -> bool:
    """Check whether the active destination has every required setting."""
    if config.get_bool(USE_INFLUXDB):
        return all(config.get_string(key) for key in INFLUXDB_SETTING_KEYS) and bool(
            secrets.get(INFLUXDB_TOKEN_KEY)
        )
    return bool(config.get_string(PUSHGATEWAY_URL))


def get_last_push_time(config: ConfigurationSource) -> Optional[datetime]:
    """Parse the last successful push time, if one was recorded."""
    raw = config.get_string(LAST_PUSH_TIME)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed {LAST_PUSH_TIME} setting: {raw!r}")
        return None
