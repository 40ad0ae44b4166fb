"""
Telemetry protocols defining contracts with external collaborators.

The export pipeline never talks to a health store, keychain or settings
database directly. Host applications hand in objects satisfying these
protocols, which keeps every component substitutable with fakes in tests.
"""

from datetime import date
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from health_exporter.telemetry.schemas import CollectionWindow, WorkoutSample

# Secret Store keys, one per destination kind
PUSHGATEWAY_BASIC_AUTH_KEY = "pushgateway-basic-auth"
INFLUXDB_TOKEN_KEY = "influxdb-token"


# ============================================================================
# BIOMETRIC SOURCE - What the health store promises to provide
# ============================================================================


@runtime_checkable
class BiometricSource(Protocol):
    """Async access to the device health store."""

    async def is_available(self) -> bool:
        """
        Check whether the health store can be queried at all.

        Promises:
        - Returns False when the store is missing or access was revoked
        """
        ...

    async def fetch_cumulative(self, category: str, window: CollectionWindow) -> Optional[float]:
        """
        Sum of all samples of ``category`` inside ``window``.

        Promises:
        - Returns None when there are no samples
        - May raise on store errors
        """
        ...

    async def fetch_latest(self, category: str) -> Optional[Tuple[float, str]]:
        """
        Most recent sample of ``category`` as ``(value, source_label)``.

        Promises:
        - Returns None when there are no samples
        - May raise on store errors
        """
        ...

    async def fetch_category_events(
        self, category: str, predicate: str, window: CollectionWindow
    ) -> int:
        """
        Count of events of ``category`` whose value matches ``predicate``.

        Promises:
        - Returns 0 when nothing matched
        - May raise on store errors
        """
        ...

    async def fetch_daily_series(self, category: str, days: int) -> List[Tuple[date, float]]:
        """
        One value per day for the last ``days`` days, oldest first.

        Promises:
        - Days without data are omitted
        - May raise on store errors
        """
        ...

    async def fetch_workouts(self, window: CollectionWindow) -> List[WorkoutSample]:
        """
        All workouts that started inside ``window``.

        Promises:
        - Returns an empty list when there were none
        - May raise on store errors
        """
        ...


# ============================================================================
# SECRET STORE - Durable credential storage
# ============================================================================


@runtime_checkable
class SecretStore(Protocol):
    """Credential storage keyed by destination kind."""

    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, secret: str) -> None: ...

    def delete(self, key: str) -> None: ...


# ============================================================================
# CONFIGURATION SOURCE - Durable key/value settings
# ============================================================================


@runtime_checkable
class ConfigurationSource(Protocol):
    """
    Key/value settings store.

    The pipeline only reads from it, apart from the scheduler writing back
    the last successful push time.
    """

    def get_string(self, key: str) -> Optional[str]: ...

    def get_bool(self, key: str) -> bool: ...

    def get_int(self, key: str) -> int: ...

    def set(self, key: str, value: object) -> None: ...

    def remove(self, key: str) -> None: ...


# ============================================================================
# NOTIFIER - Optional out-of-band status reporting
# ============================================================================


@runtime_checkable
class Notifier(Protocol):
    """Reports background push outcomes to the user without blocking."""

    async def notify(self, title: str, body: str, success: bool) -> None: ...
