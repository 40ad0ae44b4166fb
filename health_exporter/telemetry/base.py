"""
Base class for telemetry collectors.

Provides the timeout and error handling shared by collectors and the
statistics every collector reports.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Awaitable, Generic, Optional, TypeVar

from health_exporter.telemetry.schemas import CollectorStats

logger = logging.getLogger(__name__)

# Type of a single collect() outcome
T = TypeVar("T")
# Type of a single guarded fetch
R = TypeVar("R")


class BaseCollector(ABC, Generic[T]):
    """
    Abstract base class for collectors.

    Subclasses implement collect() and is_available(); fetches of individual
    categories go through guarded_fetch() so one failing category never
    takes the others down.
    """

    def __init__(self, name: str, timeout_seconds: float = 10.0):
        """
        Initialize base collector.

        Args:
            name: Collector name for logging and identification
            timeout_seconds: Maximum time allowed for one guarded fetch
        """
        self.name = name
        self.timeout_seconds = timeout_seconds
        self._last_collection_time: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._collection_count = 0
        self._error_count = 0
        self._cache_fallback_count = 0

    @abstractmethod
    async def collect(self) -> T:
        """
        Collect metrics from the source.

        Must be implemented by subclasses.
        """

    @abstractmethod
    async def is_available(self) -> bool:
        """
        Check if the data source is available.

        Promises:
        - Never raises exceptions
        - Returns False on any error
        """

    async def guarded_fetch(self, label: str, fetch: Awaitable[R]) -> Optional[R]:
        """
        Await one fetch with timeout enforcement.

        Args:
            label: Category name for logging
            fetch: Awaitable performing the fetch

        Returns:
            The fetch result, or None on timeout or error
        """
        try:
            return await asyncio.wait_for(fetch, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name}: {label} timed out after {self.timeout_seconds}s")
            return None
        except Exception as e:
            logger.warning(f"{self.name}: failed to fetch {label}: {e}")
            return None

    def _record_collection(self, from_cache: bool = False) -> None:
        self._collection_count += 1
        self._last_collection_time = datetime.now(timezone.utc)
        if from_cache:
            self._cache_fallback_count += 1

    def _record_error(self, message: str) -> None:
        self._collection_count += 1
        self._error_count += 1
        self._last_error = message

    def get_stats(self) -> CollectorStats:
        """
        Get collector statistics.

        Returns:
            Typed collection stats
        """
        return CollectorStats(
            name=self.name,
            collections=self._collection_count,
            errors=self._error_count,
            error_rate=self._error_count / max(1, self._collection_count),
            cache_fallbacks=self._cache_fallback_count,
            last_collection=self._last_collection_time.isoformat()
            if self._last_collection_time
            else None,
            last_error=self._last_error,
        )

    def reset_stats(self) -> None:
        """Reset collector statistics."""
        self._collection_count = 0
        self._error_count = 0
        self._cache_fallback_count = 0
        self._last_error = None
