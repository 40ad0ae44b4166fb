"""
Time-bounded snapshot of the last successful collection.

The cache holds exactly one batch. Every successful collection replaces it
wholesale, and entries older than the maximum age are never served.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from health_exporter.telemetry.schemas import MAX_CACHE_AGE, CachedMetric, Metric
from health_exporter.telemetry.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

CACHE_KEY = "cached_health_metrics"

_cache_adapter = TypeAdapter(List[CachedMetric])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricCache:
    """Persisted fallback snapshot of collected metrics."""

    def __init__(
        self,
        blob_store: BlobStore,
        max_age: timedelta = MAX_CACHE_AGE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize cache.

        Args:
            blob_store: Where the snapshot is persisted
            max_age: Oldest entry age still served by load_valid()
            clock: Returns the current UTC time
        """
        self.blob_store = blob_store
        self.max_age = max_age
        self.clock = clock
        self._lock = asyncio.Lock()

    async def save(self, metrics: Sequence[Metric], observed_at: Optional[datetime] = None) -> None:
        """
        Replace the snapshot with ``metrics``.

        Args:
            metrics: Freshly collected batch
            observed_at: Observation time stamped on every entry, now when omitted
        """
        stamp = observed_at or self.clock()
        entries = [CachedMetric(metric=m, observed_at=stamp) for m in metrics]
        blob = _cache_adapter.dump_json(entries).decode()

        async with self._lock:
            await self.blob_store.write(CACHE_KEY, blob)
        logger.debug(f"Cached {len(entries)} metrics")

    async def load(self) -> List[CachedMetric]:
        """Every stored entry regardless of age, empty when unreadable."""
        try:
            blob = await self.blob_store.read(CACHE_KEY)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read metric cache: {e}")
            return []
        if not blob:
            return []

        try:
            return _cache_adapter.validate_json(blob)
        except ValidationError as e:
            logger.error(f"Discarding corrupt metric cache: {e.error_count()} validation errors")
            return []

    async def load_valid(self) -> List[CachedMetric]:
        """
        Entries whose age does not exceed max_age.

        Returns:
            New list of cached entries, possibly empty
        """
        now = self.clock()
        entries = await self.load()
        valid = [entry for entry in entries if entry.is_valid(now, self.max_age)]
        if entries and not valid:
            logger.info(f"Metric cache expired ({len(entries)} stale entries)")
        return valid

    async def clear(self) -> None:
        async with self._lock:
            await self.blob_store.delete(CACHE_KEY)
        logger.info("Metric cache cleared")
