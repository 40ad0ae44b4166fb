"""
Persistence for the metric cache.
"""

from health_exporter.telemetry.storage.blob_store import BlobStore, FileBlobStore, MemoryBlobStore
from health_exporter.telemetry.storage.cache import CACHE_KEY, MetricCache

__all__ = ["BlobStore", "FileBlobStore", "MemoryBlobStore", "CACHE_KEY", "MetricCache"]
