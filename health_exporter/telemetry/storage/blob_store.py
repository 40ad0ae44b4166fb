"""
Blob stores backing the metric cache.

A blob store keeps opaque text documents under fixed keys and replaces each
one atomically, so a reader sees either the previous or the new document.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Dict, Optional, Protocol, Union, runtime_checkable

import aiofiles  # type: ignore

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


@runtime_checkable
class BlobStore(Protocol):
    """Durable key/blob storage."""

    async def read(self, key: str) -> Optional[str]:
        """
        Read the blob stored under ``key``.

        Promises:
        - Returns None when nothing is stored
        """
        ...

    async def write(self, key: str, blob: str) -> None:
        """
        Replace the blob stored under ``key``.

        Promises:
        - The replacement is atomic
        """
        ...

    async def delete(self, key: str) -> None: ...


class MemoryBlobStore:
    """BlobStore kept in process memory."""

    def __init__(self) -> None:
        self._blobs: Dict[str, str] = {}

    async def read(self, key: str) -> Optional[str]:
        return self._blobs.get(key)

    async def write(self, key: str, blob: str) -> None:
        self._blobs[key] = blob

    async def delete(self, key: str) -> None:
        self._blobs.pop(key, None)


class FileBlobStore:
    """BlobStore writing one ``<key>.json`` file per key."""

    def __init__(self, directory: Union[str, Path]):
        """
        Initialize file store.

        Args:
            directory: Directory holding the blobs, created on first write
        """
        self.directory = Path(directory)
        self._lock = asyncio.Lock()

    def path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.directory / f"{key}.json"

    async def read(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()

    async def write(self, key: str, blob: str) -> None:
        path = self.path_for(key)
        async with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)

            # Write atomically using temp file
            temp_file = path.with_suffix(".tmp")
            async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
                await f.write(blob)

            temp_file.replace(path)
        logger.debug(f"Wrote blob {key} to {path}")

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        async with self._lock:
            if path.exists():
                path.unlink()
                logger.debug(f"Deleted blob {key}")
