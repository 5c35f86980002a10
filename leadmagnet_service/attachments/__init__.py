"""Document blob access on top of an object storage backend."""

import asyncio
import mimetypes
from typing import Optional, Tuple

from .base import ObjectStorageBase
from .s3_storage import S3ObjectStorage

__all__ = ["AttachmentManager", "ObjectStorageBase", "S3ObjectStorage"]


class AttachmentManager:
    """Fetch and store document blobs with a bounded wait on the backend."""

    def __init__(self, storage: ObjectStorageBase, timeout: float = 30.0):
        """Initialize with a storage backend and the per-call timeout in seconds."""
        self.storage = storage
        self.timeout = timeout

    async def fetch(self, key: str) -> Optional[bytes]:
        """Return the blob stored under ``key``; empty payloads become ``None``.

        Raises:
            asyncio.TimeoutError: When the backend does not answer in time.
        """
        data = await asyncio.wait_for(self.storage.get(key), timeout=self.timeout)
        return data or None

    async def store(self, key: str, body: bytes, content_type: str) -> None:
        await asyncio.wait_for(self.storage.put(key, body, content_type), timeout=self.timeout)

    async def remove(self, key: str) -> None:
        await asyncio.wait_for(self.storage.delete(key), timeout=self.timeout)

    @staticmethod
    def guess_mime(filename: str) -> Tuple[str, str]:
        """Guess the MIME type for the given filename."""
        mt, _ = mimetypes.guess_type(filename)
        if not mt:
            return ("application", "octet-stream")
        return tuple(mt.split("/", 1))  # type: ignore[return-value]
