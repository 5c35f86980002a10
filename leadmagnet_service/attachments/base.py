"""Base protocol for object storage backends."""

from typing import Optional


class ObjectStorageBase:
    """Interface implemented by concrete blob stores (put/get/delete by key)."""

    async def put(self, key: str, body: bytes, content_type: str) -> None:
        """Store ``body`` under ``key``."""
        raise NotImplementedError

    async def get(self, key: str) -> Optional[bytes]:
        """Return the blob stored under ``key`` or ``None`` when it has no body."""
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        """Remove the blob stored under ``key``."""
        raise NotImplementedError
