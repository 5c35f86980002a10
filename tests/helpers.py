"""Fakes shared by the test-suite."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from leadmagnet_service.attachments import ObjectStorageBase
from leadmagnet_service.core import LeadMagnetCore


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DummyStorage(ObjectStorageBase):
    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.raise_error: Optional[Exception] = None

    async def put(self, key, body, content_type):
        self.blobs[key] = body

    async def get(self, key):
        if self.raise_error:
            raise self.raise_error
        return self.blobs.get(key)

    async def delete(self, key):
        self.blobs.pop(key, None)


class DummyProvider:
    """Stands in for the Resend API through ``EmailProvider(send_callable=...)``."""

    def __init__(self):
        self.payloads: List[Dict[str, Any]] = []
        self.next_id: Optional[str] = "msg_123"
        self.raise_error: Optional[Exception] = None

    async def __call__(self, payload):
        if self.raise_error:
            raise self.raise_error
        self.payloads.append(payload)
        return {"id": self.next_id}


async def add_document(
    svc: LeadMagnetCore,
    storage: DummyStorage,
    slug: str = "guide-ab12",
    *,
    title: str = "The Guide",
    description: Optional[str] = "Everything you need",
    content: Optional[bytes] = b"%PDF-1.4 guide",
    is_active: bool = True,
    **extra: Any,
) -> Dict[str, Any]:
    file_key = f"documents/{slug}.pdf"
    if content is not None:
        storage.blobs[file_key] = content
    return await svc.persistence.add_document(
        {
            "title": title,
            "description": description,
            "slug": slug,
            "file_key": file_key,
            "file_name": "guide.pdf",
            "file_type": "application/pdf",
            "file_size": len(content or b""),
            "is_active": is_active,
            **extra,
        }
    )
