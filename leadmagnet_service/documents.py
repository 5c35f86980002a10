"""Document registration and lifecycle for the admin surface."""

from __future__ import annotations

import re
import uuid
from typing import Any, Dict, Optional

from .attachments import AttachmentManager
from .errors import DocumentError
from .logger import get_logger
from .persistence import Persistence

DEFAULT_MAX_FILE_SIZE_MB = 25


def generate_slug(title: str) -> str:
    """Build ``<slugified-title>-<8 hex chars>`` from a document title."""
    base = re.sub(r"[^a-z0-9]+", "-", title.lower())
    base = re.sub(r"^-|-$", "", base)
    short = str(uuid.uuid4()).split("-")[0]
    return f"{base}-{short}"


class DocumentService:
    """Upload, toggle and delete lead-magnet documents."""

    def __init__(
        self,
        persistence: Persistence,
        attachments: AttachmentManager,
        max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB,
        logger=None,
    ):
        self.persistence = persistence
        self.attachments = attachments
        self.max_file_size_mb = int(max_file_size_mb or DEFAULT_MAX_FILE_SIZE_MB)
        self.logger = logger or get_logger("Documents")

    @property
    def max_file_size(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    async def upload_document(
        self,
        title: str,
        file_name: str,
        content: bytes,
        content_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store the file and register a new active document.

        Raises:
            DocumentError: Missing title/file or file larger than the limit.
        """
        if not title or not file_name or not content:
            raise DocumentError("Title and file are required")
        if len(content) > self.max_file_size:
            raise DocumentError(f"File size exceeds {self.max_file_size_mb}MB limit")

        if not content_type:
            content_type = "/".join(self.attachments.guess_mime(file_name))
        slug = generate_slug(title)
        ext = file_name.rsplit(".", 1)[-1] if "." in file_name else "bin"
        file_key = f"documents/{slug}.{ext}"

        await self.attachments.store(file_key, content, content_type)
        doc = await self.persistence.add_document(
            {
                "title": title,
                "description": description or None,
                "slug": slug,
                "file_key": file_key,
                "file_name": file_name,
                "file_type": content_type,
                "file_size": len(content),
            }
        )
        self.logger.info("Registered document '%s' (%d bytes)", slug, len(content))
        return doc

    async def toggle_active(self, document_id: str, is_active: bool) -> bool:
        return await self.persistence.set_document_active(document_id, is_active)

    async def delete_document(self, document_id: str) -> bool:
        """Delete the document row, then its blob (blob removal failures are logged)."""
        doc = await self.persistence.delete_document(document_id)
        if doc is None:
            return False
        try:
            await self.attachments.remove(doc["file_key"])
        except Exception as exc:
            self.logger.warning("Could not remove blob %s: %s", doc["file_key"], exc)
        return True
