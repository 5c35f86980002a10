"""Lead submission pipeline.

``submit_lead`` runs, in order and stopping at the first failure:

1. email syntax validation
2. rate limiting on the submitted address
3. document lookup by slug (must exist and be active)
4. sender/template resolution
5. lead insert
6. attachment fetch from object storage
7. provider send
8. email send record insert

Steps 5 to 8 are not transactional. A failure after the lead insert leaves
the lead in place without a matching email send: capturing the address is
independent of delivering the document. Any unexpected error from step 4
onward is logged and reported as ``SEND_FAILED`` with the generic message.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .attachments import AttachmentManager
from .errors import GENERIC_FAILURE_MESSAGE, DispatchError, DispatchErrorCode, ProviderError
from .logger import get_logger
from .persistence import Persistence
from .prometheus import LeadMetrics
from .provider import Attachment, EmailProvider, OutboundEmail
from .rate_limit import RateLimiter
from .templates import TemplateResolver

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: Optional[str]) -> bool:
    """Return ``True`` for a syntactically plausible ``local@domain.tld`` address."""
    if not email:
        return False
    return bool(EMAIL_REGEX.match(email))


@dataclass
class SubmitResult:
    """Outcome of a submission: either ``email_send_id`` or ``error``."""

    success: bool
    email_send_id: Optional[str] = None
    error: Optional[str] = None
    code: Optional[DispatchErrorCode] = None

    def to_response(self) -> Dict[str, Any]:
        """Public payload: mapped text only, never the internal code."""
        if self.success:
            return {"success": True, "emailSendId": self.email_send_id}
        return {"error": self.error}


class LeadDispatcher:
    """Coordinate validation, rate limiting, rendering and delivery of one lead."""

    def __init__(
        self,
        persistence: Persistence,
        rate_limiter: RateLimiter,
        resolver: TemplateResolver,
        attachments: AttachmentManager,
        provider: EmailProvider,
        metrics: LeadMetrics | None = None,
        send_timeout: float = 30.0,
        logger=None,
    ):
        self.persistence = persistence
        self.rate_limiter = rate_limiter
        self.resolver = resolver
        self.attachments = attachments
        self.provider = provider
        self.metrics = metrics or LeadMetrics()
        self.send_timeout = send_timeout
        self.logger = logger or get_logger("Dispatcher")

    async def submit_lead(self, slug: str, email: str) -> SubmitResult:
        """Capture ``email`` for the document ``slug`` and send the document."""
        try:
            email_send_id = await self._submit(slug, email)
        except DispatchError as exc:
            self.logger.info("Lead submission for '%s' rejected: %s", slug, exc.code.value)
            self.metrics.inc_submission(exc.code.value)
            return SubmitResult(success=False, error=exc.message, code=exc.code)
        self.metrics.inc_submission("success")
        return SubmitResult(success=True, email_send_id=email_send_id)

    async def _submit(self, slug: str, email: str) -> Optional[str]:
        if not is_valid_email(email):
            raise DispatchError(DispatchErrorCode.INVALID_EMAIL)

        if not await self.rate_limiter.allow(email):
            raise DispatchError(DispatchErrorCode.RATE_LIMITED)

        doc = await self.persistence.get_document_by_slug(slug)
        if not doc or not doc["is_active"]:
            raise DispatchError(DispatchErrorCode.DOCUMENT_UNAVAILABLE)

        try:
            return await self._deliver(doc, slug, email)
        except DispatchError:
            raise
        except Exception as exc:
            self.logger.exception("Unexpected error delivering document '%s': %s", slug, exc)
            raise DispatchError(DispatchErrorCode.SEND_FAILED, GENERIC_FAILURE_MESSAGE) from exc

    async def _deliver(self, doc: Dict[str, Any], slug: str, email: str) -> Optional[str]:
        rendered = await self.resolver.resolve(doc)

        lead = await self.persistence.add_lead(email, slug)

        try:
            file_bytes = await self.attachments.fetch(doc["file_key"])
        except asyncio.TimeoutError:
            self.logger.error("Timed out fetching %s for document '%s'", doc["file_key"], slug)
            file_bytes = None
        except Exception as exc:
            self.logger.exception("Failed to fetch %s for document '%s': %s", doc["file_key"], slug, exc)
            file_bytes = None
        if not file_bytes:
            raise DispatchError(DispatchErrorCode.ATTACHMENT_UNAVAILABLE)

        outbound = OutboundEmail(
            from_identity=rendered.from_identity,
            to=[email],
            subject=rendered.subject,
            html=rendered.html,
            attachments=[Attachment(filename=doc["file_name"], content=file_bytes)],
            tags={"type": "lead_magnet", "document_slug": slug},
        )
        try:
            provider_id = await asyncio.wait_for(self.provider.send(outbound), timeout=self.send_timeout)
        except ProviderError as exc:
            self.logger.error("Provider rejected send for document '%s': %s", slug, exc)
            raise DispatchError(DispatchErrorCode.SEND_FAILED) from exc
        except asyncio.TimeoutError as exc:
            self.logger.error("Provider send timed out for document '%s'", slug)
            raise DispatchError(DispatchErrorCode.SEND_FAILED) from exc

        await self.persistence.add_email_send(doc["id"], lead["id"], provider_id, status="sent")
        self.metrics.inc_sent()
        self.logger.info("Sent document '%s' to lead %s (provider id %s)", slug, lead["id"], provider_id)
        return provider_id
