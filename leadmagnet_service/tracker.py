"""Delivery status tracking driven by provider webhooks.

States of an email send::

    pending (no row) -> sent -> delivered | bounced | failed | complained | delayed

``sent`` and ``delayed`` may be followed by any other state. Webhook
updates are last-write-wins keyed by provider message id; a late webhook
may overwrite a manually confirmed ``delivered``. ``confirm_delivery``
only ever upgrades to ``delivered``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import WebhookPayloadError, WebhookSignatureError
from .logger import get_logger
from .persistence import Persistence, utc_now_iso
from .prometheus import LeadMetrics

EVENT_STATUS = {
    "email.sent": "sent",
    "email.delivered": "delivered",
    "email.delivery_delayed": "delayed",
    "email.bounced": "bounced",
    "email.complained": "complained",
    "email.failed": "failed",
}


def verify_signature(payload: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Check the HMAC-SHA256 hex digest of ``payload`` against ``signature``.

    Without a configured secret every payload is accepted.
    """
    if not secret:
        return True
    if not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.strip().encode("utf-8"), expected.encode("utf-8"))


def _normalise_timestamp(value: Any) -> str:
    """Return the event timestamp as ISO-8601 UTC, falling back to now."""
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return utc_now_iso()


class DeliveryTracker:
    """Apply webhook events and manual confirmations to email send records."""

    def __init__(
        self,
        persistence: Persistence,
        webhook_secret: Optional[str] = None,
        metrics: LeadMetrics | None = None,
        logger=None,
    ):
        self.persistence = persistence
        self.webhook_secret = webhook_secret or None
        self.metrics = metrics or LeadMetrics()
        self.logger = logger or get_logger("DeliveryTracker")

    async def handle_webhook_event(self, raw_payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify, parse and apply one webhook delivery.

        Raises:
            WebhookSignatureError: Signature does not match the configured secret.
            WebhookPayloadError: The event carries no ``data.email_id``.
        """
        if not verify_signature(raw_payload, signature, self.webhook_secret):
            self.logger.warning("[Webhook] Rejected event with invalid signature")
            raise WebhookSignatureError()

        event = json.loads(raw_payload)
        data = event.get("data") if isinstance(event, dict) else None
        email_id = data.get("email_id") if isinstance(data, dict) else None
        if not email_id:
            raise WebhookPayloadError()

        event_type = event.get("type")
        self.logger.info("[Webhook] %s for %s", event_type, email_id)
        self.metrics.inc_webhook_event(str(event_type))

        status = EVENT_STATUS.get(event_type)
        if status is None:
            self.logger.info("[Webhook] Unhandled event type: %s", event_type)
            return {"received": True}

        delivered_at = _normalise_timestamp(event.get("created_at")) if status == "delivered" else None
        updated = await self.persistence.update_send_status(email_id, status, delivered_at=delivered_at)
        if not updated:
            self.logger.debug("[Webhook] No email send tracked for %s", email_id)
        return {"received": True}

    async def confirm_delivery(self, email_id: str) -> bool:
        """Mark the send as delivered now unless it already is.

        Returns ``True`` when the row changed.
        """
        changed = await self.persistence.mark_delivered_unless_delivered(email_id, utc_now_iso())
        if changed:
            self.logger.info("Delivery of %s confirmed by recipient", email_id)
        return changed > 0

    async def get_status(self, email_id: str) -> str:
        """Return the current status, ``pending`` when no send is recorded."""
        send = await self.persistence.get_email_send(email_id)
        if send is None:
            return "pending"
        return send["status"]
