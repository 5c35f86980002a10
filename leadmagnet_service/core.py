"""Wiring of the lead-magnet collaborators into a single service object."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .attachments import AttachmentManager, ObjectStorageBase, S3ObjectStorage
from .dispatcher import LeadDispatcher, SubmitResult
from .documents import DEFAULT_MAX_FILE_SIZE_MB, DocumentService
from .logger import get_logger
from .persistence import Persistence
from .prometheus import LeadMetrics
from .provider import DEFAULT_API_URL, EmailProvider
from .rate_limit import DEFAULT_MAX_ATTEMPTS, DEFAULT_WINDOW_SECONDS, RateLimiter
from .templates import DEFAULT_FROM, TemplateResolver
from .tracker import DeliveryTracker


class LeadMagnetCore:
    """Own persistence, storage, provider and metrics, and expose the core operations."""

    def __init__(
        self,
        *,
        db_path: str | None = "/data/leadmagnet.db",
        storage: ObjectStorageBase,
        provider: EmailProvider | None = None,
        rate_limiter: RateLimiter | None = None,
        metrics: LeadMetrics | None = None,
        logger=None,
        default_from: str = DEFAULT_FROM,
        webhook_secret: str | None = None,
        fetch_timeout: float = 30.0,
        send_timeout: float = 30.0,
        max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB,
    ):
        """Prepare the runtime collaborators."""
        self.logger = logger or get_logger()
        self.persistence = Persistence(db_path or ":memory:")
        self.metrics = metrics or LeadMetrics()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.attachments = AttachmentManager(storage, timeout=fetch_timeout)
        self.provider = provider or EmailProvider(timeout=send_timeout)
        self.resolver = TemplateResolver(self.persistence, default_from=default_from)
        self.dispatcher = LeadDispatcher(
            self.persistence,
            self.rate_limiter,
            self.resolver,
            self.attachments,
            self.provider,
            metrics=self.metrics,
            send_timeout=send_timeout,
        )
        self.tracker = DeliveryTracker(self.persistence, webhook_secret=webhook_secret, metrics=self.metrics)
        self.documents = DocumentService(self.persistence, self.attachments, max_file_size_mb=max_file_size_mb)

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "LeadMagnetCore":
        """Build the service from :func:`config_loader.load_settings` output."""
        bucket = settings.get("storage_bucket")
        if not bucket:
            raise ValueError("Object storage bucket is not configured (LMS_R2_BUCKET_NAME)")
        storage = S3ObjectStorage(
            bucket=bucket,
            endpoint_url=settings.get("storage_endpoint_url"),
            access_key_id=settings.get("storage_access_key_id"),
            secret_access_key=settings.get("storage_secret_access_key"),
            region=settings.get("storage_region") or "auto",
        )
        send_timeout = float(settings.get("send_timeout") or 30.0)
        provider = EmailProvider(
            api_key=settings.get("resend_api_key"),
            api_url=settings.get("resend_api_url") or DEFAULT_API_URL,
            timeout=send_timeout,
        )
        rate_limiter = RateLimiter(
            max_attempts=settings.get("rate_limit_max") or DEFAULT_MAX_ATTEMPTS,
            window_seconds=settings.get("rate_limit_window") or DEFAULT_WINDOW_SECONDS,
        )
        return cls(
            db_path=settings.get("db_path"),
            storage=storage,
            provider=provider,
            rate_limiter=rate_limiter,
            default_from=settings.get("default_from") or DEFAULT_FROM,
            webhook_secret=settings.get("webhook_secret"),
            fetch_timeout=float(settings.get("fetch_timeout") or 30.0),
            send_timeout=send_timeout,
            max_file_size_mb=settings.get("max_file_size_mb") or DEFAULT_MAX_FILE_SIZE_MB,
        )

    async def init(self) -> None:
        """Create the database schema."""
        await self.persistence.init_db()
        self.logger.debug("Persistence ready at %s", self.persistence.db_path)

    # ------------------------------------------------------------------ public
    async def submit_lead(self, slug: str, email: str) -> SubmitResult:
        return await self.dispatcher.submit_lead(slug, email)

    async def handle_webhook_event(self, raw_payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        return await self.tracker.handle_webhook_event(raw_payload, signature)

    async def confirm_delivery(self, email_id: str) -> bool:
        return await self.tracker.confirm_delivery(email_id)

    async def get_delivery_status(self, email_id: str) -> str:
        return await self.tracker.get_status(email_id)

    async def view_document(self, slug: str, ip_address: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return an active document by slug and log the page view, ``None`` otherwise."""
        doc = await self.persistence.get_document_by_slug(slug)
        if not doc or not doc["is_active"]:
            return None
        await self.persistence.add_document_view(doc["id"], ip_address or "unknown")
        self.metrics.inc_view()
        return doc
