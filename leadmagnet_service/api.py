"""
FastAPI application factory and HTTP schemas for the lead-magnet service.

The module exposes a `create_app` function building three groups of routes:

* public landing routes (``/d/{slug}``) used by the confirmation flow,
* provider-facing routes (``/api/webhooks/resend``) and the delivery status
  endpoints polled by clients,
* admin routes (``/admin/...``) protected by a configurable API token carried
  in the ``X-API-Token`` header.
"""

import base64
import binascii
from typing import Any, AsyncContextManager, Callable, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from .core import LeadMagnetCore
from .errors import DocumentError, WebhookError
from .logger import get_logger

app = FastAPI(title="Lead Magnet Service")
service: LeadMagnetCore | None = None
API_TOKEN_HEADER_NAME = "X-API-Token"
SIGNATURE_HEADER_NAME = "svix-signature"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)
app.state.api_token = None

logger = get_logger("API")


async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header.

    If a token has been configured through :func:`create_app` and a request
    provides either a missing or different value, a ``401`` error is raised.
    When no token is configured the dependency is effectively bypassed.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or api_token != expected:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


def get_service() -> LeadMagnetCore:
    if not service:
        raise HTTPException(500, "Service not initialized")
    return service


class LeadSubmission(BaseModel):
    """Email address submitted from a landing page."""
    email: str = ""


class ConfirmDeliveryPayload(BaseModel):
    email_id: Optional[str] = Field(default=None, alias="emailId")


class DocumentLanding(BaseModel):
    """Public view of a document shown on its landing page."""
    slug: str
    title: str
    description: Optional[str] = None
    file_name: str
    file_type: str
    file_size: int


class DocumentRecord(DocumentLanding):
    id: str
    file_key: str
    is_active: bool
    sender_id: Optional[str] = None
    email_template_id: Optional[str] = None
    created_at: str


class DocumentUploadPayload(BaseModel):
    """Document upload with the file carried as base64."""
    title: str
    description: Optional[str] = None
    file_name: str
    content_type: Optional[str] = None
    content_base64: str


class DocumentActivePayload(BaseModel):
    is_active: bool


class DocumentAssignPayload(BaseModel):
    sender_id: Optional[str] = None
    email_template_id: Optional[str] = None


class SenderPayload(BaseModel):
    name: str
    email: str


class SenderRecord(SenderPayload):
    id: str
    created_at: str


class TemplatePayload(BaseModel):
    name: str
    subject: str
    html_body: str
    body_format: Literal["html", "text"] = "html"


class TemplateRecord(TemplatePayload):
    id: str
    created_at: str
    updated_at: str


class LeadRecord(BaseModel):
    id: str
    email: str
    source: Optional[str] = None
    captured_at: str


class CommandStatus(BaseModel):
    """Base schema shared by admin responses."""
    ok: bool
    error: Optional[str] = None


class BasicOkResponse(CommandStatus):
    pass


class DocumentsResponse(CommandStatus):
    documents: List[DocumentRecord]


class DocumentResponse(CommandStatus):
    document: DocumentRecord


class SendersResponse(CommandStatus):
    senders: List[SenderRecord]


class SenderResponse(CommandStatus):
    sender: SenderRecord


class TemplatesResponse(CommandStatus):
    templates: List[TemplateRecord]


class TemplateResponse(CommandStatus):
    template: TemplateRecord


class LeadsResponse(CommandStatus):
    leads: List[LeadRecord]


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def create_app(
    svc: LeadMagnetCore,
    api_token: str | None = None,
    lifespan: Callable[[FastAPI], AsyncContextManager] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    svc:
        Instance of :class:`leadmagnet_service.core.LeadMagnetCore`
        implementing the business logic.
    api_token:
        Optional secret protecting the admin endpoints. When provided, the
        ``X-API-Token`` header must match this value on every admin request.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn.
    """
    global service
    service = svc

    if lifespan is not None:
        api = FastAPI(title="Lead Magnet Service", lifespan=lifespan)
    else:
        api = app

    api.state.api_token = api_token
    public = APIRouter(tags=["public"])
    admin = APIRouter(prefix="/admin", tags=["admin"], dependencies=[auth_dependency])

    @api.get("/status", response_model=BasicOkResponse, response_model_exclude_none=True, dependencies=[auth_dependency])
    async def health():
        """Return a simple health status payload."""
        get_service()
        return BasicOkResponse(ok=True)

    @api.get("/metrics", dependencies=[auth_dependency])
    async def metrics():
        """Expose Prometheus metrics."""
        svc = get_service()
        return Response(content=svc.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    # ------------------------------------------------------------ public
    @public.get("/d/{slug}", response_model=DocumentLanding)
    async def landing(slug: str, request: Request):
        """Return the landing metadata of an active document and record the view."""
        svc = get_service()
        doc = await svc.view_document(slug, _client_ip(request))
        if doc is None:
            raise HTTPException(404, "Document not found")
        return DocumentLanding.model_validate(doc)

    @public.post("/d/{slug}/leads")
    async def submit_lead(slug: str, payload: LeadSubmission):
        """Capture an email address and send the document to it."""
        svc = get_service()
        result = await svc.submit_lead(slug, payload.email)
        return result.to_response()

    @public.post("/api/webhooks/resend")
    async def resend_webhook(request: Request):
        """Apply a delivery event emitted by the email provider."""
        svc = get_service()
        raw = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER_NAME)
        try:
            result = await svc.handle_webhook_event(raw, signature)
        except WebhookError as exc:
            return JSONResponse({"error": str(exc)}, status_code=exc.status_code)
        except Exception as exc:
            logger.exception("[Webhook] Error processing: %s", exc)
            return JSONResponse({"error": "Webhook processing failed"}, status_code=500)
        return result

    @public.get("/api/delivery-status")
    async def delivery_status(email_id: Optional[str] = Query(default=None, alias="emailId")):
        """Return the tracked status of a send, ``pending`` when unknown."""
        svc = get_service()
        if not email_id:
            return JSONResponse({"error": "Missing emailId"}, status_code=400)
        return {"status": await svc.get_delivery_status(email_id)}

    @public.post("/api/delivery-status/confirm")
    async def confirm_delivery(payload: ConfirmDeliveryPayload):
        """Let the recipient confirm receipt of the document."""
        svc = get_service()
        if not payload.email_id:
            return {"error": "Missing emailId"}
        try:
            await svc.confirm_delivery(payload.email_id)
        except Exception as exc:
            logger.exception("Failed to confirm delivery of %s: %s", payload.email_id, exc)
            return {"error": "Failed to confirm delivery"}
        return {"success": True}

    # ------------------------------------------------------------- admin
    @admin.get("/documents", response_model=DocumentsResponse, response_model_exclude_none=True)
    async def list_documents():
        svc = get_service()
        docs = await svc.persistence.list_documents()
        return DocumentsResponse(ok=True, documents=[DocumentRecord.model_validate(d) for d in docs])

    @admin.post("/documents", response_model=DocumentResponse, response_model_exclude_none=True)
    async def upload_document(payload: DocumentUploadPayload):
        """Store a document file and register its landing page."""
        svc = get_service()
        try:
            content = base64.b64decode(payload.content_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(400, "content_base64 is not valid base64")
        try:
            doc = await svc.documents.upload_document(
                payload.title,
                payload.file_name,
                content,
                content_type=payload.content_type,
                description=payload.description,
            )
        except DocumentError as exc:
            raise HTTPException(400, str(exc))
        return DocumentResponse(ok=True, document=DocumentRecord.model_validate(doc))

    @admin.post("/documents/{document_id}/active", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def toggle_document(document_id: str, payload: DocumentActivePayload):
        svc = get_service()
        if not await svc.documents.toggle_active(document_id, payload.is_active):
            raise HTTPException(404, "Document not found")
        return BasicOkResponse(ok=True)

    @admin.patch("/documents/{document_id}", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def assign_document(document_id: str, payload: DocumentAssignPayload):
        """Choose the sender and template of a document (``null`` restores defaults)."""
        svc = get_service()
        if payload.sender_id and not await svc.persistence.get_sender(payload.sender_id):
            raise HTTPException(400, "Unknown sender")
        if payload.email_template_id and not await svc.persistence.get_template(payload.email_template_id):
            raise HTTPException(400, "Unknown template")
        updated = await svc.persistence.assign_document_email(
            document_id, payload.sender_id, payload.email_template_id
        )
        if not updated:
            raise HTTPException(404, "Document not found")
        return BasicOkResponse(ok=True)

    @admin.delete("/documents/{document_id}", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def delete_document(document_id: str):
        svc = get_service()
        if not await svc.documents.delete_document(document_id):
            raise HTTPException(404, "Document not found")
        return BasicOkResponse(ok=True)

    @admin.get("/senders", response_model=SendersResponse, response_model_exclude_none=True)
    async def list_senders():
        svc = get_service()
        senders = await svc.persistence.list_senders()
        return SendersResponse(ok=True, senders=[SenderRecord.model_validate(s) for s in senders])

    @admin.post("/senders", response_model=SenderResponse, response_model_exclude_none=True)
    async def add_sender(payload: SenderPayload):
        svc = get_service()
        sender = await svc.persistence.add_sender(payload.name.strip(), payload.email.strip())
        return SenderResponse(ok=True, sender=SenderRecord.model_validate(sender))

    @admin.delete("/senders/{sender_id}", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def delete_sender(sender_id: str):
        svc = get_service()
        if not await svc.persistence.delete_sender(sender_id):
            raise HTTPException(404, "Sender not found")
        return BasicOkResponse(ok=True)

    @admin.get("/templates", response_model=TemplatesResponse, response_model_exclude_none=True)
    async def list_templates():
        svc = get_service()
        templates = await svc.persistence.list_templates()
        return TemplatesResponse(ok=True, templates=[TemplateRecord.model_validate(t) for t in templates])

    @admin.post("/templates", response_model=TemplateResponse, response_model_exclude_none=True)
    async def add_template(payload: TemplatePayload):
        svc = get_service()
        template = await svc.persistence.add_template(
            payload.name.strip(), payload.subject.strip(), payload.html_body, payload.body_format
        )
        return TemplateResponse(ok=True, template=TemplateRecord.model_validate(template))

    @admin.put("/templates/{template_id}", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def update_template(template_id: str, payload: TemplatePayload):
        svc = get_service()
        updated = await svc.persistence.update_template(
            template_id, payload.name.strip(), payload.subject.strip(), payload.html_body, payload.body_format
        )
        if not updated:
            raise HTTPException(404, "Template not found")
        return BasicOkResponse(ok=True)

    @admin.delete("/templates/{template_id}", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def delete_template(template_id: str):
        svc = get_service()
        if not await svc.persistence.delete_template(template_id):
            raise HTTPException(404, "Template not found")
        return BasicOkResponse(ok=True)

    @admin.get("/leads", response_model=LeadsResponse, response_model_exclude_none=True)
    async def list_leads(unique: bool = False):
        """List captured leads; ``unique`` keeps the first capture of each address."""
        svc = get_service()
        leads: List[Dict[str, Any]] = await svc.persistence.list_leads(unique=unique)
        return LeadsResponse(ok=True, leads=[LeadRecord.model_validate(lead) for lead in leads])

    api.include_router(public)
    api.include_router(admin)
    return api
