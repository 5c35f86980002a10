"""Exception types shared by the dispatcher, the tracker and the API layer."""

from __future__ import annotations

from enum import Enum


class DispatchErrorCode(str, Enum):
    """Failure taxonomy of a lead submission."""

    INVALID_EMAIL = "INVALID_EMAIL"
    RATE_LIMITED = "RATE_LIMITED"
    DOCUMENT_UNAVAILABLE = "DOCUMENT_UNAVAILABLE"
    ATTACHMENT_UNAVAILABLE = "ATTACHMENT_UNAVAILABLE"
    SEND_FAILED = "SEND_FAILED"


USER_MESSAGES = {
    DispatchErrorCode.INVALID_EMAIL: "Please enter a valid email address",
    DispatchErrorCode.RATE_LIMITED: "Too many attempts. Please try again later.",
    DispatchErrorCode.DOCUMENT_UNAVAILABLE: "This document is no longer available",
    DispatchErrorCode.ATTACHMENT_UNAVAILABLE: "Failed to retrieve the document. Please try again.",
    DispatchErrorCode.SEND_FAILED: "Failed to send email. Please check your address and try again.",
}

GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."


class DispatchError(RuntimeError):
    """Raised when a lead submission cannot be completed.

    The ``message`` is safe to show to the submitter; ``code`` is for the
    caller and for metrics only.
    """

    def __init__(self, code: DispatchErrorCode, message: str | None = None):
        self.code = code
        self.message = message or USER_MESSAGES[code]
        super().__init__(self.message)


class ProviderError(RuntimeError):
    """Raised by the email provider client when a send is rejected."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class WebhookError(RuntimeError):
    """Base class for webhook rejections mapped to HTTP status codes."""

    status_code = 500


class WebhookSignatureError(WebhookError):
    status_code = 401

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message)


class WebhookPayloadError(WebhookError):
    status_code = 400

    def __init__(self, message: str = "No email_id"):
        super().__init__(message)


class DocumentError(ValueError):
    """Raised by admin document operations on invalid input."""
