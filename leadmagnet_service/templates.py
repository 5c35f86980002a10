"""Sender and email template resolution.

Resolves the ``From`` identity, subject and HTML body of a lead-magnet email
for a given document. Placeholders are substituted with plain literal
find-and-replace: no escaping, no nesting, unknown ``{{...}}`` tokens are
left untouched.

Recognised placeholders:
    - ``{{document_title}}``
    - ``{{document_description}}``
    - ``{{sender_name}}``
    - ``{{sender_email}}``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from .logger import get_logger
from .persistence import Persistence

DEFAULT_FROM = "HTD Solutions <info@htd.solutions>"

PLACEHOLDERS = ("document_title", "document_description", "sender_name", "sender_email")

_PLACEHOLDER_RE = re.compile(r"\{\{(" + "|".join(PLACEHOLDERS) + r")\}\}")
_IDENTITY_RE = re.compile(r"^\s*(?P<name>.*?)\s*<\s*(?P<email>[^<>\s]+)\s*>\s*$")

logger = get_logger("TemplateResolver")


@dataclass
class ResolvedEmail:
    """Everything the dispatcher needs to hand over to the provider."""

    from_identity: str
    subject: str
    html: str
    sender_name: str
    sender_email: str


def format_identity(name: str, email: str) -> str:
    """Compose a ``"Name <email>"`` origin identity."""
    return f"{name} <{email}>"


def parse_identity(identity: str) -> Tuple[str, str]:
    """Split ``"Name <email>"`` into ``(name, email)``.

    A bare address is returned as both name and email.
    """
    match = _IDENTITY_RE.match(identity or "")
    if match:
        email = match.group("email")
        return match.group("name") or email, email
    bare = (identity or "").strip()
    return bare, bare


def apply_placeholders(text: str, values: Mapping[str, str]) -> str:
    """Replace every occurrence of each recognised placeholder in ``text``.

    ``values`` maps the bare placeholder name (``document_title``) to its
    replacement; a missing or ``None`` value becomes the empty string. The
    text is scanned once, so a replacement containing a placeholder is
    inserted verbatim.
    """
    return _PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1)) or "", text)


def default_subject(title: str) -> str:
    return f"Your free resource: {title}"


def default_email_html(title: str, description: Optional[str]) -> str:
    """Built-in email body used when a document has no template."""
    description_block = ""
    if description:
        description_block = f"""
      <div style="background-color:#1a1f2e;border:1px solid #2a2f3e;border-radius:12px;padding:16px;margin-bottom:24px;text-align:left;">
        <p style="color:#94a3b8;font-size:13px;margin:0;line-height:1.6;">{description}</p>
      </div>
      """
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin:0;padding:0;background-color:#0a0e1a;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;">
  <div style="max-width:600px;margin:0 auto;padding:40px 20px;">
    <!-- Header -->
    <div style="text-align:center;margin-bottom:32px;">
      <div style="display:inline-block;width:48px;height:48px;background:linear-gradient(135deg,#7c3aed,#5b21b6);border-radius:12px;line-height:48px;font-size:20px;font-weight:bold;color:white;">H</div>
      <p style="color:#a78bfa;font-size:11px;letter-spacing:2px;text-transform:uppercase;margin-top:12px;font-weight:600;">HTD Solutions</p>
    </div>

    <!-- Card -->
    <div style="background-color:#111827;border:1px solid #2a2f3e;border-radius:16px;padding:40px 32px;text-align:center;">
      <div style="width:64px;height:64px;background:linear-gradient(135deg,#7c3aed20,#10b98120);border-radius:16px;margin:0 auto 24px;line-height:64px;">
        <span style="font-size:32px;">\U0001F4C4</span>
      </div>

      <h1 style="color:#ffffff;font-size:24px;font-weight:700;margin:0 0 8px;">Here's your document!</h1>
      <p style="color:#94a3b8;font-size:14px;margin:0 0 24px;line-height:1.6;">
        Thank you for your interest. Your requested document <strong style="color:#a78bfa;">"{title}"</strong> is attached to this email.
      </p>
      {description_block}
      <div style="background:linear-gradient(135deg,#7c3aed15,#10b98115);border:1px solid #7c3aed30;border-radius:12px;padding:16px;margin-bottom:8px;">
        <p style="color:#10b981;font-size:14px;font-weight:600;margin:0 0 4px;">\U0001F4CE File attached below</p>
        <p style="color:#94a3b8;font-size:12px;margin:0;">Check the attachment to access your document</p>
      </div>
    </div>

    <!-- Footer -->
    <div style="text-align:center;margin-top:32px;">
      <p style="color:#4a5568;font-size:12px;margin:0;">
        Sent with ❤️ by <span style="color:#a78bfa;">HTD Solutions</span>
      </p>
      <p style="color:#374151;font-size:11px;margin-top:8px;">
        You received this because you requested a document from us.
      </p>
    </div>
  </div>
</body>
</html>"""


def wrap_text_body(fragment: str) -> str:
    """Wrap a rich-text fragment into the light email shell used by ``text`` templates."""
    return f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><style>p{{margin:0;}}</style></head>
<body style="margin:0;padding:0;background-color:#f6f9fc;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;">
  <div style="max-width:600px;margin:0 auto;padding:40px 20px;">
    <div style="background-color:#ffffff;border:1px solid #e2e8f0;border-radius:12px;padding:32px;color:#1a202c;font-size:15px;line-height:1.7;">
{fragment}
    </div>
  </div>
</body></html>"""


def render_template(
    template: Mapping[str, Any], values: Mapping[str, str]
) -> Tuple[str, str]:
    """Return ``(subject, html)`` for a stored template row."""
    subject = apply_placeholders(template["subject"], values)
    body = apply_placeholders(template["html_body"], values)
    if template.get("body_format") == "text":
        body = wrap_text_body(body)
    return subject, body


class TemplateResolver:
    """Pick sender identity and template for a document and render the email."""

    def __init__(self, persistence: Persistence, default_from: str = DEFAULT_FROM):
        self.persistence = persistence
        self.default_from = default_from or DEFAULT_FROM
        self.default_name, self.default_email = parse_identity(self.default_from)

    async def _resolve_sender(self, document: Mapping[str, Any]) -> Tuple[str, str, str]:
        sender_id = document.get("sender_id")
        if sender_id:
            sender = await self.persistence.get_sender(sender_id)
            if sender:
                return format_identity(sender["name"], sender["email"]), sender["name"], sender["email"]
            logger.warning(
                "Sender %s of document %s no longer exists, using default identity",
                sender_id,
                document.get("slug"),
            )
        return self.default_from, self.default_name, self.default_email

    async def _resolve_template(self, document: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        template_id = document.get("email_template_id")
        if not template_id:
            return None
        template = await self.persistence.get_template(template_id)
        if template is None:
            logger.warning(
                "Template %s of document %s no longer exists, using built-in template",
                template_id,
                document.get("slug"),
            )
        return template

    async def resolve(self, document: Mapping[str, Any]) -> ResolvedEmail:
        """Resolve identity, subject and body for ``document``."""
        from_identity, sender_name, sender_email = await self._resolve_sender(document)
        title = document.get("title") or ""
        description = document.get("description")
        template = await self._resolve_template(document)
        values = {
            "document_title": title,
            "document_description": description or "",
            "sender_name": sender_name,
            "sender_email": sender_email,
        }
        if template is None:
            subject = default_subject(title)
            html = default_email_html(title, description)
        else:
            subject, html = render_template(template, values)
        return ResolvedEmail(
            from_identity=from_identity,
            subject=subject,
            html=html,
            sender_name=sender_name,
            sender_email=sender_email,
        )
