"""Transport helpers to hand emails over to the Resend API."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from .errors import ProviderError

JsonDict = Dict[str, Any]
SendCallable = Callable[[JsonDict], Awaitable[JsonDict]]

DEFAULT_API_URL = "https://api.resend.com"


@dataclass
class Attachment:
    filename: str
    content: bytes


@dataclass
class OutboundEmail:
    """A single transactional email as accepted by the provider."""

    from_identity: str
    to: List[str]
    subject: str
    html: str
    attachments: List[Attachment] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> JsonDict:
        """Return the JSON body of the Resend ``POST /emails`` call."""
        return {
            "from": self.from_identity,
            "to": list(self.to),
            "subject": self.subject,
            "html": self.html,
            "attachments": [
                {"filename": att.filename, "content": base64.b64encode(att.content).decode("ascii")}
                for att in self.attachments
            ],
            "tags": [{"name": name, "value": value} for name, value in self.tags.items()],
        }


class EmailProvider:
    """Submit emails to Resend and return the provider-assigned message id."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        send_callable: Optional[SendCallable] = None,
    ):
        """Initialise the provider client.

        Args:
            api_key: Resend API key sent as bearer token.
            api_url: Base URL of the API.
            timeout: Total timeout of one send in seconds.
            send_callable: Optional override receiving the JSON payload and
                returning the provider response, used by tests.
        """
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.send_callable = send_callable

    async def send(self, email: OutboundEmail) -> Optional[str]:
        """Send ``email`` and return the provider message id (may be ``None``).

        Raises:
            ProviderError: When the provider rejects the request or cannot be reached.
        """
        payload = email.to_payload()
        if self.send_callable is not None:
            data = await self.send_callable(payload)
            return (data or {}).get("id")
        if not self.api_key:
            raise ProviderError("Email provider API key is not configured")
        headers = {"Authorization": f"Bearer {self.api_key}"}
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.post(f"{self.api_url}/emails", json=payload, headers=headers) as resp:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None
                    if not isinstance(data, dict):
                        data = {}
                    if resp.status >= 400:
                        message = data.get("message") or f"HTTP {resp.status}"
                        raise ProviderError(message, status=resp.status)
        except aiohttp.ClientError as exc:
            raise ProviderError(f"Email provider unreachable: {exc}") from exc
        return data.get("id")
