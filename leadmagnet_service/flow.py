"""Client-side confirmation flow for a lead-magnet landing page.

The flow walks through three steps::

    email -> confirmation -> success

Submitting an address enters ``confirmation`` and starts polling the
delivery status endpoint every ``poll_interval`` seconds. Polling stops on
the first ``delivered``/``bounced``/``failed`` status or after
``poll_timeout`` seconds, whichever comes first; hitting the ceiling leaves
``delivery_status`` unset. At most one poll task runs per flow: resending
or closing cancels the current one first.

Example::

    async with LeadCaptureFlow("https://docs.example.com", "guide-ab12") as flow:
        await flow.submit("user@example.com")
        ...
        await flow.confirm_receipt()
        assert flow.step == "success"
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from .logger import get_logger

STEP_EMAIL = "email"
STEP_CONFIRMATION = "confirmation"
STEP_SUCCESS = "success"

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_POLL_TIMEOUT = 120.0

GENERIC_ERROR = "Something went wrong. Please try again."


class LeadCaptureFlow:
    """State machine driving one landing page session.

    Attributes:
        step: Current step (``email``, ``confirmation`` or ``success``).
        email: Address the document was last sent to.
        email_send_id: Provider message id of the current send.
        delivery_status: ``None`` while waiting, ``"delivered"`` or ``"failed"``.
        error: Last user-facing error message, empty when none.
        loading: ``True`` while a submission is in flight.
    """

    def __init__(
        self,
        base_url: str,
        slug: str,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.slug = slug
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._session = session
        self._owns_session = session is None
        self._request_timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._poll_task: Optional[asyncio.Task] = None
        self.logger = get_logger("LeadCaptureFlow")

        self.step = STEP_EMAIL
        self.email = ""
        self.email_send_id: Optional[str] = None
        self.delivery_status: Optional[str] = None
        self.error = ""
        self.loading = False

    async def __aenter__(self) -> "LeadCaptureFlow":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ----------------------------------------------------------------- http
    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._request_timeout)
            self._owns_session = True
        return self._session

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        session = self._get_session()
        async with session.post(f"{self.base_url}{path}", json=payload) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def _submit_lead(self, email: str) -> Dict[str, Any]:
        try:
            result = await self._post(f"/d/{self.slug}/leads", {"email": email})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            self.logger.warning("Lead submission failed: %s", exc)
            return {"error": GENERIC_ERROR}
        if not isinstance(result, dict):
            return {"error": GENERIC_ERROR}
        return result

    async def fetch_status(self) -> Optional[str]:
        """Read the delivery status once; ``None`` on transport or decoding errors."""
        if not self.email_send_id:
            return None
        session = self._get_session()
        try:
            async with session.get(
                f"{self.base_url}/api/delivery-status", params={"emailId": self.email_send_id}
            ) as resp:
                if resp.status != 200:
                    return None
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            self.logger.debug("Status check for %s failed: %s", self.email_send_id, exc)
            return None
        if not isinstance(data, dict):
            return None
        return data.get("status")

    # -------------------------------------------------------------- actions
    async def submit(self, email: str) -> bool:
        """Submit ``email`` from the ``email`` step. Returns ``True`` on success."""
        self.error = ""
        self.loading = True
        try:
            result = await self._submit_lead(email)
        finally:
            self.loading = False
        if result.get("error"):
            self.error = result["error"]
            return False
        self.email = email
        self.email_send_id = result.get("emailSendId")
        self.step = STEP_CONFIRMATION
        self._start_polling()
        return True

    async def resend(self, new_email: Optional[str] = None) -> bool:
        """Send the document again, optionally to a corrected address."""
        self.error = ""
        target = new_email or self.email
        self.loading = True
        try:
            result = await self._submit_lead(target)
        finally:
            self.loading = False
        if result.get("error"):
            self.error = result["error"]
            return False
        await self.stop_polling()
        self.email = target
        self.email_send_id = result.get("emailSendId")
        self.delivery_status = None
        self._start_polling()
        return True

    async def confirm_receipt(self) -> bool:
        """Confirm receipt manually and move to ``success`` whatever polling says.

        Not offered once delivery is known to have failed: returns ``False``
        and leaves the flow in ``confirmation`` so the address can be fixed.
        """
        if self.delivery_status == "failed":
            return False
        await self.stop_polling()
        if self.email_send_id:
            try:
                await self._post("/api/delivery-status/confirm", {"emailId": self.email_send_id})
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                self.logger.warning("Could not confirm delivery of %s: %s", self.email_send_id, exc)
        self.step = STEP_SUCCESS
        return True

    # -------------------------------------------------------------- polling
    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _start_polling(self) -> None:
        if not self.email_send_id or self.step != STEP_CONFIRMATION:
            return
        if self.polling:
            self._poll_task.cancel()
        self._poll_task = asyncio.create_task(self._poll_loop(), name=f"delivery-poll-{self.email_send_id}")

    async def stop_polling(self) -> None:
        """Cancel the running poll task, if any, and wait for it to finish."""
        task = self._poll_task
        self._poll_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self) -> None:
        try:
            await asyncio.wait_for(self._poll_until_terminal(), timeout=self.poll_timeout)
        except asyncio.TimeoutError:
            self.logger.debug("Stopped polling %s without a final status", self.email_send_id)

    async def _poll_until_terminal(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            status = await self.fetch_status()
            if status == "delivered":
                self.delivery_status = "delivered"
                return
            if status in ("bounced", "failed"):
                self.delivery_status = "failed"
                return

    async def close(self) -> None:
        """Stop polling and release the HTTP session (leaving the page)."""
        await self.stop_polling()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
