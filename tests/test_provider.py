import base64

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from leadmagnet_service.errors import ProviderError
from leadmagnet_service.provider import Attachment, EmailProvider, OutboundEmail


def _email():
    return OutboundEmail(
        from_identity="HTD Solutions <info@htd.solutions>",
        to=["user@example.com"],
        subject="Your free resource: The Guide",
        html="<p>hi</p>",
        attachments=[Attachment(filename="guide.pdf", content=b"\x00pdf")],
        tags={"type": "lead_magnet", "document_slug": "guide-ab12"},
    )


def test_payload_shape():
    payload = _email().to_payload()
    assert payload["from"] == "HTD Solutions <info@htd.solutions>"
    assert payload["attachments"][0]["content"] == base64.b64encode(b"\x00pdf").decode()
    assert {"name": "document_slug", "value": "guide-ab12"} in payload["tags"]


@pytest.mark.asyncio
async def test_send_callable_returns_provider_id():
    seen = []

    async def fake_send(payload):
        seen.append(payload)
        return {"id": "msg_42"}

    provider = EmailProvider(send_callable=fake_send)
    assert await provider.send(_email()) == "msg_42"
    assert seen[0]["to"] == ["user@example.com"]


@pytest.mark.asyncio
async def test_missing_id_is_none():
    async def fake_send(payload):
        return {}

    assert await EmailProvider(send_callable=fake_send).send(_email()) is None


@pytest.mark.asyncio
async def test_send_without_api_key_fails():
    with pytest.raises(ProviderError):
        await EmailProvider().send(_email())


class ResendStub:
    def __init__(self):
        self.requests = []
        self.status = 200
        self.body = '{"id": "msg_9"}'

    async def emails(self, request):
        self.requests.append((request.headers.get("Authorization"), await request.json()))
        return web.Response(text=self.body, status=self.status, content_type="application/json")


@pytest_asyncio.fixture
async def resend_api():
    stub = ResendStub()
    app = web.Application()
    app.router.add_post("/emails", stub.emails)
    server = TestServer(app)
    await server.start_server()
    stub.url = str(server.make_url("/"))
    try:
        yield stub
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_http_send_returns_id(resend_api):
    provider = EmailProvider(api_key="re_test", api_url=resend_api.url)

    assert await provider.send(_email()) == "msg_9"
    [(authorization, payload)] = resend_api.requests
    assert authorization == "Bearer re_test"
    assert payload["subject"] == "Your free resource: The Guide"
    assert payload["tags"][0] == {"name": "type", "value": "lead_magnet"}


@pytest.mark.asyncio
async def test_http_rejection_carries_status_and_message(resend_api):
    resend_api.status = 422
    resend_api.body = '{"statusCode": 422, "message": "Invalid `to` field"}'
    provider = EmailProvider(api_key="re_test", api_url=resend_api.url)

    with pytest.raises(ProviderError) as excinfo:
        await provider.send(_email())
    assert excinfo.value.status == 422
    assert str(excinfo.value) == "Invalid `to` field"


@pytest.mark.asyncio
async def test_http_error_without_json_body(resend_api):
    resend_api.status = 502
    resend_api.body = "Bad Gateway"
    provider = EmailProvider(api_key="re_test", api_url=resend_api.url)

    with pytest.raises(ProviderError) as excinfo:
        await provider.send(_email())
    assert excinfo.value.status == 502
    assert str(excinfo.value) == "HTTP 502"


@pytest.mark.asyncio
async def test_unreachable_provider_is_wrapped():
    app = web.Application()
    server = TestServer(app)
    await server.start_server()
    url = str(server.make_url("/"))
    await server.close()

    provider = EmailProvider(api_key="re_test", api_url=url, timeout=5)
    with pytest.raises(ProviderError, match="unreachable"):
        await provider.send(_email())
