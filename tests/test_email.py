import json

import httpx
import pytest

from mediatrack.errors import UpstreamError
from mediatrack.services.email import RESEND_URL, ResendEmailSender

pytestmark = pytest.mark.anyio


async def test_verification_email_posts_to_resend():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "email_123"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        sender = ResendEmailSender("re_test_key", "tracker@example.com", http=http)
        await sender.send_verification_email("alice@example.com", "abc123")

    assert len(seen) == 1
    request = seen[0]
    assert str(request.url) == RESEND_URL
    assert request.headers["Authorization"] == "Bearer re_test_key"
    body = json.loads(request.content)
    assert body["to"] == ["alice@example.com"]
    assert body["from"] == "tracker@example.com"
    assert body["subject"] == "Verify your email address"
    assert "/auth/verify?token=abc123" in body["html"]


async def test_rejected_send_raises_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "invalid from address"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        sender = ResendEmailSender("re_test_key", "bad", http=http)
        with pytest.raises(UpstreamError) as excinfo:
            await sender.send_password_reset_email("alice@example.com", "abc123")
    assert excinfo.value.upstream_status == 422
