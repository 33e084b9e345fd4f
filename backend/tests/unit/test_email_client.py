"""Tests for the Mailjet email client.

Mailjet is never called: an httpx MockTransport answers instead.
"""

import json

import httpx

from app.core.config import Settings
from app.core.email import EmailClient
from tests.conftest import TEST_AUTH_SECRET


def _client(handler, *, api_key: str = "k", api_secret: str = "s") -> EmailClient:
    return EmailClient(
        api_key=api_key,
        api_secret=api_secret,
        sender_email="noreply@example.com",
        sender_name="Academia",
        backend_url="https://api.example.com/",
        transport=httpx.MockTransport(handler),
    )


class TestVerificationUrl:
    def test_points_at_backend_verify_endpoint(self):
        client = _client(lambda _r: httpx.Response(200))
        assert client.verification_url("a.b.c") == (
            "https://api.example.com/api/v1/auth/verify-email?token=a.b.c"
        )


class TestSendVerificationEmail:
    """Tests for EmailClient.send_verification_email()."""

    async def test_posts_message_to_mailjet(
        self, email_client: EmailClient, sent_emails: list[httpx.Request]
    ):
        """One Mailjet v3.1 message with the link in both parts."""
        ok = await email_client.send_verification_email(
            to_email="ana@example.com", to_name="Ana", token="tok.en.x", ttl_hours=24
        )

        assert ok is True
        assert len(sent_emails) == 1
        request = sent_emails[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.mailjet.com/v3.1/send"
        assert request.headers["Authorization"].startswith("Basic ")

        message = json.loads(request.content)["Messages"][0]
        assert message["To"] == [{"Email": "ana@example.com", "Name": "Ana"}]
        assert message["From"]["Email"] == "noreply@example.com"
        assert "token=tok.en.x" in message["TextPart"]
        assert "token=tok.en.x" in message["HTMLPart"]
        assert "24 horas" in message["TextPart"]

    async def test_name_is_escaped_in_html(
        self, email_client: EmailClient, sent_emails: list[httpx.Request]
    ):
        await email_client.send_verification_email(
            to_email="x@example.com", to_name="<b>Eve</b>", token="t", ttl_hours=24
        )
        message = json.loads(sent_emails[0].content)["Messages"][0]
        assert "<b>Eve</b>" not in message["HTMLPart"]
        assert "&lt;b&gt;Eve&lt;/b&gt;" in message["HTMLPart"]

    async def test_http_error_returns_false(self):
        """A Mailjet error is reported, not raised."""
        client = _client(lambda _r: httpx.Response(500, json={"ErrorMessage": "boom"}))
        ok = await client.send_verification_email(
            to_email="x@example.com", to_name="X", token="t", ttl_hours=24
        )
        assert ok is False

    async def test_network_error_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        ok = await _client(handler).send_verification_email(
            to_email="x@example.com", to_name="X", token="t", ttl_hours=24
        )
        assert ok is False

    async def test_unconfigured_client_skips_send(self):
        """Missing credentials mean no request and a False result."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        client = _client(handler, api_key="", api_secret="")
        assert client.is_configured is False
        ok = await client.send_verification_email(
            to_email="x@example.com", to_name="X", token="t", ttl_hours=24
        )
        assert ok is False
        assert calls == []


class TestFromSettings:
    def test_reads_sender_and_credentials(self):
        s = Settings(
            auth_secret=TEST_AUTH_SECRET,
            email_from="hola@example.com",
            email_from_name="Hola",
            mailjet_api_key="key",
            mailjet_api_secret="secret",
            backend_url="https://api.example.com",
        )
        client = EmailClient.from_settings(s)
        assert client.sender_email == "hola@example.com"
        assert client.sender_name == "Hola"
        assert client.is_configured is True
