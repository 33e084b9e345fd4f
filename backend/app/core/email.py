"""Email sending via the Mailjet send API (v3.1).

One EmailClient is constructed at application startup and handed to the
endpoints through FastAPI dependencies. Delivery is best-effort: failures
are logged and reported as False, never raised, so a mail outage cannot
roll back token issuance.
"""

import logging
from html import escape
from urllib.parse import quote, urlencode

import httpx

from app.core.config import Settings

logger = logging.getLogger(__name__)

_MAILJET_SEND_URL = "https://api.mailjet.com/v3.1/send"
_MAILJET_TIMEOUT = 10.0


class EmailClient:
    """Mailjet-backed transactional email sender.

    Args:
        api_key: Mailjet public API key.
        api_secret: Mailjet private API key.
        sender_email: From address.
        sender_name: From display name.
        backend_url: Base URL used to build verification links.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        sender_email: str,
        sender_name: str,
        backend_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_secret = api_secret
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.backend_url = backend_url.rstrip("/")
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailClient":
        """Build the client from environment configuration."""
        return cls(
            api_key=settings.mailjet_api_key.get_secret_value(),
            api_secret=settings.mailjet_api_secret.get_secret_value(),
            sender_email=settings.email_from,
            sender_name=settings.email_from_name,
            backend_url=settings.backend_url,
        )

    @property
    def is_configured(self) -> bool:
        """Whether Mailjet credentials are present."""
        return bool(self._api_key and self._api_secret)

    def verification_url(self, token: str) -> str:
        """Link that hits the verify-email endpoint directly."""
        params = urlencode({"token": token}, quote_via=quote)
        return f"{self.backend_url}/api/v1/auth/verify-email?{params}"

    async def send_verification_email(
        self, *, to_email: str, to_name: str, token: str, ttl_hours: int
    ) -> bool:
        """Send the account verification email.

        Args:
            to_email: Recipient email address.
            to_name: Recipient display name.
            token: Signed email-verification token.
            ttl_hours: Link lifetime, quoted in the message body.

        Returns:
            True if Mailjet accepted the message, False otherwise.
        """
        url = self.verification_url(token)
        text = (
            f"Hola {to_name},\n\n"
            "Gracias por registrarte en Academia Ohara. "
            f"Verifica tu correo aquí:\n\n{url}\n\n"
            f"Este enlace expirará en {ttl_hours} horas.\n\n"
            "Si no te registraste en Academia Ohara, ignora este correo."
        )
        html = (
            f"<h3>Hola {escape(to_name)}</h3>"
            "<p>Verifica tu cuenta haciendo clic en el enlace:</p>"
            f'<p><a href="{escape(url, quote=True)}">Verificar mi correo</a></p>'
            f"<p>Este enlace expirará en {ttl_hours} horas.</p>"
        )
        return await self._send(
            to_email=to_email,
            to_name=to_name,
            subject="Verifica tu cuenta - Academia Ohara",
            text=text,
            html=html,
        )

    async def _send(
        self, *, to_email: str, to_name: str, subject: str, text: str, html: str
    ) -> bool:
        if not self.is_configured:
            logger.warning("Email not sent: Mailjet credentials are not configured")
            return False

        message = {
            "From": {"Email": self.sender_email, "Name": self.sender_name},
            "To": [{"Email": to_email, "Name": to_name}],
            "Subject": subject,
            "TextPart": text,
            "HTMLPart": html,
        }
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    _MAILJET_SEND_URL,
                    auth=(self._api_key, self._api_secret),
                    json={"Messages": [message]},
                    timeout=_MAILJET_TIMEOUT,
                )
                resp.raise_for_status()
        except Exception:
            logger.warning("Failed to send email via Mailjet", exc_info=True)
            return False
        return True
