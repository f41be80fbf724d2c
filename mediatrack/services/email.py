from __future__ import annotations
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..errors import UpstreamError
from ..logging import get_logger

RESEND_URL = "https://api.resend.com/emails"

logger = get_logger(__name__)

_BUTTON_STYLE = (
    "background-color: #000; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; display: inline-block;"
)


def _render(heading: str, intro: str, url: str, label: str, footer: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>{heading}</h2>"
        f"<p>{intro}</p>"
        f'<a href="{url}" style="{_BUTTON_STYLE}">{label}</a>'
        f"{footer}"
        "</div>"
    )


def verification_url(token: str) -> str:
    return f"{settings.app_url}/auth/verify?token={token}"


def reset_url(token: str) -> str:
    return f"{settings.app_url}/auth/reset-password?token={token}"


class EmailSender:
    """Builds account emails; subclasses decide how they are delivered."""

    async def deliver(self, to: str, subject: str, html: str) -> None:
        raise NotImplementedError

    async def send_verification_email(self, email: str, token: str) -> None:
        html = _render(
            "Email Verification",
            "Please click the button below to verify your email address:",
            verification_url(token),
            "Verify Email",
            "<p>If you didn't create an account, you can safely ignore this email.</p>",
        )
        await self.deliver(email, "Verify your email address", html)

    async def send_password_reset_email(self, email: str, token: str) -> None:
        html = _render(
            "Password Reset",
            "Please click the button below to reset your password:",
            reset_url(token),
            "Reset Password",
            "<p>If you didn't request a password reset, you can safely ignore this email.</p>"
            f"<p>This link will expire in {settings.reset_token_ttl_minutes} minutes.</p>",
        )
        await self.deliver(email, "Reset your password", html)


class ResendEmailSender(EmailSender):
    def __init__(self, api_key: str, sender: str, http: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.sender = sender
        self._http = http

    async def _post(self, client: httpx.AsyncClient, body: Dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}
        return await client.post(RESEND_URL, json=body, headers=headers)

    async def deliver(self, to: str, subject: str, html: str) -> None:
        body: Dict[str, Any] = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        try:
            if self._http is not None:
                resp = await self._post(self._http, body)
            else:
                async with httpx.AsyncClient(timeout=15) as client:
                    resp = await self._post(client, body)
        except httpx.HTTPError as exc:
            logger.error("email_send_failed", subject=subject, error=str(exc))
            raise UpstreamError("Failed to send email") from exc
        if not resp.is_success:
            logger.error("email_send_failed", subject=subject, status=resp.status_code)
            raise UpstreamError("Failed to send email", upstream_status=resp.status_code)
        logger.info("email_sent", subject=subject)


class LogEmailSender(EmailSender):
    """Development sender: writes the email to the log instead of sending it."""

    async def deliver(self, to: str, subject: str, html: str) -> None:
        logger.info("email_not_sent", to=to, subject=subject, body=html)


def get_email_sender() -> EmailSender:
    if settings.resend_api_key:
        return ResendEmailSender(settings.resend_api_key, settings.email_from)
    return LogEmailSender()
