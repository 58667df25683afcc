"""Transactional email through the Resend HTTP API."""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from ltgvault.core.config import settings
from ltgvault.core.errors import ServiceUnavailableError, UpstreamError
from ltgvault.core.metrics import upstream_errors_total


logger = logging.getLogger("ltgvault")

RESEND_URL = "https://api.resend.com/emails"
EMAIL_TIMEOUT_SECONDS = 10


def email_configured() -> bool:
    return bool(settings.RESEND_API_KEY)


def access_link(token: str, site_url: Optional[str] = None) -> str:
    base = (site_url or settings.SITE_URL).rstrip("/")
    return f"{base}/activate.html?token={quote(token, safe='')}"


def _access_link_html(link: str) -> str:
    return (
        "<p>Here is your LTG Vault access link. It expires in "
        f"{settings.ACCESS_TOKEN_TTL_HOURS} hours.</p>"
        f'<p><a href="{link}">Get my API key</a></p>'
        "<p>If you did not request this, you can ignore this email.</p>"
    )


async def send_email(to: str, subject: str, html: str) -> str:
    """Send one email. Returns the provider message id."""
    if not email_configured():
        raise ServiceUnavailableError("Email is not configured", code="EMAIL_NOT_CONFIGURED")

    try:
        async with httpx.AsyncClient(timeout=EMAIL_TIMEOUT_SECONDS) as client:
            response = await client.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                json={"from": settings.EMAIL_FROM, "to": [to], "subject": subject, "html": html},
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        upstream_errors_total.inc({"feature": "email", "kind": type(exc).__name__})
        logger.error("[email] send failed", extra={"error_code": type(exc).__name__})
        raise UpstreamError("Failed to send email. Please try again.") from None

    return response.json().get("id", "")


async def send_access_link(email: str, token: str) -> str:
    link = access_link(token)
    message_id = await send_email(email, "Your LTG Vault access link", _access_link_html(link))
    logger.info("[email] access link sent")
    return message_id
