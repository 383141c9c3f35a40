"""Email delivery service using Resend API."""

import logging
from typing import Any

import httpx

from homehub.core.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

# Microsoft consumer domains reject more aggressively; log them for triage
MICROSOFT_DOMAINS = {"hotmail.com", "outlook.com", "live.com"}


class EmailService:
    """Sends rendered HTML emails via the Resend API."""

    def __init__(self, timeout: float = 15.0) -> None:
        self.timeout = timeout

    async def send(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        *,
        source: str = "client",
    ) -> str | None:
        """Send one email.

        Returns the Resend email ID on success, None on failure.
        """
        domain = to_email.rsplit("@", 1)[-1].lower() if "@" in to_email else ""
        logger.info(
            "Sending email: to=%s domain=%s source=%s length=%d",
            to_email,
            domain,
            source,
            len(html_content),
        )
        if domain in MICROSOFT_DOMAINS:
            logger.info("Recipient uses a Microsoft mail provider (%s)", domain)

        if not settings.resend_api_key:
            logger.warning("Resend API key not configured, email not sent to %s", to_email)
            return None

        payload: dict[str, Any] = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {settings.resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                if response.is_success:
                    data = response.json()
                    email_id = data.get("id")
                    logger.info("Email sent: to=%s id=%s", to_email, email_id)
                    return str(email_id) if email_id else None
                else:
                    logger.error(
                        "Failed to send email: to=%s status=%s body=%s",
                        to_email,
                        response.status_code,
                        response.text[:500],
                    )
                    return None
        except Exception:
            logger.exception("Error sending email to %s", to_email)
            return None
