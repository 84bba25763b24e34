"""
Resend Integration
==================

Transactional email for published drops.
Logs instead of sending when no API key is configured.
"""

from typing import Optional

import httpx
import structlog
from pydantic import BaseModel

from mainstream.core.config import settings

logger = structlog.get_logger()

# Resend rejects batches with more than 50 recipients
MAX_RECIPIENTS_PER_EMAIL = 50


class EmailMessage(BaseModel):
    sender: str
    to: list[str]
    subject: str
    html: str


class ResendClient:
    """Client for the Resend email API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.api_url = api_url or settings.RESEND_API_URL
        self._client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

        if self.enabled:
            logger.info("resend_client_initialized", mode="live")
        else:
            logger.info("resend_client_initialized", mode="logging_only")

    @property
    def enabled(self) -> bool:
        """Check if Resend is configured"""
        return bool(self.api_key)

    async def send(self, message: EmailMessage) -> bool:
        """Send one email. Returns False on any delivery failure."""
        if not self.enabled:
            logger.info(
                "resend_email_logged",
                subject=message.subject,
                recipients=len(message.to),
                mode="disabled",
            )
            return False

        try:
            response = await self._client.post(
                f"{self.api_url}/emails",
                json={
                    "from": message.sender,
                    "to": message.to,
                    "subject": message.subject,
                    "html": message.html,
                },
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            logger.error("resend_error", error=str(e), subject=message.subject)
            return False

        if response.status_code >= 400:
            logger.warning(
                "resend_email_failed",
                subject=message.subject,
                status_code=response.status_code,
            )
            return False

        logger.info("resend_email_sent", subject=message.subject, recipients=len(message.to))
        return True

    async def send_bulk(self, sender: str, recipients: list[str], subject: str, html: str) -> bool:
        """Send the same email to many recipients in API-sized batches."""
        if not recipients:
            return False
        delivered = True
        for start in range(0, len(recipients), MAX_RECIPIENTS_PER_EMAIL):
            batch = recipients[start:start + MAX_RECIPIENTS_PER_EMAIL]
            message = EmailMessage(sender=sender, to=batch, subject=subject, html=html)
            delivered = await self.send(message) and delivered
        return delivered

    async def close(self) -> None:
        await self._client.aclose()
