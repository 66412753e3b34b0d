"""Email sending helpers."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

BREVO_ENDPOINT = "https://api.brevo.com/v3/smtp/email"


@dataclass(slots=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    to_name: str | None = None


class EmailProvider:
    def __init__(self, *, session: httpx.AsyncClient | None = None) -> None:
        self.provider = os.environ.get("ESP_PROVIDER", "log")
        self.brevo_api_key = os.environ.get("BREVO_API_KEY")
        self.sender_email = os.environ.get("EMAIL_FROM", "noreply@moviereleasetracker.com")
        self.sender_name = os.environ.get("EMAIL_FROM_NAME", "Movie Release Tracker")
        self._session = session

    async def send(self, message: EmailMessage) -> None:
        if self.provider == "brevo":
            if not self.brevo_api_key:
                raise EnvironmentError("BREVO_API_KEY is required when ESP_PROVIDER=brevo")
            await self._send_brevo(message)
        else:
            logger.info("Email (log) → %s: %s", message.to, message.subject)

    async def _send_brevo(self, message: EmailMessage) -> None:
        recipient = {"email": message.to}
        if message.to_name:
            recipient["name"] = message.to_name
        payload = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [recipient],
            "subject": message.subject,
            "htmlContent": message.html,
        }
        headers = {"api-key": self.brevo_api_key, "accept": "application/json"}
        if self._session is not None:
            response = await self._session.post(BREVO_ENDPOINT, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(BREVO_ENDPOINT, json=payload, headers=headers)
        response.raise_for_status()
        logger.info("Sent email to %s: %s", message.to, message.subject)
