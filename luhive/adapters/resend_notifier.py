"""Resend email adapter: implements NotificationPort over the Resend REST API."""

from __future__ import annotations

import logging

import httpx

from luhive.ports.notification_port import NotificationError

logger = logging.getLogger(__name__)

_RESEND_URL = "https://api.resend.com/emails"
_TIMEOUT_SECONDS = 10


class ResendNotifier:
    """Resend implementation of NotificationPort."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._transport = transport

    async def send_email(self, to: str, subject: str, text: str) -> None:
        if not self._api_key:
            raise NotificationError("RESEND_API_KEY is not configured")

        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS, transport=self._transport) as client:
                resp = await client.post(
                    _RESEND_URL,
                    json={"from": self._sender, "to": [to], "subject": subject, "text": text},
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Failed to send email: {exc}") from exc
        logger.info("Email sent: '%s'", subject)
