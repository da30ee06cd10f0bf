"""Notification port: abstract interface for sending emails to registrants.

Core modules depend on this protocol, never on a specific email provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationError(Exception):
    """Raised when a notification could not be delivered."""


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def send_email(self, to: str, subject: str, text: str) -> None: ...
