"""
Luhive Events: Transactional email content.

Plain-text bodies for the registration workflow. Delivery is the
NotificationPort's job; these functions only build subject and text.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from luhive.data.models import ApprovalStatus, Event


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str


def format_event_when(event: Event) -> str:
    """Start time in the event's timezone, e.g. Tuesday, March 4, 2025 at 6:30 PM +04."""
    start = datetime.fromisoformat(event.start_time.replace("Z", "+00:00"))
    try:
        start = start.astimezone(ZoneInfo(event.timezone or "UTC"))
    except ZoneInfoNotFoundError:
        pass
    hour = start.strftime("%I").lstrip("0") or "12"
    return (
        f"{start.strftime('%A, %B')} {start.day}, {start.year} "
        f"at {hour}:{start.strftime('%M %p %Z')}"
    )


def _where(event: Event) -> str:
    lines = []
    if event.location_address:
        lines.append(f"Location: {event.location_address}")
    if event.online_meeting_link:
        lines.append(f"Online: {event.online_meeting_link}")
    return "\n".join(lines)


def verification_email(event: Event, to: str, name: str, verification_link: str) -> EmailMessage:
    text = (
        f"Hi {name},\n\n"
        f"Please confirm your registration for {event.title} by opening the link below:\n\n"
        f"{verification_link}\n\n"
        "This link expires in 24 hours. If you did not register, you can ignore this email."
    )
    return EmailMessage(to, f"Verify your registration for {event.title}", text)


def confirmation_email(event: Event, to: str, name: str, event_link: str) -> EmailMessage:
    parts = [
        f"Hi {name},",
        f"You're registered for {event.title}.",
        f"When: {format_event_when(event)}",
        _where(event),
        f"Event page: {event_link}",
    ]
    return EmailMessage(
        to, f"You're registered for {event.title}!", "\n\n".join(p for p in parts if p)
    )


def request_received_email(event: Event, to: str, name: str, event_link: str) -> EmailMessage:
    text = (
        f"Hi {name},\n\n"
        f"We received your registration request for {event.title}. "
        "The organizers will review it and you'll get an email once it's decided.\n\n"
        f"Event page: {event_link}"
    )
    return EmailMessage(to, f"Registration request received for {event.title}", text)


def subscription_email(event: Event, to: str, name: str, event_link: str) -> EmailMessage:
    parts = [
        f"Hi {name},",
        f"You'll receive updates about {event.title}.",
        f"Register on the organizer's page: {event.external_registration_url}"
        if event.external_registration_url else "",
        f"Event page: {event_link}",
    ]
    return EmailMessage(
        to, f"Subscribed to updates for {event.title}", "\n\n".join(p for p in parts if p)
    )


def status_update_email(
    event: Event, to: str, name: str, status: ApprovalStatus, event_link: str
) -> EmailMessage:
    if status is ApprovalStatus.APPROVED:
        subject = f"Your registration for {event.title} was approved"
        body = (
            f"Good news! Your registration for {event.title} has been approved.\n\n"
            f"When: {format_event_when(event)}"
        )
        where = _where(event)
        if where:
            body += f"\n{where}"
    else:
        subject = f"Update on your registration for {event.title}"
        body = f"Unfortunately your registration for {event.title} was not approved."
    return EmailMessage(to, subject, f"Hi {name},\n\n{body}\n\nEvent page: {event_link}")
