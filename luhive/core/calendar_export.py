"""
Luhive Events: iCalendar export.

Builds a single-VEVENT .ics file for "add to calendar" links and
confirmation emails. Times are always written in UTC.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from icalendar import Alarm, vCalAddress
from icalendar import Calendar as iCalendar
from icalendar import Event as iEvent

from luhive.core.errors import CalendarExportError
from luhive.data.models import Event

logger = logging.getLogger(__name__)

DEFAULT_ORGANIZER_EMAIL = "events@luhive.com"
_PRODID = "-//Luhive//Events//EN"


def _to_utc(value: str | datetime) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(second=0, microsecond=0)


def generate_ics(
    title: str,
    start_time: str | datetime,
    end_time: str | datetime,
    organizer_name: str,
    description: str | None = None,
    location: str | None = None,
    url: str | None = None,
    organizer_email: str | None = None,
    uid: str | None = None,
) -> str:
    """Build an RFC 5545 calendar with one confirmed, busy VEVENT.

    A display alarm fires one hour before the start. Raises
    CalendarExportError carrying the underlying diagnostic when the
    inputs cannot be turned into a calendar.
    """
    try:
        start_dt = _to_utc(start_time)
        end_dt = _to_utc(end_time)

        cal = iCalendar()
        cal.add("prodid", _PRODID)
        cal.add("version", "2.0")
        cal.add("calscale", "GREGORIAN")

        event = iEvent()
        event.add("uid", uid or str(uuid.uuid4()))
        event.add("dtstamp", datetime.now(timezone.utc).replace(microsecond=0))
        event.add("summary", title)
        event.add("description", description or f"Event: {title}")
        event.add("dtstart", start_dt)
        event.add("dtend", end_dt)
        if location:
            event.add("location", location)
        if url:
            event.add("url", url)
        event.add("status", "CONFIRMED")
        event.add("transp", "OPAQUE")
        event.add("x-microsoft-cdo-busystatus", "BUSY")

        organizer = vCalAddress(f"mailto:{organizer_email or DEFAULT_ORGANIZER_EMAIL}")
        organizer.params["CN"] = organizer_name
        event.add("organizer", organizer)

        alarm = Alarm()
        alarm.add("action", "DISPLAY")
        alarm.add("description", "Event reminder")
        alarm.add("trigger", timedelta(hours=-1))
        event.add_component(alarm)

        cal.add_component(event)
        return cal.to_ical().decode("utf-8")
    except (ValueError, TypeError, AttributeError) as exc:
        logger.error("Error creating ICS file: %s", exc)
        raise CalendarExportError(f"Failed to create calendar event: {exc}") from exc


def event_to_ics(event: Event, organizer_name: str, url: str | None = None) -> str:
    """Calendar file for a stored event; a missing end time means a zero-length event."""
    location = event.location_address or event.online_meeting_link
    return generate_ics(
        title=event.title,
        start_time=event.start_time,
        end_time=event.end_time or event.start_time,
        organizer_name=organizer_name,
        description=event.description,
        location=location,
        url=url,
        uid=f"{event.id}@luhive.com",
    )
