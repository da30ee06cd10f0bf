"""Event endpoints: detail, countdown, calendar export and registration.

Mounted under /api/events. Organizer-only endpoints (attenders table,
approval, deletion) check community membership in the service layer.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse, StreamingResponse
from pydantic import BaseModel
from starlette.status import HTTP_201_CREATED, HTTP_302_FOUND

from luhive.api.cache import no_cache_headers, private_cache_headers, public_cache_headers
from luhive.api.dependencies import (
    Session,
    get_event_store,
    get_registration_service,
    get_service_registration_service,
    get_session,
    get_visit_store,
)
from luhive.config import settings
from luhive.core import visit_tracker
from luhive.core.calendar_export import event_to_ics
from luhive.core.countdown import RegistrationCountdown, get_time_remaining
from luhive.core.errors import ExternalProviderError, NotFound
from luhive.core.registration_service import RegistrationService
from luhive.data.models import ApprovalStatus, Event
from luhive.ports.store_port import BackendError, EventStore, VisitStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    custom_answers: dict | None = None


class SubscribeRequest(BaseModel):
    name: str | None = None
    email: str | None = None


class StatusUpdateRequest(BaseModel):
    status: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _load_event(events: EventStore, event_id: str) -> Event:
    try:
        event = await events.get_event(event_id)
    except BackendError as exc:
        logger.error("Failed to load event %s: %s", event_id, exc.message)
        raise ExternalProviderError("Failed to load event") from exc
    if event is None:
        raise NotFound("Event not found")
    return event


def _event_link(event_id: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/events/{event_id}"


async def _record_visit(
    request: Request,
    response: Response,
    visits: VisitStore | None,
    event: Event,
    user_id: str | None,
) -> bool:
    """Track the visit; True when visitor cookies were set on ``response``."""
    cookie_name = visit_tracker.last_visit_cookie(event.community_id)
    if not visit_tracker.should_track_visit(request.cookies.get(cookie_name)):
        return False

    session_id = request.cookies.get(visit_tracker.SESSION_COOKIE)
    is_first_visit = session_id is None
    if session_id is None:
        session_id = visit_tracker.new_session_id()
        response.set_cookie(visit_tracker.SESSION_COOKIE, session_id, max_age=60 * 60 * 24 * 365, samesite="lax")

    metadata = visit_tracker.prepare_visit_metadata(
        request.headers,
        request.client.host if request.client else None,
        is_first_visit,
    )
    if await visit_tracker.track_visit(visits, event.community_id, session_id, user_id, metadata):
        now = int(datetime.now(timezone.utc).timestamp())
        response.set_cookie(cookie_name, str(now), max_age=60 * 60 * 24, samesite="lax")
        return True
    return is_first_visit


# ---------------------------------------------------------------------------
# Event page
# ---------------------------------------------------------------------------


@router.get("/{event_id}", summary="Event detail with registration countdown")
async def event_detail(
    event_id: str,
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
    events: EventStore = Depends(get_event_store),
    visits: VisitStore | None = Depends(get_visit_store),
) -> dict:
    event = await _load_event(events, event_id)
    remaining = get_time_remaining(event.registration_deadline, event.timezone)

    sets_cookie = await _record_visit(request, response, visits, event, session.user.id if session.user else None)

    # Anything carrying Set-Cookie stays out of shared caches.
    shared = session.user is None and not sets_cookie and not session.cookies
    response.headers.update(public_cache_headers(private=not shared))
    body = asdict(event)
    body["timeRemaining"] = asdict(remaining) if remaining else None
    body["registrationOpen"] = event.registration_deadline is None or remaining is not None
    return body


@router.get("/{event_id}/countdown", summary="Registration countdown stream (SSE)")
async def countdown_stream(
    event_id: str,
    session: Session = Depends(get_session),
    events: EventStore = Depends(get_event_store),
) -> StreamingResponse:
    event = await _load_event(events, event_id)

    async def stream():
        updates: asyncio.Queue = asyncio.Queue()
        async with RegistrationCountdown(
            on_update=updates.put_nowait,
            interval=settings.COUNTDOWN_INTERVAL_SECONDS,
        ) as countdown:
            countdown.start(event.registration_deadline, event.timezone)
            while True:
                remaining = await updates.get()
                payload = asdict(remaining) if remaining else None
                yield f"event: countdown\ndata: {json.dumps(payload)}\n\n"
                if remaining is None:
                    return

    return session.apply_cookies(
        StreamingResponse(stream(), media_type="text/event-stream", headers=no_cache_headers())
    )


@router.get("/{event_id}/calendar.ics", summary="Download the event as iCalendar")
async def calendar_file(
    event_id: str,
    session: Session = Depends(get_session),
    events: EventStore = Depends(get_event_store),
) -> Response:
    event = await _load_event(events, event_id)
    ics = event_to_ics(event, organizer_name="Luhive", url=_event_link(event_id))
    return session.apply_cookies(Response(
        content=ics,
        media_type="text/calendar; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="event-{event_id}.ics"',
            **public_cache_headers(private=bool(session.cookies)),
        },
    ))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/{event_id}/register", status_code=HTTP_201_CREATED, summary="Register for an event")
async def register(
    event_id: str,
    body: RegisterRequest,
    session: Session = Depends(get_session),
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    if session.user is None:
        registration = await service.register_anonymous(event_id, body.name, body.email, body.custom_answers)
        return {
            "success": True,
            "registrationId": registration.id,
            "verificationRequired": True,
            "message": "Check your email to confirm your registration",
        }

    registration = await service.register_user(event_id, session.user, body.custom_answers, body.name)
    pending = registration.approval_status == ApprovalStatus.PENDING.value
    return {
        "success": True,
        "registrationId": registration.id,
        "verificationRequired": False,
        "approvalStatus": registration.approval_status,
        "message": (
            "Registration request sent! Waiting for approval."
            if pending else "Successfully registered for this event!"
        ),
    }


@router.post("/{event_id}/subscribe", status_code=HTTP_201_CREATED, summary="Subscribe to an external event")
async def subscribe(
    event_id: str,
    body: SubscribeRequest,
    session: Session = Depends(get_session),
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    registration = await service.subscribe(event_id, body.name, body.email, user=session.user)
    return {
        "success": True,
        "registrationId": registration.id,
        "message": "Successfully subscribed for event updates!",
    }


@router.delete("/{event_id}/registration", summary="Cancel your own registration")
async def unregister(
    event_id: str,
    session: Session = Depends(get_session),
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    message = await service.unregister(event_id, session.user)
    return {"success": True, "message": message}


@router.get("/{event_id}/verify", summary="Confirm an email registration")
async def verify(
    event_id: str,
    token: str | None = None,
    service: RegistrationService = Depends(get_service_registration_service),
) -> RedirectResponse:
    outcome = await service.verify_registration(event_id, token)
    return RedirectResponse(f"{_event_link(event_id)}?verified={outcome}", status_code=HTTP_302_FOUND)


@router.get("/{event_id}/attendees", summary="Public attendee list")
async def attendees(
    event_id: str,
    response: Response,
    service: RegistrationService = Depends(get_service_registration_service),
) -> dict:
    result = await service.list_public_attendees(event_id)
    response.headers.update(public_cache_headers())
    return {"attendees": result}


# ---------------------------------------------------------------------------
# Organizer
# ---------------------------------------------------------------------------


@router.get("/{event_id}/attenders", summary="Attenders table for organizers")
async def attenders(
    event_id: str,
    response: Response,
    session: Session = Depends(get_session),
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    result = await service.list_attenders(event_id, session.user)
    response.headers.update(private_cache_headers())
    return {"attenders": [a.model_dump(mode="json") for a in result], "total": len(result)}


@router.post("/{event_id}/registrations/{registration_id}/status", summary="Approve or reject a registration")
async def update_status(
    event_id: str,
    registration_id: str,
    body: StatusUpdateRequest,
    session: Session = Depends(get_session),
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    status = await service.update_approval_status(event_id, registration_id, body.status, session.user)
    return {"success": True, "status": status.value}


@router.delete("/{event_id}/registrations/{registration_id}", summary="Delete a registration")
async def delete_registration(
    event_id: str,
    registration_id: str,
    session: Session = Depends(get_session),
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    await service.delete_registration(event_id, registration_id, session.user)
    return {"success": True, "message": "Registration deleted successfully"}
