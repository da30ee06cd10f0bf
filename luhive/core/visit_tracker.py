"""
Luhive Events: Community visit tracking.

Records one community_visits row per browser session per community, at
most once every five minutes. The dedup state lives in cookies on the
visitor's browser; nothing is kept server-side. Tracking is best-effort and
never fails the page it was triggered from.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Mapping

from user_agents import parse as parse_user_agent

from luhive.core.errors import ClientContextError
from luhive.ports.store_port import BackendError, VisitStore

logger = logging.getLogger(__name__)

SESSION_COOKIE = "community_session_id"
LAST_VISIT_COOKIE_PREFIX = "community_last_visit_"
TRACKING_WINDOW = timedelta(minutes=5)

# Checked in order, before x-forwarded-for.
_IP_HEADERS = ("x-nf-client-connection-ip", "cf-connecting-ip", "x-real-ip")
_GEO_HEADERS = {"country": "x-country", "city": "x-city", "region": "x-region", "timezone": "x-timezone"}


def new_session_id() -> str:
    return str(uuid.uuid4())


def last_visit_cookie(community_id: str) -> str:
    return f"{LAST_VISIT_COOKIE_PREFIX}{community_id}"


def should_track_visit(last_visit: str | None, now: datetime | None = None) -> bool:
    """True on the first visit, or once the tracking window has elapsed."""
    if not last_visit:
        return True
    now = now or datetime.now(timezone.utc)
    try:
        previous = datetime.fromtimestamp(int(last_visit), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return True
    return now - previous >= TRACKING_WINDOW


def client_ip(headers: Mapping[str, str], peer: str | None = None) -> str | None:
    """Visitor address as reported by the edge in front of us; ``peer`` is the last resort."""
    for name in _IP_HEADERS:
        if headers.get(name):
            return headers[name].strip()
    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    return forwarded or peer


def _known(family: str | None) -> str | None:
    return family if family and family != "Other" else None


def _device_type(ua) -> str | None:
    if ua.is_tablet:
        return "tablet"
    if ua.is_mobile:
        return "mobile"
    if ua.is_bot:
        return "bot"
    return None


def prepare_visit_metadata(headers: Mapping[str, str], peer: str | None, is_first_visit: bool) -> dict:
    """Analytics payload stored in community_visits.metadata.

    Geo fields come from edge headers and are None when the edge sets none.
    """
    user_agent = headers.get("user-agent") or ""
    ua = parse_user_agent(user_agent)
    metadata = {
        "browser": _known(ua.browser.family),
        "browser_version": ua.browser.version_string or None,
        "os": _known(ua.os.family),
        "device_type": _device_type(ua),
        "is_mobile": ua.is_mobile or ua.is_tablet,
        "user_agent": user_agent or None,
        "ip": client_ip(headers, peer),
        "is_first_visit": is_first_visit,
    }
    for key, header in _GEO_HEADERS.items():
        metadata[key] = headers.get(header) or None
    return metadata


async def track_visit(
    store: VisitStore | None,
    community_id: str,
    session_id: str,
    user_id: str | None,
    metadata: dict,
) -> bool:
    """Insert a visit row. Returns False (and logs) instead of raising."""
    if store is None:
        return False
    try:
        await store.record_visit(community_id, session_id, user_id, metadata)
    except (BackendError, ClientContextError) as exc:
        logger.warning("Visit tracking failed for community %s: %s", community_id, exc)
        return False
    return True
