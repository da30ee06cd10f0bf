"""FastAPI dependency providers.

Request-scoped:
    get_session        SupabaseClient for the caller's cookies, closed after
                       the request; refreshes an expired access token and
                       queues the new cookies for the response.
    get_current_user   AuthUser or None.
    get_registration_service / get_integration / get_event_store

Process-scoped (lru_cache singletons):
    get_notifier, get_visit_store, get_user_directory,
    get_service_registration_service

Testing:
    Override with app.dependency_overrides, and call reset_dependencies()
    between tests that touch the cached providers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import AsyncIterator

from fastapi import Depends, Request, Response

from luhive.adapters.resend_notifier import ResendNotifier
from luhive.adapters.supabase_client import SupabaseClient, get_service_client, reset_service_client
from luhive.adapters.supabase_store import (
    SupabaseEventStore,
    SupabaseRegistrationStore,
    SupabaseTokenStore,
    SupabaseUserDirectory,
    SupabaseVisitStore,
)
from luhive.config import settings
from luhive.core.errors import ClientContextError, ExternalProviderError
from luhive.core.integration_service import GoogleFormsIntegration
from luhive.core.registration_service import RegistrationService
from luhive.data.models import AuthUser
from luhive.ports.store_port import BackendError

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "sb-access-token"
REFRESH_COOKIE = "sb-refresh-token"
_REFRESH_MAX_AGE = 60 * 60 * 24 * 30


@dataclass
class Session:
    client: SupabaseClient
    user: AuthUser | None = None
    cookies: list[dict] = field(default_factory=list)

    def apply_cookies(self, response: Response) -> Response:
        """Copy queued Set-Cookie values onto a response the route built itself."""
        for cookie in self.cookies:
            response.set_cookie(**cookie)
        return response


def _cookie(key: str, value: str, max_age: int) -> dict:
    return {
        "key": key,
        "value": value,
        "max_age": max_age,
        "path": "/",
        "httponly": True,
        "samesite": "lax",
        "secure": settings.PUBLIC_BASE_URL.startswith("https://"),
    }


async def resolve_user(client: SupabaseClient, refresh_token: str | None) -> tuple[AuthUser | None, list[dict]]:
    """Resolve the session user, refreshing once when the access token is rejected."""
    try:
        user = await client.get_user()
        if user is not None or not refresh_token:
            return user, []

        try:
            session = await client.refresh_session(refresh_token)
        except BackendError as exc:
            logger.info("Session refresh rejected: %s", exc.message)
            return None, []

        user = await client.get_user()
    except BackendError as exc:
        logger.error("Auth server error: %s", exc.message)
        raise ExternalProviderError("Authentication service unavailable") from exc

    cookies = []
    if session.get("access_token"):
        cookies.append(_cookie(ACCESS_COOKIE, session["access_token"], int(session.get("expires_in") or 3600)))
    if session.get("refresh_token"):
        cookies.append(_cookie(REFRESH_COOKIE, session["refresh_token"], _REFRESH_MAX_AGE))
    if user is not None:
        logger.debug("Session refreshed for user %s", user.id)
    return user, cookies


async def get_session(request: Request, response: Response) -> AsyncIterator[Session]:
    client = SupabaseClient.for_session(request.cookies.get(ACCESS_COOKIE))
    try:
        user, cookies = await resolve_user(client, request.cookies.get(REFRESH_COOKIE))
        session = Session(client=client, user=user, cookies=cookies)
        session.apply_cookies(response)
        request.state.session_cookies = cookies
        yield session
    finally:
        await client.aclose()


async def get_current_user(session: Session = Depends(get_session)) -> AuthUser | None:
    return session.user


# ---------------------------------------------------------------------------
# Process-scoped
# ---------------------------------------------------------------------------


@lru_cache
def get_notifier() -> ResendNotifier:
    return ResendNotifier(settings.RESEND_API_KEY, settings.EMAIL_FROM)


@lru_cache
def get_visit_store() -> SupabaseVisitStore | None:
    try:
        return SupabaseVisitStore(get_service_client())
    except ClientContextError as exc:
        logger.warning("Visit tracking disabled: %s", exc)
        return None


@lru_cache
def get_user_directory() -> SupabaseUserDirectory | None:
    try:
        return SupabaseUserDirectory(get_service_client())
    except ClientContextError as exc:
        logger.warning("Attender account emails disabled: %s", exc)
        return None


@lru_cache
def get_service_registration_service() -> RegistrationService:
    """Registration service on the service-role client.

    Used where the caller usually has no session (email verification,
    public attendee list).
    """
    client = get_service_client()
    return RegistrationService(
        SupabaseEventStore(client),
        SupabaseRegistrationStore(client),
        get_notifier(),
        get_user_directory(),
    )


def reset_dependencies() -> None:
    get_notifier.cache_clear()
    get_visit_store.cache_clear()
    get_user_directory.cache_clear()
    get_service_registration_service.cache_clear()
    reset_service_client()


# ---------------------------------------------------------------------------
# Request-scoped services
# ---------------------------------------------------------------------------


def get_event_store(session: Session = Depends(get_session)) -> SupabaseEventStore:
    return SupabaseEventStore(session.client)


def get_registration_service(
    session: Session = Depends(get_session),
    notifier: ResendNotifier = Depends(get_notifier),
    users: SupabaseUserDirectory | None = Depends(get_user_directory),
) -> RegistrationService:
    return RegistrationService(
        SupabaseEventStore(session.client),
        SupabaseRegistrationStore(session.client),
        notifier,
        users,
    )


def get_integration(session: Session = Depends(get_session)) -> GoogleFormsIntegration:
    return GoogleFormsIntegration(SupabaseTokenStore(session.client))
