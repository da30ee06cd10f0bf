"""Google Forms integration endpoints.

Mounted under /api/google-forms:
- GET  /auth                 start OAuth (302 to consent screen)
- GET  /callback             finish OAuth (302 back to the dashboard)
- GET  /status               connection status
- POST /disconnect           forget the stored token
- GET  /list                 the organizer's forms
- GET  /{form_id}            parsed questions
- GET  /{form_id}/responses  parsed responses plus bridged attenders
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse
from starlette.status import HTTP_302_FOUND

from luhive.api.cache import no_cache_headers, private_cache_headers
from luhive.api.dependencies import Session, get_integration, get_session
from luhive.core.integration_service import GoogleFormsIntegration

router = APIRouter(prefix="/google-forms", tags=["google-forms"])


@router.get("/auth", summary="Start Google OAuth")
async def auth(
    return_to: str | None = Query(default=None, alias="returnTo"),
    session: Session = Depends(get_session),
    integration: GoogleFormsIntegration = Depends(get_integration),
) -> RedirectResponse:
    url = integration.initiate_auth(session.user, return_to)
    return session.apply_cookies(RedirectResponse(url, status_code=HTTP_302_FOUND))


@router.get("/callback", summary="Google OAuth callback")
async def callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: Session = Depends(get_session),
    integration: GoogleFormsIntegration = Depends(get_integration),
) -> RedirectResponse:
    target = await integration.handle_callback(session.user, code, state, error)
    return session.apply_cookies(RedirectResponse(target, status_code=HTTP_302_FOUND))


@router.get("/status", summary="Google connection status")
async def status(
    response: Response,
    session: Session = Depends(get_session),
    integration: GoogleFormsIntegration = Depends(get_integration),
) -> dict:
    result = await integration.check_status(session.user)
    response.headers.update(no_cache_headers())
    return result.to_dict()


@router.post("/disconnect", summary="Disconnect Google account")
async def disconnect(
    session: Session = Depends(get_session),
    integration: GoogleFormsIntegration = Depends(get_integration),
) -> dict:
    return await integration.disconnect(session.user)


@router.get("/list", summary="List the user's forms")
async def list_forms(
    response: Response,
    session: Session = Depends(get_session),
    integration: GoogleFormsIntegration = Depends(get_integration),
) -> dict:
    result = await integration.list_forms(session.user)
    response.headers.update(private_cache_headers())
    return result


@router.get("/{form_id}", summary="Form structure")
async def form_detail(
    form_id: str,
    response: Response,
    session: Session = Depends(get_session),
    integration: GoogleFormsIntegration = Depends(get_integration),
) -> dict:
    result = await integration.get_form_detail(session.user, form_id)
    response.headers.update(private_cache_headers())
    return result


@router.get("/{form_id}/responses", summary="Form responses")
async def form_responses(
    form_id: str,
    response: Response,
    session: Session = Depends(get_session),
    integration: GoogleFormsIntegration = Depends(get_integration),
) -> dict:
    result = await integration.get_form_responses(session.user, form_id)
    response.headers.update(no_cache_headers())
    return result
