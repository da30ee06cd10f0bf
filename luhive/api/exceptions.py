"""FastAPI exception handlers for the Luhive error taxonomy.

Every LuhiveError becomes a JSON body ``{"error": ..., "message": ...}``
with the status below; ValidationError adds its per-field ``errors`` list.
Anything else is logged and turned into a generic 500 so nothing escapes a
request boundary.

Usage:
    from luhive.api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from luhive.core.errors import (
    CalendarExportError,
    DisconnectFailed,
    DuplicateRegistration,
    ExternalProviderError,
    InvalidOAuthState,
    LuhiveError,
    NotFound,
    OAuthInitError,
    PermissionDenied,
    TokenExpired,
    Unauthenticated,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific class first; the first isinstance match wins.
ERROR_STATUS: list[tuple[type[LuhiveError], int, str]] = [
    (Unauthenticated, HTTP_401_UNAUTHORIZED, "Not authenticated"),
    (PermissionDenied, HTTP_403_FORBIDDEN, "Forbidden"),
    (NotFound, HTTP_404_NOT_FOUND, "Not found"),
    (ValidationError, HTTP_400_BAD_REQUEST, "Validation failed"),
    (InvalidOAuthState, HTTP_400_BAD_REQUEST, "Invalid state"),
    (DuplicateRegistration, HTTP_409_CONFLICT, "Duplicate registration"),
    (TokenExpired, HTTP_401_UNAUTHORIZED, "token_expired"),
    (OAuthInitError, HTTP_500_INTERNAL_SERVER_ERROR, "OAuth initialization failed"),
    (DisconnectFailed, HTTP_500_INTERNAL_SERVER_ERROR, "Failed to disconnect"),
    (ExternalProviderError, HTTP_502_BAD_GATEWAY, "External provider error"),
    (CalendarExportError, HTTP_500_INTERNAL_SERVER_ERROR, "Calendar export failed"),
]


def status_for(exc: LuhiveError) -> tuple[int, str]:
    for error_type, status_code, label in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, label
    return HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"


def with_session_cookies(request: Request, response: JSONResponse) -> JSONResponse:
    """Carry cookies queued by a session refresh onto a handler-built response."""
    for cookie in getattr(request.state, "session_cookies", None) or []:
        response.set_cookie(**cookie)
    return response


def error_body(exc: LuhiveError) -> dict:
    _, label = status_for(exc)
    body: dict = {"error": label, "message": exc.message}
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    if isinstance(exc, ExternalProviderError) and exc.diagnostic:
        body["diagnostic"] = exc.diagnostic
    if isinstance(exc, TokenExpired):
        body["connected"] = False
    return body


async def luhive_error_handler(request: Request, exc: LuhiveError) -> JSONResponse:
    status_code, _ = status_for(exc)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return with_session_cookies(request, JSONResponse(status_code=status_code, content=error_body(exc)))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s: %s", request.method, request.url.path, exc)
    return with_session_cookies(request, JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "message": "An unexpected error occurred"},
    ))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LuhiveError, luhive_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
