"""
Luhive Events: Google Forms integration service.

Orchestrates the OAuth connection lifecycle (initiate, callback, status,
disconnect) and read access to the organizer's forms. Stateless: every call
works against the TokenStore it was built with, which is request-scoped.

Routes call this service and render its results; no HTTP types leak in here
except the redirect targets the callback computes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urlencode

from luhive.core import forms_bridge
from luhive.core.errors import (
    DisconnectFailed,
    ExternalProviderError,
    InvalidOAuthState,
    TokenExpired,
    Unauthenticated,
)
from luhive.data.models import AuthUser, ConnectionStatus, GoogleFormsToken
from luhive.integrations import google_auth, google_forms
from luhive.integrations.oauth_state import decode_state, encode_state, safe_return_path
from luhive.ports.store_port import BackendError, TokenStore

logger = logging.getLogger(__name__)

LOGIN_REDIRECT = "/login?error=session_expired"


def _with_query(path: str, **params: str) -> str:
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{urlencode(params)}"


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable token timestamp: %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GoogleFormsIntegration:
    """Connection lifecycle and form access for one request."""

    def __init__(
        self,
        tokens: TokenStore,
        flow_factory: Callable = google_auth.create_oauth_flow,
        clock: Callable[[], datetime] | None = None,
        default_return_to: str | None = None,
    ) -> None:
        from luhive.config import settings

        self._tokens = tokens
        self._flow_factory = flow_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._default_return_to = default_return_to or settings.DEFAULT_RETURN_TO

    # -- connection lifecycle ---------------------------------------------

    def initiate_auth(self, user: AuthUser | None, return_to: str | None = None) -> str:
        """Return the consent-screen URL for ``user``.

        Raises Unauthenticated without a user and OAuthInitError when the
        OAuth client cannot be built.
        """
        if user is None:
            raise Unauthenticated()

        return_path = safe_return_path(return_to, self._default_return_to)
        flow = self._flow_factory()
        auth_url = google_auth.get_auth_url(flow, encode_state(user.id, return_path))
        logger.info("Google Forms OAuth initiated for user %s", user.id)
        return auth_url

    async def handle_callback(
        self,
        user: AuthUser | None,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> str:
        """Finish the OAuth dance and return where to redirect the browser.

        Never raises: every failure becomes a ``google_forms_error`` redirect.
        """
        fallback = self._default_return_to
        if error:
            logger.warning("Google OAuth returned error: %s", error)
            return _with_query(fallback, google_forms_error="authorization_failed")
        if not code:
            return _with_query(fallback, google_forms_error="missing_code")

        try:
            parsed = decode_state(state or "")
        except InvalidOAuthState:
            logger.warning("Rejected OAuth callback with invalid state")
            return _with_query(fallback, google_forms_error="invalid_state")

        if user is None:
            return LOGIN_REDIRECT
        if parsed.user_id != user.id:
            logger.warning("OAuth state user does not match session user %s", user.id)
            return _with_query(fallback, google_forms_error="user_mismatch")

        return_to = safe_return_path(parsed.return_to, fallback)
        try:
            flow = self._flow_factory()
            token = await asyncio.to_thread(google_auth.exchange_code, flow, code, user.id)
        except Exception as exc:
            logger.error("Google token exchange failed for user %s: %s", user.id, exc)
            return _with_query(return_to, google_forms_error="token_exchange_failed")

        try:
            await self._tokens.upsert(token)
        except BackendError as exc:
            logger.error("Failed to store Google token for user %s: %s", user.id, exc.message)
            return _with_query(return_to, google_forms_error="save_failed")

        return _with_query(return_to, google_forms_connected="true")

    async def check_status(self, user: AuthUser | None) -> ConnectionStatus:
        if user is None:
            raise Unauthenticated()

        try:
            token = await self._tokens.get(user.id)
        except BackendError as exc:
            logger.error("Error checking Google Forms status: %s", exc.message)
            raise ExternalProviderError("Failed to check status", diagnostic=exc.message) from exc

        if token is None:
            return ConnectionStatus(connected=False, message="Google account not connected")

        expiry = _parse_timestamp(token.expiry_date)
        return ConnectionStatus(
            connected=True,
            is_expired=expiry is not None and expiry < self._clock(),
            last_updated=token.updated_at,
        )

    async def disconnect(self, user: AuthUser | None) -> dict:
        """Delete the user's token row. Disconnecting twice is not an error."""
        if user is None:
            raise Unauthenticated()

        try:
            await self._tokens.delete(user.id)
        except BackendError as exc:
            logger.error("Error disconnecting Google account: %s", exc.message)
            raise DisconnectFailed(diagnostic=exc.message) from exc

        logger.info("Google account disconnected for user %s", user.id)
        return {"success": True, "message": "Google account disconnected successfully"}

    # -- form access ------------------------------------------------------

    async def _token(self, user: AuthUser | None) -> GoogleFormsToken | None:
        if user is None:
            raise Unauthenticated()
        try:
            return await self._tokens.get(user.id)
        except BackendError as exc:
            raise ExternalProviderError("Failed to load Google connection", diagnostic=exc.message) from exc

    async def _credentials(self, token: GoogleFormsToken):
        creds = await asyncio.to_thread(google_auth.credentials_from_record, token)
        if creds.token and creds.token != token.access_token:
            refreshed = GoogleFormsToken(
                user_id=token.user_id,
                access_token=creds.token,
                refresh_token=creds.refresh_token or token.refresh_token,
                token_type=token.token_type,
                expiry_date=(
                    creds.expiry.replace(tzinfo=timezone.utc).isoformat()
                    if creds.expiry else token.expiry_date
                ),
                scope=token.scope,
                updated_at=self._clock().isoformat(),
            )
            try:
                await self._tokens.upsert(refreshed)
            except BackendError as exc:
                logger.warning("Could not persist refreshed Google token: %s", exc.message)
        return creds

    async def list_forms(self, user: AuthUser | None) -> dict:
        token = await self._token(user)
        if token is None:
            return {
                "connected": False,
                "forms": [],
                "message": "Please connect your Google account to view forms",
            }

        creds = await self._credentials(token)
        forms = await google_forms.list_forms(creds)
        return {
            "connected": True,
            "count": len(forms),
            "forms": [
                {
                    "id": form.get("id"),
                    "name": form.get("name"),
                    "createdTime": form.get("createdTime"),
                    "modifiedTime": form.get("modifiedTime"),
                    "webViewLink": form.get("webViewLink"),
                }
                for form in forms
            ],
        }

    async def get_form_detail(self, user: AuthUser | None, form_id: str) -> dict:
        token = await self._token(user)
        if token is None:
            raise TokenExpired("Google account not connected")

        creds = await self._credentials(token)
        form = await google_forms.get_form(creds, form_id)
        questions = google_forms.parse_form_questions(form)
        return {
            "formId": form.get("formId", form_id),
            "info": form.get("info", {}),
            "questions": [q.to_dict() for q in questions],
            "revisionId": form.get("revisionId"),
            "responderUri": form.get("responderUri"),
            "customQuestions": forms_bridge.questions_to_config(questions).model_dump(),
        }

    async def get_form_responses(self, user: AuthUser | None, form_id: str) -> dict:
        token = await self._token(user)
        if token is None:
            raise TokenExpired("Google account not connected")

        creds = await self._credentials(token)
        form = await google_forms.get_form(creds, form_id)
        questions = google_forms.parse_form_questions(form)
        raw = await google_forms.get_form_responses(creds, form_id)
        responses = google_forms.parse_responses(raw, questions)
        attenders = forms_bridge.responses_to_attenders(responses, questions)

        info = form.get("info") or {}
        return {
            "formId": form_id,
            "formTitle": info.get("title") or "Untitled Form",
            "formDescription": info.get("description"),
            "responderUri": form.get("responderUri"),
            "questions": [q.to_dict() for q in questions],
            "responses": [r.to_dict() for r in responses],
            "totalResponses": len(responses),
            "attenders": [a.model_dump(mode="json") for a in attenders],
        }
