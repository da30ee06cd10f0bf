"""
Luhive Events: Google OAuth for the Forms integration.

Organizers connect their Google account so the dashboard can list their
forms and pull responses. Tokens are stored per user in Supabase; this
module only builds flows and credentials.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from luhive.core.errors import OAuthInitError, TokenExpired
from luhive.data.models import GoogleFormsToken

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/forms.body.readonly",
    "https://www.googleapis.com/auth/forms.responses.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
]

_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
_TOKEN_URI = "https://oauth2.googleapis.com/token"


def _client_config() -> dict:
    from luhive.config import settings

    if not settings.GOOGLE_FORMS_CLIENT_ID or not settings.GOOGLE_FORMS_CLIENT_SECRET:
        raise OAuthInitError(
            diagnostic=(
                "Missing Google Forms OAuth credentials. Please set "
                "GOOGLE_FORMS_CLIENT_ID and GOOGLE_FORMS_CLIENT_SECRET"
            )
        )
    return {
        "web": {
            "client_id": settings.GOOGLE_FORMS_CLIENT_ID,
            "client_secret": settings.GOOGLE_FORMS_CLIENT_SECRET,
            "auth_uri": _AUTH_URI,
            "token_uri": _TOKEN_URI,
            "redirect_uris": [settings.GOOGLE_FORMS_REDIRECT_URI],
        }
    }


def create_oauth_flow() -> Flow:
    """Build a web-server OAuth flow from configured client credentials.

    Raises OAuthInitError when credentials are missing or malformed.
    """
    from luhive.config import settings

    config = _client_config()
    try:
        return Flow.from_client_config(
            config,
            scopes=SCOPES,
            redirect_uri=settings.GOOGLE_FORMS_REDIRECT_URI,
            autogenerate_code_verifier=False,
        )
    except ValueError as exc:
        raise OAuthInitError(diagnostic=str(exc)) from exc


def get_auth_url(flow: Flow, state: str) -> str:
    """Consent-screen URL requesting offline access (refresh token)."""
    auth_url, _ = flow.authorization_url(
        access_type="offline",
        prompt="consent",
        state=state,
    )
    return auth_url


def exchange_code(flow: Flow, code: str, user_id: str) -> GoogleFormsToken:
    """Exchange an authorization code for a storable token record.

    Blocking: call through asyncio.to_thread.
    """
    flow.fetch_token(code=code)
    creds = flow.credentials
    now = datetime.now(timezone.utc).isoformat()
    expiry = None
    if creds.expiry is not None:
        expiry = creds.expiry.replace(tzinfo=timezone.utc).isoformat()

    return GoogleFormsToken(
        user_id=user_id,
        access_token=creds.token,
        refresh_token=creds.refresh_token,
        token_type="Bearer",
        expiry_date=expiry,
        scope=" ".join(SCOPES),
        updated_at=now,
    )


def _parse_expiry(expiry_date: str | None) -> datetime | None:
    if not expiry_date:
        return None
    parsed = datetime.fromisoformat(expiry_date.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    # google-auth compares expiry as naive UTC
    return parsed


def credentials_from_record(token: GoogleFormsToken) -> Credentials:
    """Build Google credentials from a stored token, refreshing if expired.

    Blocking when a refresh is needed: call through asyncio.to_thread.
    Raises TokenExpired when the refresh token has been revoked.
    """
    from luhive.config import settings

    creds = Credentials(
        token=token.access_token,
        refresh_token=token.refresh_token,
        token_uri=_TOKEN_URI,
        client_id=settings.GOOGLE_FORMS_CLIENT_ID,
        client_secret=settings.GOOGLE_FORMS_CLIENT_SECRET,
        scopes=SCOPES,
    )
    creds.expiry = _parse_expiry(token.expiry_date)

    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
            logger.info("Google token refreshed for user %s", token.user_id)
        except RefreshError as exc:
            logger.warning("Google token refresh failed for user %s: %s", token.user_id, exc)
            raise TokenExpired(diagnostic="invalid_grant") from exc
    return creds
