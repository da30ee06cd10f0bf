"""OAuth ``state`` parameter codec.

The state carries ``{"userId", "returnTo"}`` as base64 JSON so the callback
can resume without server-side session storage. Decoding fails closed: any
malformed, tampered or incomplete state raises InvalidOAuthState.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

from luhive.core.errors import InvalidOAuthState


@dataclass(frozen=True)
class OAuthState:
    user_id: str
    return_to: str


def encode_state(user_id: str, return_to: str) -> str:
    payload = json.dumps({"userId": user_id, "returnTo": return_to}, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_state(state: str) -> OAuthState:
    try:
        raw = base64.b64decode(state.encode("ascii"), validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError, AttributeError) as exc:
        raise InvalidOAuthState() from exc

    if not isinstance(data, dict):
        raise InvalidOAuthState()
    user_id = data.get("userId")
    return_to = data.get("returnTo")
    if not isinstance(user_id, str) or not user_id or not isinstance(return_to, str):
        raise InvalidOAuthState()
    return OAuthState(user_id=user_id, return_to=return_to)


def safe_return_path(return_to: str | None, default: str) -> str:
    """Only allow same-site absolute paths as redirect targets."""
    if not return_to or not return_to.startswith("/") or return_to.startswith("//"):
        return default
    return return_to
