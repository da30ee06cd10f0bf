"""Duplicate-registration guard.

Registrations are inserted optimistically; when the insert fails, the
backend's own uniqueness error is classified here into a friendly message.

No I/O: this module only inspects the error it is given.
"""

from __future__ import annotations

from typing import Any

# Postgres SQLSTATE unique_violation
UNIQUE_VIOLATION = "23505"

_DUPLICATE_MARKERS = ("duplicate", "unique constraint", "already exists")

ALREADY_REGISTERED = "This email is already registered for this event"
VERIFICATION_PENDING = "A verification email has already been sent to this address"


def _field(error: Any, name: str) -> str:
    if isinstance(error, dict):
        value = error.get(name)
    else:
        value = getattr(error, name, None)
    return "" if value is None else str(value)


def is_duplicate_error(error: Any) -> bool:
    """True if the error is a uniqueness violation by code or by message."""
    if error is None:
        return False
    if _field(error, "code") == UNIQUE_VIOLATION:
        return True
    message = _field(error, "message").lower()
    return any(marker in message for marker in _DUPLICATE_MARKERS)


def sanitize_duplicate_error(
    error: Any,
    email: str | None = None,
    is_verified: bool | None = None,
) -> str | None:
    """Return a user-facing message for duplicate errors, else None.

    Args:
        error: Object or mapping with optional ``code``, ``message``, ``details``.
        email: The email being registered, when known.
        is_verified: Verification state of the existing registration, when known.

    When verification state is unknown the message defaults to
    "already registered".
    """
    if not is_duplicate_error(error):
        return None

    if email and is_verified is False:
        return VERIFICATION_PENDING
    return ALREADY_REGISTERED
