"""Error taxonomy for the registration and integration workflows.

Every backend or provider failure is converted into one of these before it
reaches a request boundary. The API layer maps them onto HTTP responses in
luhive.api.exceptions.
"""

from __future__ import annotations


class LuhiveError(Exception):
    """Base class for all user-surfaceable errors."""

    message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthenticated(LuhiveError):
    """No valid session. Never reveals whether an account exists."""

    message = "Not authenticated"


class PermissionDenied(LuhiveError):
    message = "You do not have permission to manage this event"


class NotFound(LuhiveError):
    message = "Not found"


class ValidationError(LuhiveError):
    """Input failed a schema or business rule.

    ``errors`` holds one entry per violating field, each a dict with
    ``field``, ``message`` and (for batches) ``index``.
    """

    message = "Please fill in all required fields"

    def __init__(self, errors: list[dict], message: str | None = None) -> None:
        super().__init__(message)
        self.errors = errors

    def by_field(self) -> dict[str, str]:
        """Collapse the error list into ``{field: message}``."""
        return {e["field"]: e["message"] for e in self.errors}


class DuplicateRegistration(LuhiveError):
    message = "This email is already registered for this event"


class ExternalProviderError(LuhiveError):
    """OAuth/provider API or backend failure.

    ``diagnostic`` is safe to show to the caller; full detail is only logged.
    """

    message = "External provider request failed"

    def __init__(self, message: str | None = None, diagnostic: str = "") -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class OAuthInitError(ExternalProviderError):
    message = "OAuth initialization failed"


class TokenExpired(ExternalProviderError):
    message = "Your Google connection has expired. Please reconnect."


class DisconnectFailed(ExternalProviderError):
    message = "Failed to disconnect Google account"


class InvalidOAuthState(LuhiveError):
    message = "Invalid OAuth state"


class CalendarExportError(LuhiveError):
    message = "Failed to create calendar event"


class ClientContextError(RuntimeError):
    """A backend client handle was built or used outside its permitted context."""
