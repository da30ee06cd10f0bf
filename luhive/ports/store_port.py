"""Store ports: abstract interfaces for the data the backend-as-a-service owns.

Core modules depend on these protocols, never on Supabase directly.
"""

from __future__ import annotations

from typing import Protocol

from luhive.data.models import Event, GoogleFormsToken, Registration


class BackendError(Exception):
    """Raised when any backend (PostgREST/GoTrue) request fails.

    Mirrors the backend's error body: ``code`` is the Postgres SQLSTATE or
    PostgREST code (e.g. "23505", "PGRST116").
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.status = status


class UserDirectory(Protocol):
    """Account lookups that bypass row-level security (service context only)."""

    async def get_email(self, user_id: str) -> str | None: ...


class EventStore(Protocol):
    async def get_event(self, event_id: str) -> Event | None: ...

    async def get_member_role(self, community_id: str, user_id: str) -> str | None: ...


class RegistrationStore(Protocol):
    async def insert(self, row: dict) -> Registration: ...

    async def find_by_email(self, event_id: str, email: str) -> Registration | None: ...

    async def find_by_token(self, token: str) -> Registration | None: ...

    async def get(self, event_id: str, registration_id: str) -> Registration | None: ...

    async def update(self, event_id: str, registration_id: str, changes: dict) -> None: ...

    async def delete(self, event_id: str, registration_id: str) -> None: ...

    async def delete_for_user(self, event_id: str, user_id: str) -> None: ...

    async def list_for_event(self, event_id: str) -> list[Registration]: ...


class TokenStore(Protocol):
    async def get(self, user_id: str) -> GoogleFormsToken | None: ...

    async def upsert(self, token: GoogleFormsToken) -> None: ...

    async def delete(self, user_id: str) -> None: ...


class VisitStore(Protocol):
    async def record_visit(
        self, community_id: str, session_id: str, user_id: str | None, metadata: dict
    ) -> None: ...
