"""Supabase store adapters: implement the store ports over SupabaseClient.

All table names and row shapes live here. Core modules never see a row dict.
"""

from __future__ import annotations

import logging

from luhive.adapters.supabase_client import SupabaseClient
from luhive.data.models import Event, GoogleFormsToken, Registration

logger = logging.getLogger(__name__)

_REGISTRATION_COLUMNS = (
    "id,event_id,user_id,anonymous_name,anonymous_email,anonymous_phone,"
    "rsvp_status,approval_status,is_verified,verification_token,token_expires_at,"
    "registered_at,custom_answers,profiles(id,full_name,avatar_url)"
)


class SupabaseUserDirectory:
    """UserDirectory over the service-role client's admin API."""

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_email(self, user_id: str) -> str | None:
        user = await self._client.admin_get_user(user_id)
        return user.email if user else None


class SupabaseEventStore:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    @staticmethod
    def _row_to_event(row: dict) -> Event:
        return Event(
            id=row["id"],
            community_id=row["community_id"],
            title=row["title"],
            start_time=row["start_time"],
            timezone=row.get("timezone") or "UTC",
            end_time=row.get("end_time"),
            description=row.get("description"),
            location_address=row.get("location_address"),
            online_meeting_link=row.get("online_meeting_link"),
            registration_deadline=row.get("registration_deadline"),
            registration_type=row.get("registration_type") or "native",
            external_registration_url=row.get("external_registration_url"),
            is_approve_required=bool(row.get("is_approve_required")),
            custom_questions=row.get("custom_questions"),
            capacity=row.get("capacity"),
        )

    async def get_event(self, event_id: str) -> Event | None:
        row = await self._client.select_one("events", {"id": event_id})
        return self._row_to_event(row) if row else None

    async def get_member_role(self, community_id: str, user_id: str) -> str | None:
        row = await self._client.select_one(
            "community_members",
            {"community_id": community_id, "user_id": user_id},
            columns="role",
        )
        return row.get("role") if row else None


class SupabaseRegistrationStore:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    @staticmethod
    def _row_to_registration(row: dict) -> Registration:
        return Registration(
            id=row["id"],
            event_id=row["event_id"],
            rsvp_status=row.get("rsvp_status") or "going",
            is_verified=bool(row.get("is_verified")),
            user_id=row.get("user_id"),
            anonymous_name=row.get("anonymous_name"),
            anonymous_email=row.get("anonymous_email"),
            anonymous_phone=row.get("anonymous_phone"),
            approval_status=row.get("approval_status"),
            verification_token=row.get("verification_token"),
            token_expires_at=row.get("token_expires_at"),
            registered_at=row.get("registered_at"),
            custom_answers=row.get("custom_answers"),
            profile=row.get("profiles"),
        )

    async def insert(self, row: dict) -> Registration:
        created = await self._client.insert("event_registrations", row)
        return self._row_to_registration(created)

    async def find_by_email(self, event_id: str, email: str) -> Registration | None:
        row = await self._client.select_one(
            "event_registrations",
            {"event_id": event_id, "anonymous_email": email},
            columns="id,event_id,is_verified",
        )
        return self._row_to_registration(row) if row else None

    async def find_by_token(self, token: str) -> Registration | None:
        row = await self._client.select_one("event_registrations", {"verification_token": token})
        return self._row_to_registration(row) if row else None

    async def get(self, event_id: str, registration_id: str) -> Registration | None:
        row = await self._client.select_one(
            "event_registrations",
            {"id": registration_id, "event_id": event_id},
            columns=_REGISTRATION_COLUMNS,
        )
        return self._row_to_registration(row) if row else None

    async def update(self, event_id: str, registration_id: str, changes: dict) -> None:
        await self._client.update(
            "event_registrations", {"id": registration_id, "event_id": event_id}, changes,
        )

    async def delete(self, event_id: str, registration_id: str) -> None:
        await self._client.delete(
            "event_registrations", {"id": registration_id, "event_id": event_id},
        )

    async def delete_for_user(self, event_id: str, user_id: str) -> None:
        await self._client.delete(
            "event_registrations", {"event_id": event_id, "user_id": user_id},
        )

    async def list_for_event(self, event_id: str) -> list[Registration]:
        rows = await self._client.select(
            "event_registrations",
            {"event_id": event_id},
            columns=_REGISTRATION_COLUMNS,
            order="registered_at.desc",
        )
        return [self._row_to_registration(r) for r in rows]


class SupabaseTokenStore:
    """google_forms_tokens, one row per user (unique user_id)."""

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get(self, user_id: str) -> GoogleFormsToken | None:
        row = await self._client.select_one("google_forms_tokens", {"user_id": user_id})
        if not row:
            return None
        return GoogleFormsToken(
            user_id=row["user_id"],
            access_token=row["access_token"],
            refresh_token=row.get("refresh_token"),
            token_type=row.get("token_type") or "Bearer",
            expiry_date=row.get("expiry_date"),
            scope=row.get("scope"),
            updated_at=row.get("updated_at"),
        )

    async def upsert(self, token: GoogleFormsToken) -> None:
        await self._client.upsert(
            "google_forms_tokens",
            {
                "user_id": token.user_id,
                "access_token": token.access_token,
                "refresh_token": token.refresh_token,
                "token_type": token.token_type,
                "expiry_date": token.expiry_date,
                "scope": token.scope,
                "updated_at": token.updated_at,
            },
            on_conflict="user_id",
        )
        logger.info("Stored Google Forms token for user %s", token.user_id)

    async def delete(self, user_id: str) -> None:
        await self._client.delete("google_forms_tokens", {"user_id": user_id})


class SupabaseVisitStore:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def record_visit(
        self, community_id: str, session_id: str, user_id: str | None, metadata: dict
    ) -> None:
        await self._client.insert(
            "community_visits",
            {
                "community_id": community_id,
                "session_id": session_id,
                "user_id": user_id,
                "metadata": metadata,
            },
        )
