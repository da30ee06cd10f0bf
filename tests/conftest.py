"""Shared test fixtures and configuration.

Sets up fake environment variables so luhive.config doesn't sys.exit(),
and provides in-memory fakes for the store and notification ports.
"""

import os

# Patch env vars BEFORE any luhive imports
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "fake-anon-key-for-tests")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "fake-service-role-key-for-tests")
os.environ.setdefault("GOOGLE_FORMS_CLIENT_ID", "fake-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_FORMS_CLIENT_SECRET", "fake-client-secret")
os.environ.setdefault("GOOGLE_FORMS_REDIRECT_URI", "http://localhost:8080/api/google-forms/callback")
os.environ.setdefault("PUBLIC_BASE_URL", "https://luhive.test")
os.environ.setdefault("DEFAULT_RETURN_TO", "/dashboard")

import dataclasses
from datetime import datetime, timezone

import pytest

from luhive.data.models import AuthUser, Event, GoogleFormsToken, Registration
from luhive.ports.notification_port import NotificationError
from luhive.ports.store_port import BackendError


def unique_violation() -> BackendError:
    return BackendError(
        'duplicate key value violates unique constraint "event_registrations_event_id_email_key"',
        code="23505",
        status=409,
    )


# ---------------------------------------------------------------------------
# In-memory fakes
# ---------------------------------------------------------------------------


class FakeEventStore:
    def __init__(self, events=None, roles=None):
        self.events = {e.id: e for e in (events or [])}
        self.roles = dict(roles or {})   # (community_id, user_id) -> role
        self.fail_with = None

    async def get_event(self, event_id):
        if self.fail_with:
            raise self.fail_with
        return self.events.get(event_id)

    async def get_member_role(self, community_id, user_id):
        return self.roles.get((community_id, user_id))


class FakeRegistrationStore:
    """Enforces the same unique constraints as event_registrations."""

    def __init__(self):
        self.rows = {}
        self.fail_insert_with = None
        self.fail_update_with = None
        self._counter = 0

    async def insert(self, row):
        if self.fail_insert_with:
            raise self.fail_insert_with
        for existing in self.rows.values():
            if existing.event_id != row["event_id"]:
                continue
            if row.get("anonymous_email") and existing.anonymous_email == row["anonymous_email"]:
                raise unique_violation()
            if row.get("user_id") and existing.user_id == row["user_id"]:
                raise unique_violation()
        self._counter += 1
        reg = Registration(
            id=f"reg-{self._counter}",
            registered_at=datetime.now(timezone.utc).isoformat(),
            **row,
        )
        self.rows[reg.id] = reg
        return reg

    async def find_by_email(self, event_id, email):
        for reg in self.rows.values():
            if reg.event_id == event_id and reg.anonymous_email == email:
                return reg
        return None

    async def find_by_token(self, token):
        for reg in self.rows.values():
            if reg.verification_token == token:
                return reg
        return None

    async def get(self, event_id, registration_id):
        reg = self.rows.get(registration_id)
        return reg if reg and reg.event_id == event_id else None

    async def update(self, event_id, registration_id, changes):
        if self.fail_update_with:
            raise self.fail_update_with
        reg = self.rows.get(registration_id)
        if reg and reg.event_id == event_id:
            self.rows[registration_id] = dataclasses.replace(reg, **changes)

    async def delete(self, event_id, registration_id):
        reg = self.rows.get(registration_id)
        if reg and reg.event_id == event_id:
            del self.rows[registration_id]

    async def delete_for_user(self, event_id, user_id):
        for reg_id in [r.id for r in self.rows.values() if r.event_id == event_id and r.user_id == user_id]:
            del self.rows[reg_id]

    async def list_for_event(self, event_id):
        return [r for r in self.rows.values() if r.event_id == event_id]

    def add(self, **fields):
        self._counter += 1
        reg = Registration(id=fields.pop("id", f"reg-{self._counter}"), **fields)
        self.rows[reg.id] = reg
        return reg


class FakeTokenStore:
    def __init__(self):
        self.tokens = {}
        self.fail_with = None
        self.delete_calls = 0

    async def get(self, user_id):
        if self.fail_with:
            raise self.fail_with
        return self.tokens.get(user_id)

    async def upsert(self, token):
        if self.fail_with:
            raise self.fail_with
        self.tokens[token.user_id] = token

    async def delete(self, user_id):
        if self.fail_with:
            raise self.fail_with
        self.delete_calls += 1
        self.tokens.pop(user_id, None)


class FakeNotifier:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_email(self, to, subject, text):
        if self.fail:
            raise NotificationError("smtp down")
        self.sent.append({"to": to, "subject": subject, "text": text})


class FakeVisitStore:
    def __init__(self, fail_with=None):
        self.visits = []
        self.fail_with = fail_with

    async def record_visit(self, community_id, session_id, user_id, metadata):
        if self.fail_with:
            raise self.fail_with
        self.visits.append((community_id, session_id, user_id, metadata))


class FakeUserDirectory:
    def __init__(self, emails=None, failing=()):
        self.emails = emails or {}
        self.failing = set(failing)
        self.lookups = []

    async def get_email(self, user_id):
        self.lookups.append(user_id)
        if user_id in self.failing:
            raise BackendError("admin api down", status=500)
        return self.emails.get(user_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_event():
    return Event(
        id="evt-1",
        community_id="com-1",
        title="Community Meetup",
        start_time="2030-06-01T18:00:00+00:00",
        end_time="2030-06-01T20:00:00+00:00",
        timezone="UTC",
        location_address="Baku, Nizami St 10",
        registration_deadline="2030-05-30T18:00:00+00:00",
    )


@pytest.fixture
def event_store(sample_event):
    return FakeEventStore([sample_event], roles={("com-1", "owner-1"): "owner", ("com-1", "member-1"): "member"})


@pytest.fixture
def registration_store():
    return FakeRegistrationStore()


@pytest.fixture
def token_store():
    return FakeTokenStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def owner():
    return AuthUser(id="owner-1", email="owner@luhive.test")


@pytest.fixture
def member():
    return AuthUser(id="member-1", email="member@luhive.test")


@pytest.fixture
def stored_token():
    return GoogleFormsToken(
        user_id="owner-1",
        access_token="ya29.access",
        refresh_token="1//refresh",
        expiry_date="2030-01-01T00:00:00+00:00",
        scope="forms",
        updated_at="2026-01-01T00:00:00+00:00",
    )
