"""Tests for the registration workflow service.

Stores and the notifier are the in-memory fakes from conftest.
"""

import dataclasses
from datetime import datetime, timezone

import pytest

from conftest import FakeNotifier, FakeUserDirectory
from luhive.core.duplicate_guard import ALREADY_REGISTERED, VERIFICATION_PENDING
from luhive.core.errors import (
    DuplicateRegistration,
    ExternalProviderError,
    NotFound,
    PermissionDenied,
    Unauthenticated,
    ValidationError,
)
from luhive.core.registration_service import (
    ALREADY_VERIFIED,
    PENDING_APPROVAL,
    VERIFIED,
    RegistrationService,
    attender_row,
)
from luhive.data.models import ApprovalStatus, Registration
from luhive.ports.store_port import BackendError

_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(event_store, registration_store, notifier):
    return RegistrationService(
        event_store,
        registration_store,
        notifier,
        base_url="https://luhive.test",
        clock=lambda: _NOW,
        token_ttl_hours=24,
    )


def _set_event(event_store, **changes):
    event = event_store.events["evt-1"]
    event_store.events["evt-1"] = dataclasses.replace(event, **changes)


# ---------------------------------------------------------------------------
# Anonymous registration
# ---------------------------------------------------------------------------


class TestRegisterAnonymous:
    @pytest.mark.asyncio
    async def test_creates_unverified_registration(self, service, registration_store, notifier):
        reg = await service.register_anonymous("evt-1", " Aysel ", "Aysel@Example.com")

        assert reg.anonymous_email == "aysel@example.com"
        assert reg.anonymous_name == "Aysel"
        assert reg.is_verified is False
        assert reg.approval_status == "approved"
        assert len(reg.verification_token) == 64
        assert reg.token_expires_at == "2026-06-02T12:00:00+00:00"

        [mail] = notifier.sent
        assert mail["to"] == "aysel@example.com"
        assert f"/api/events/evt-1/verify?token={reg.verification_token}" in mail["text"]

    @pytest.mark.asyncio
    async def test_pending_when_approval_required(self, service, event_store):
        _set_event(event_store, is_approve_required=True)
        reg = await service.register_anonymous("evt-1", "Aysel", "a@example.com")
        assert reg.approval_status == "pending"

    @pytest.mark.asyncio
    async def test_name_and_email_required(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.register_anonymous("evt-1", "", "  ")
        assert set(exc_info.value.by_field()) == {"name", "email"}

    @pytest.mark.asyncio
    async def test_unknown_event(self, service):
        with pytest.raises(NotFound):
            await service.register_anonymous("nope", "Aysel", "a@example.com")

    @pytest.mark.asyncio
    async def test_event_lookup_failure(self, service, event_store):
        event_store.fail_with = BackendError("connection reset")
        with pytest.raises(ExternalProviderError):
            await service.register_anonymous("evt-1", "Aysel", "a@example.com")

    @pytest.mark.asyncio
    async def test_custom_answers_validated(self, service, event_store, registration_store):
        _set_event(event_store, custom_questions={
            "phone": {"enabled": True, "required": True},
            "custom": [{"id": "why", "label": "Why?", "required": True}],
        })
        with pytest.raises(ValidationError) as exc_info:
            await service.register_anonymous("evt-1", "Aysel", "a@example.com", {"phone": "123"})
        assert set(exc_info.value.by_field()) == {"phone", "why"}
        assert registration_store.rows == {}

        reg = await service.register_anonymous(
            "evt-1", "Aysel", "a@example.com", {"phone": "+994501234567", "why": "Networking"},
        )
        assert reg.custom_answers["why"] == "Networking"

    @pytest.mark.asyncio
    async def test_verified_duplicate(self, service, registration_store):
        registration_store.add(event_id="evt-1", anonymous_email="a@example.com", is_verified=True)
        with pytest.raises(DuplicateRegistration) as exc_info:
            await service.register_anonymous("evt-1", "Aysel", "a@example.com")
        assert exc_info.value.message == ALREADY_REGISTERED

    @pytest.mark.asyncio
    async def test_unverified_duplicate(self, service, registration_store, notifier):
        registration_store.add(event_id="evt-1", anonymous_email="a@example.com", is_verified=False)
        with pytest.raises(DuplicateRegistration) as exc_info:
            await service.register_anonymous("evt-1", "Aysel", "A@example.com")
        assert exc_info.value.message == VERIFICATION_PENDING
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_same_email_other_event_is_fine(self, service, registration_store):
        registration_store.add(event_id="evt-2", anonymous_email="a@example.com", is_verified=True)
        reg = await service.register_anonymous("evt-1", "Aysel", "a@example.com")
        assert reg.event_id == "evt-1"

    @pytest.mark.asyncio
    async def test_non_duplicate_insert_failure(self, service, registration_store):
        registration_store.fail_insert_with = BackendError("permission denied for table", code="42501")
        with pytest.raises(ExternalProviderError) as exc_info:
            await service.register_anonymous("evt-1", "Aysel", "a@example.com")
        assert not isinstance(exc_info.value, DuplicateRegistration)

    @pytest.mark.asyncio
    async def test_email_failure_does_not_fail_registration(self, event_store, registration_store):
        service = RegistrationService(
            event_store, registration_store, FakeNotifier(fail=True), base_url="https://luhive.test",
        )
        reg = await service.register_anonymous("evt-1", "Aysel", "a@example.com")
        assert reg.id in registration_store.rows


# ---------------------------------------------------------------------------
# Signed-in registration and subscriptions
# ---------------------------------------------------------------------------


class TestRegisterUser:
    @pytest.mark.asyncio
    async def test_requires_login(self, service):
        with pytest.raises(Unauthenticated, match="Please login"):
            await service.register_user("evt-1", None)

    @pytest.mark.asyncio
    async def test_verified_immediately(self, service, member, notifier):
        reg = await service.register_user("evt-1", member, display_name="Member")

        assert reg.user_id == "member-1"
        assert reg.is_verified is True
        assert reg.approval_status == "approved"
        assert notifier.sent[0]["subject"] == "You're registered for Community Meetup!"

    @pytest.mark.asyncio
    async def test_pending_sends_request_received(self, service, event_store, member, notifier):
        _set_event(event_store, is_approve_required=True)
        reg = await service.register_user("evt-1", member)
        assert reg.approval_status == "pending"
        assert notifier.sent[0]["subject"] == "Registration request received for Community Meetup"

    @pytest.mark.asyncio
    async def test_twice_is_duplicate(self, service, member):
        await service.register_user("evt-1", member)
        with pytest.raises(DuplicateRegistration):
            await service.register_user("evt-1", member)

    @pytest.mark.asyncio
    async def test_email_already_registered_anonymously(self, service, registration_store, member):
        registration_store.add(event_id="evt-1", anonymous_email="member@luhive.test", is_verified=False)
        with pytest.raises(DuplicateRegistration) as exc_info:
            await service.register_user("evt-1", member)
        assert exc_info.value.message == ALREADY_REGISTERED


class TestSubscribe:
    @pytest.fixture(autouse=True)
    def external_event(self, event_store):
        _set_event(event_store, registration_type="external", external_registration_url="https://forms.example/x")

    @pytest.mark.asyncio
    async def test_anonymous_subscription(self, service, notifier):
        reg = await service.subscribe("evt-1", name="Aysel", email="a@example.com")
        assert reg.is_verified is True
        assert reg.approval_status == "approved"
        assert notifier.sent[0]["subject"] == "Subscribed to updates for Community Meetup"

    @pytest.mark.asyncio
    async def test_user_subscription(self, service, member):
        reg = await service.subscribe("evt-1", user=member)
        assert reg.user_id == "member-1"

    @pytest.mark.asyncio
    async def test_already_subscribed(self, service):
        await service.subscribe("evt-1", name="Aysel", email="a@example.com")
        with pytest.raises(DuplicateRegistration, match="already subscribed"):
            await service.subscribe("evt-1", name="Aysel", email="a@example.com")

    @pytest.mark.asyncio
    async def test_native_event_rejected(self, service, event_store):
        _set_event(event_store, registration_type="native")
        with pytest.raises(ValidationError, match="only available for external events"):
            await service.subscribe("evt-1", name="Aysel", email="a@example.com")


class TestUnregister:
    @pytest.mark.asyncio
    async def test_cancels_own_registration(self, service, registration_store, member):
        await service.register_user("evt-1", member)
        message = await service.unregister("evt-1", member)
        assert message == "Registration cancelled"
        assert registration_store.rows == {}

    @pytest.mark.asyncio
    async def test_unsubscribe_external(self, service, event_store, member):
        _set_event(event_store, registration_type="external")
        assert await service.unregister("evt-1", member) == "Unsubscribed from event updates"

    @pytest.mark.asyncio
    async def test_requires_login(self, service):
        with pytest.raises(Unauthenticated):
            await service.unregister("evt-1", None)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerifyRegistration:
    @pytest.mark.asyncio
    async def test_verifies_and_confirms(self, service, registration_store, notifier):
        reg = await service.register_anonymous("evt-1", "Aysel", "a@example.com")
        outcome = await service.verify_registration("evt-1", reg.verification_token)

        assert outcome == VERIFIED
        stored = registration_store.rows[reg.id]
        assert stored.is_verified is True
        assert stored.verification_token is None
        assert stored.token_expires_at is None
        assert notifier.sent[-1]["subject"] == "You're registered for Community Meetup!"

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, service):
        reg = await service.register_anonymous("evt-1", "Aysel", "a@example.com")
        await service.verify_registration("evt-1", reg.verification_token)
        with pytest.raises(ValidationError, match="Invalid or expired"):
            await service.verify_registration("evt-1", reg.verification_token)

    @pytest.mark.asyncio
    async def test_already_verified(self, service, registration_store):
        registration_store.add(
            event_id="evt-1", anonymous_email="a@example.com", is_verified=True, verification_token="tok",
        )
        assert await service.verify_registration("evt-1", "tok") == ALREADY_VERIFIED

    @pytest.mark.asyncio
    async def test_pending_approval(self, service, event_store, notifier):
        _set_event(event_store, is_approve_required=True)
        reg = await service.register_anonymous("evt-1", "Aysel", "a@example.com")
        assert await service.verify_registration("evt-1", reg.verification_token) == PENDING_APPROVAL
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_missing_token(self, service):
        with pytest.raises(ValidationError, match="Verification token is required"):
            await service.verify_registration("evt-1", None)

    @pytest.mark.asyncio
    async def test_wrong_event(self, service, registration_store):
        registration_store.add(event_id="evt-2", anonymous_email="a@example.com", verification_token="tok")
        with pytest.raises(ValidationError, match="for this event"):
            await service.verify_registration("evt-1", "tok")

    @pytest.mark.asyncio
    async def test_expired(self, service, registration_store):
        registration_store.add(
            event_id="evt-1", anonymous_email="a@example.com", verification_token="tok",
            token_expires_at="2026-05-31T12:00:00Z",
        )
        with pytest.raises(ValidationError, match="expired"):
            await service.verify_registration("evt-1", "tok")

    @pytest.mark.asyncio
    async def test_update_failure(self, service, registration_store):
        registration_store.add(event_id="evt-1", anonymous_email="a@example.com", verification_token="tok")
        registration_store.fail_update_with = BackendError("db down")
        with pytest.raises(ExternalProviderError):
            await service.verify_registration("evt-1", "tok")


# ---------------------------------------------------------------------------
# Organizer operations
# ---------------------------------------------------------------------------


class TestApprovalStatus:
    @pytest.mark.asyncio
    async def test_owner_approves(self, service, registration_store, notifier, owner):
        reg = registration_store.add(
            event_id="evt-1", anonymous_name="Aysel", anonymous_email="a@example.com",
            is_verified=True, approval_status="pending",
        )
        status = await service.update_approval_status("evt-1", reg.id, "approved", owner)

        assert status is ApprovalStatus.APPROVED
        assert registration_store.rows[reg.id].approval_status == "approved"
        assert notifier.sent[0]["subject"] == "Your registration for Community Meetup was approved"

    @pytest.mark.asyncio
    async def test_member_cannot_manage(self, service, registration_store, member):
        reg = registration_store.add(event_id="evt-1", approval_status="pending")
        with pytest.raises(PermissionDenied):
            await service.update_approval_status("evt-1", reg.id, "approved", member)
        assert registration_store.rows[reg.id].approval_status == "pending"

    @pytest.mark.asyncio
    async def test_invalid_status(self, service, owner):
        with pytest.raises(ValidationError, match="Invalid status"):
            await service.update_approval_status("evt-1", "reg-1", "pending", owner)

    @pytest.mark.asyncio
    async def test_requires_login(self, service):
        with pytest.raises(Unauthenticated):
            await service.update_approval_status("evt-1", "reg-1", "approved", None)

    @pytest.mark.asyncio
    async def test_delete(self, service, registration_store, owner, member):
        reg = registration_store.add(event_id="evt-1")
        with pytest.raises(PermissionDenied):
            await service.delete_registration("evt-1", reg.id, member)
        await service.delete_registration("evt-1", reg.id, owner)
        assert registration_store.rows == {}


class TestAttenders:
    @pytest.mark.asyncio
    async def test_list_for_organizer(self, service, registration_store, owner):
        registration_store.add(
            event_id="evt-1", anonymous_name="Aysel", anonymous_email="a@example.com", is_verified=True,
            custom_answers={"phone": "+994501234567"},
        )
        registration_store.add(
            event_id="evt-1", user_id="u2", is_verified=True,
            profile={"full_name": "Kamran", "avatar_url": "https://cdn.example/k.png"},
        )
        attenders = await service.list_attenders("evt-1", owner)

        assert [a.name for a in attenders] == ["Aysel", "Kamran"]
        assert attenders[0].phone == "+994501234567"
        assert attenders[0].is_anonymous and not attenders[1].is_anonymous
        assert attenders[1].avatar_url == "https://cdn.example/k.png"

    @pytest.mark.asyncio
    async def test_signed_in_emails_from_accounts(self, event_store, registration_store, owner):
        users = FakeUserDirectory(emails={"u2": "kamran@example.com"}, failing={"u3"})
        service = RegistrationService(event_store, registration_store, users=users, base_url="https://luhive.test")
        registration_store.add(event_id="evt-1", anonymous_name="Aysel", anonymous_email="a@example.com")
        registration_store.add(event_id="evt-1", user_id="u2", profile={"full_name": "Kamran"})
        registration_store.add(event_id="evt-1", user_id="u3", profile={"full_name": "Leyla"})

        attenders = await service.list_attenders("evt-1", owner)

        assert [a.email for a in attenders] == ["a@example.com", "kamran@example.com", None]
        assert sorted(users.lookups) == ["u2", "u3"]

    @pytest.mark.asyncio
    async def test_no_directory_leaves_account_emails_empty(self, service, registration_store, owner):
        registration_store.add(event_id="evt-1", user_id="u2", anonymous_email="stale@example.com")
        [attender] = await service.list_attenders("evt-1", owner)
        assert attender.email is None

    @pytest.mark.asyncio
    async def test_list_requires_manager(self, service, member):
        with pytest.raises(PermissionDenied):
            await service.list_attenders("evt-1", member)

    @pytest.mark.asyncio
    async def test_public_attendees_filtered(self, service, registration_store):
        registration_store.add(id="ok", event_id="evt-1", anonymous_name="Aysel", is_verified=True)
        registration_store.add(id="unverified", event_id="evt-1", anonymous_name="B", is_verified=False)
        registration_store.add(id="pending", event_id="evt-1", anonymous_name="C", is_verified=True,
                               approval_status="pending")
        registration_store.add(id="maybe", event_id="evt-1", anonymous_name="D", is_verified=True,
                               rsvp_status="maybe")
        registration_store.add(id="no-profile", event_id="evt-1", user_id="u9", is_verified=True)

        attendees = await service.list_public_attendees("evt-1")
        assert attendees == [{"id": "ok", "name": "Aysel", "avatar_url": None}]


class TestAttenderRow:
    def test_anonymous_without_name(self):
        row = attender_row(Registration(id="r", event_id="e", anonymous_phone="+994501234567"))
        assert row["name"] == "Anonymous"
        assert row["phone"] == "+994501234567"
        assert row["is_anonymous"] is True

    def test_user_without_profile(self):
        row = attender_row(Registration(id="r", event_id="e", user_id="u"))
        assert row["name"] == "Unknown User"
        assert row["avatar_url"] is None
