"""
Luhive Events: Registration workflow service.

Stateless service layer for event registration: anonymous and signed-in
registration, external-event subscriptions, email verification, approval
management and the attenders table.

Inserts are optimistic: the database's unique constraint is the only
duplicate check that counts, and a failed insert is classified afterwards
by the duplicate guard. Notification emails are best-effort and never fail
the operation that triggered them.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from luhive.core import emails
from luhive.core.custom_questions import PHONE_KEY, load_config, require_valid_answers
from luhive.core.duplicate_guard import ALREADY_REGISTERED, sanitize_duplicate_error
from luhive.core.errors import (
    ClientContextError,
    DuplicateRegistration,
    ExternalProviderError,
    NotFound,
    PermissionDenied,
    Unauthenticated,
    ValidationError,
)
from luhive.data.models import (
    ApprovalStatus,
    Attender,
    AuthUser,
    Event,
    Registration,
    RSVPStatus,
    validate_attenders,
)
from luhive.ports.notification_port import NotificationError
from luhive.ports.store_port import BackendError

if TYPE_CHECKING:
    from luhive.ports.notification_port import NotificationPort
    from luhive.ports.store_port import EventStore, RegistrationStore, UserDirectory

logger = logging.getLogger(__name__)

MANAGER_ROLES = ("owner", "admin")

# Outcomes of verify_registration
VERIFIED = "success"
ALREADY_VERIFIED = "already"
PENDING_APPROVAL = "pending_approval"


def _mask(email: str | None) -> str:
    if not email or "@" not in email:
        return "<none>"
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"


def attender_row(reg: Registration, account_email: str | None = None) -> dict:
    """Project a registration row onto the attender shape.

    ``account_email`` is the signed-in registrant's login email; anonymous
    rows carry their own.
    """
    answers = reg.custom_answers if isinstance(reg.custom_answers, dict) else {}
    profile = reg.profile or {}
    if reg.is_anonymous:
        name = reg.anonymous_name or "Anonymous"
        avatar = None
    else:
        name = profile.get("full_name") or "Unknown User"
        avatar = profile.get("avatar_url")
    return {
        "id": reg.id,
        "name": name,
        "email": reg.anonymous_email if reg.is_anonymous else account_email,
        "phone": answers.get(PHONE_KEY) or reg.anonymous_phone,
        "avatar_url": avatar,
        "rsvp_status": reg.rsvp_status,
        "approval_status": reg.approval_status,
        "is_verified": reg.is_verified,
        "registered_at": reg.registered_at,
        "is_anonymous": reg.is_anonymous,
        "custom_answers": reg.custom_answers,
    }


class RegistrationService:
    """Registration operations for one request.

    ``events`` and ``registrations`` are bound to the caller's Supabase
    context; verification runs on a service-context store since the
    verifying browser usually has no session.
    """

    def __init__(
        self,
        events: EventStore,
        registrations: RegistrationStore,
        notifier: NotificationPort | None = None,
        users: UserDirectory | None = None,
        base_url: str | None = None,
        clock: Callable[[], datetime] | None = None,
        token_ttl_hours: int | None = None,
    ) -> None:
        from luhive.config import settings

        self._events = events
        self._registrations = registrations
        self._notifier = notifier
        self._users = users
        self._base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._token_ttl = timedelta(
            hours=token_ttl_hours if token_ttl_hours is not None else settings.VERIFICATION_TOKEN_TTL_HOURS
        )

    # -- helpers ----------------------------------------------------------

    def _event_link(self, event_id: str) -> str:
        return f"{self._base_url}/events/{event_id}"

    def _verification_link(self, event_id: str, token: str) -> str:
        return f"{self._base_url}/api/events/{event_id}/verify?token={token}"

    async def _get_event(self, event_id: str) -> Event:
        try:
            event = await self._events.get_event(event_id)
        except BackendError as exc:
            logger.error("Failed to load event %s: %s", event_id, exc.message)
            raise ExternalProviderError("Failed to load event") from exc
        if event is None:
            raise NotFound("Event not found")
        return event

    async def _require_manager(self, event: Event, user: AuthUser | None) -> None:
        if user is None:
            raise Unauthenticated()
        try:
            role = await self._events.get_member_role(event.community_id, user.id)
        except BackendError as exc:
            logger.error("Failed to check membership for user %s: %s", user.id, exc.message)
            raise PermissionDenied() from exc
        if role not in MANAGER_ROLES:
            raise PermissionDenied()

    async def _send(self, message: emails.EmailMessage) -> None:
        if self._notifier is None or not message.to:
            return
        try:
            await self._notifier.send_email(message.to, message.subject, message.text)
        except NotificationError as exc:
            logger.warning("Failed to send '%s' to %s: %s", message.subject, _mask(message.to), exc)

    async def _insert(
        self,
        row: dict,
        email: str | None,
        is_verified: bool | None,
        failure: str,
    ) -> Registration:
        try:
            return await self._registrations.insert(row)
        except BackendError as exc:
            duplicate = sanitize_duplicate_error(exc, email=email, is_verified=is_verified)
            if duplicate:
                raise DuplicateRegistration(duplicate) from exc
            logger.error("Error creating registration for event %s: %s (%s)", row["event_id"], exc.message, exc.code)
            raise ExternalProviderError(failure) from exc

    async def _existing_by_email(self, event_id: str, email: str) -> Registration | None:
        try:
            return await self._registrations.find_by_email(event_id, email)
        except BackendError as exc:
            logger.warning("Existing registration lookup failed: %s", exc.message)
            return None

    @staticmethod
    def _require_name_and_email(name: str | None, email: str | None) -> tuple[str, str]:
        name = (name or "").strip()
        email = (email or "").strip().lower()
        errors = []
        if not name:
            errors.append({"field": "name", "message": "Name is required"})
        if not email:
            errors.append({"field": "email", "message": "Email is required"})
        if errors:
            raise ValidationError(errors, message="Name and email are required")
        return name, email

    @staticmethod
    def _approval_for(event: Event) -> ApprovalStatus:
        return ApprovalStatus.PENDING if event.is_approve_required else ApprovalStatus.APPROVED

    # -- registration -----------------------------------------------------

    async def register_anonymous(
        self,
        event_id: str,
        name: str | None,
        email: str | None,
        custom_answers: dict | None = None,
    ) -> Registration:
        """Create an unverified registration and email a verification link."""
        name, email = self._require_name_and_email(name, email)
        event = await self._get_event(event_id)

        config = load_config(event.custom_questions)
        if config is not None and config.has_questions:
            require_valid_answers(custom_answers, config)

        existing = await self._existing_by_email(event_id, email)
        if existing is not None and existing.is_verified:
            raise DuplicateRegistration(ALREADY_REGISTERED)

        token = secrets.token_hex(32)
        expires_at = self._clock() + self._token_ttl
        registration = await self._insert(
            {
                "event_id": event_id,
                "anonymous_name": name,
                "anonymous_email": email,
                "rsvp_status": RSVPStatus.GOING.value,
                "is_verified": False,
                "verification_token": token,
                "token_expires_at": expires_at.isoformat(),
                "approval_status": self._approval_for(event).value,
                "custom_answers": custom_answers,
            },
            email=email,
            is_verified=existing.is_verified if existing else None,
            failure="Failed to create registration. Please try again.",
        )
        logger.info("Anonymous registration %s created for event %s", registration.id, event_id)

        await self._send(emails.verification_email(
            event, email, name, self._verification_link(event_id, token),
        ))
        return registration

    async def register_user(
        self,
        event_id: str,
        user: AuthUser | None,
        custom_answers: dict | None = None,
        display_name: str | None = None,
    ) -> Registration:
        """Register a signed-in user. Verified immediately."""
        if user is None:
            raise Unauthenticated("Please login to register for this event")
        event = await self._get_event(event_id)

        config = load_config(event.custom_questions)
        if config is not None and config.has_questions:
            require_valid_answers(custom_answers, config)

        if user.email:
            existing = await self._existing_by_email(event_id, user.email.lower())
            if existing is not None:
                raise DuplicateRegistration(ALREADY_REGISTERED)

        approval = self._approval_for(event)
        registration = await self._insert(
            {
                "event_id": event_id,
                "user_id": user.id,
                "rsvp_status": RSVPStatus.GOING.value,
                "is_verified": True,
                "approval_status": approval.value,
                "custom_answers": custom_answers,
            },
            email=user.email,
            is_verified=None,
            failure="Failed to create registration. Please try again.",
        )
        logger.info("User %s registered for event %s (%s)", user.id, event_id, approval.value)

        name = display_name or "there"
        if approval is ApprovalStatus.PENDING:
            message = emails.request_received_email(event, user.email or "", name, self._event_link(event_id))
        else:
            message = emails.confirmation_email(event, user.email or "", name, self._event_link(event_id))
        await self._send(message)
        return registration

    async def subscribe(
        self,
        event_id: str,
        name: str | None = None,
        email: str | None = None,
        user: AuthUser | None = None,
    ) -> Registration:
        """Subscribe to updates for an externally hosted event."""
        event = await self._get_event(event_id)
        if event.registration_type != "external":
            raise ValidationError(
                [{"field": "event", "message": "Subscribe is only available for external events"}],
                message="Subscribe is only available for external events",
            )

        row = {
            "event_id": event_id,
            "rsvp_status": RSVPStatus.GOING.value,
            "is_verified": True,
            "approval_status": ApprovalStatus.APPROVED.value,
        }
        if user is not None:
            row["user_id"] = user.id
            email = user.email
            name = name or "there"
        else:
            name, email = self._require_name_and_email(name, email)
            existing = await self._existing_by_email(event_id, email)
            if existing is not None:
                raise DuplicateRegistration("This email is already subscribed to this event")
            row["anonymous_name"] = name
            row["anonymous_email"] = email

        registration = await self._insert(
            row, email=email, is_verified=True, failure="Failed to subscribe. Please try again.",
        )
        logger.info("Subscription %s created for external event %s", registration.id, event_id)

        await self._send(emails.subscription_email(event, email or "", name, self._event_link(event_id)))
        return registration

    async def unregister(self, event_id: str, user: AuthUser | None) -> str:
        """Remove the signed-in user's own registration or subscription."""
        if user is None:
            raise Unauthenticated()
        event = await self._get_event(event_id)
        try:
            await self._registrations.delete_for_user(event_id, user.id)
        except BackendError as exc:
            logger.error("Failed to unregister user %s from %s: %s", user.id, event_id, exc.message)
            raise ExternalProviderError("Failed to cancel registration") from exc
        if event.registration_type == "external":
            return "Unsubscribed from event updates"
        return "Registration cancelled"

    # -- verification -----------------------------------------------------

    async def verify_registration(self, event_id: str, token: str | None) -> str:
        """Consume a verification token.

        Returns VERIFIED, ALREADY_VERIFIED or PENDING_APPROVAL. Raises
        ValidationError for missing, unknown, mismatched or expired tokens.
        """
        if not token:
            raise ValidationError(
                [{"field": "token", "message": "Verification token is required"}],
                message="Verification token is required",
            )

        try:
            registration = await self._registrations.find_by_token(token)
        except BackendError as exc:
            logger.error("Verification lookup failed: %s", exc.message)
            raise ExternalProviderError("Database error") from exc

        def invalid(message: str) -> ValidationError:
            return ValidationError([{"field": "token", "message": message}], message=message)

        if registration is None:
            raise invalid("Invalid or expired verification link")
        if registration.event_id != event_id:
            raise invalid("Invalid verification link for this event")
        if registration.token_expires_at:
            expires_at = datetime.fromisoformat(registration.token_expires_at.replace("Z", "+00:00"))
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if self._clock() > expires_at:
                raise invalid("Verification link has expired")

        if registration.is_verified:
            return ALREADY_VERIFIED

        try:
            await self._registrations.update(
                event_id,
                registration.id,
                {"is_verified": True, "verification_token": None, "token_expires_at": None},
            )
        except BackendError as exc:
            logger.error("Failed to verify registration %s: %s", registration.id, exc.message)
            raise ExternalProviderError("Failed to verify registration") from exc

        if registration.approval_status == ApprovalStatus.PENDING.value:
            return PENDING_APPROVAL

        try:
            event = await self._get_event(event_id)
        except (NotFound, ExternalProviderError):
            logger.warning("Event %s unavailable after verification, skipping email", event_id)
            return VERIFIED

        name = registration.anonymous_name or "there"
        to = registration.anonymous_email or ""
        if event.registration_type == "external":
            message = emails.subscription_email(event, to, name, self._event_link(event_id))
        else:
            message = emails.confirmation_email(event, to, name, self._event_link(event_id))
        await self._send(message)
        return VERIFIED

    # -- organizer operations ---------------------------------------------

    async def update_approval_status(
        self,
        event_id: str,
        registration_id: str,
        status: str,
        user: AuthUser | None,
    ) -> ApprovalStatus:
        if user is None:
            raise Unauthenticated()
        if status not in (ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value):
            raise ValidationError([{"field": "status", "message": "Invalid status"}], message="Invalid status")
        new_status = ApprovalStatus(status)

        event = await self._get_event(event_id)
        await self._require_manager(event, user)

        try:
            await self._registrations.update(event_id, registration_id, {"approval_status": new_status.value})
        except BackendError as exc:
            logger.error("Error updating registration %s: %s", registration_id, exc.message)
            raise ExternalProviderError("Failed to update status") from exc
        logger.info("Registration %s marked %s by %s", registration_id, new_status.value, user.id)

        try:
            registration = await self._registrations.get(event_id, registration_id)
        except BackendError as exc:
            logger.warning("Status updated but registration %s could not be reloaded: %s", registration_id, exc.message)
            return new_status

        if registration is not None and registration.anonymous_email:
            await self._send(emails.status_update_email(
                event,
                registration.anonymous_email,
                registration.anonymous_name or "there",
                new_status,
                self._event_link(event_id),
            ))
        return new_status

    async def delete_registration(self, event_id: str, registration_id: str, user: AuthUser | None) -> None:
        if user is None:
            raise Unauthenticated()
        event = await self._get_event(event_id)
        await self._require_manager(event, user)
        try:
            await self._registrations.delete(event_id, registration_id)
        except BackendError as exc:
            logger.error("Error deleting registration %s: %s", registration_id, exc.message)
            raise ExternalProviderError("Failed to delete registration") from exc
        logger.info("Registration %s deleted by %s", registration_id, user.id)

    async def list_attenders(self, event_id: str, user: AuthUser | None) -> list[Attender]:
        """Full attenders table for the event's organizers."""
        event = await self._get_event(event_id)
        await self._require_manager(event, user)
        try:
            registrations = await self._registrations.list_for_event(event_id)
        except BackendError as exc:
            logger.error("Error fetching attenders for %s: %s", event_id, exc.message)
            raise ExternalProviderError("Failed to fetch attenders") from exc

        emails_by_user = await self._account_emails(r.user_id for r in registrations if r.user_id)
        return validate_attenders([
            attender_row(r, emails_by_user.get(r.user_id or "")) for r in registrations
        ])

    async def _account_emails(self, user_ids) -> dict[str, str]:
        """Login emails for signed-in registrants. A failed lookup leaves that email out."""
        if self._users is None:
            return {}
        unique_ids = list(dict.fromkeys(user_ids))

        async def lookup(user_id: str) -> str | None:
            try:
                return await self._users.get_email(user_id)
            except (BackendError, ClientContextError) as exc:
                logger.warning("Failed to fetch email for user %s: %s", user_id, exc)
                return None

        found = await asyncio.gather(*(lookup(uid) for uid in unique_ids))
        return {uid: email for uid, email in zip(unique_ids, found) if email}

    async def list_public_attendees(self, event_id: str) -> list[dict]:
        """Verified, going and approved attendees as shown on the event page."""
        try:
            registrations = await self._registrations.list_for_event(event_id)
        except BackendError as exc:
            logger.error("Error fetching attendees for %s: %s", event_id, exc.message)
            raise ExternalProviderError("Failed to fetch attendees") from exc

        attendees = []
        for reg in registrations:
            if not reg.is_verified or reg.rsvp_status != RSVPStatus.GOING.value:
                continue
            if reg.approval_status not in (None, ApprovalStatus.APPROVED.value):
                continue
            row = attender_row(reg)
            if row["name"] == "Unknown User":
                continue
            attendees.append({"id": row["id"], "name": row["name"], "avatar_url": row["avatar_url"]})
        return attendees
