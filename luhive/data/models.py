"""
Luhive Events: Data Models.

Request-scoped projections of rows owned by Supabase. Nothing here is
persisted by this service; the adapters in luhive.adapters map rows onto
these shapes and back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, StrictBool, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from luhive.core.errors import ValidationError


class RSVPStatus(str, Enum):
    GOING = "going"
    NOT_GOING = "not_going"
    MAYBE = "maybe"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class AuthUser:
    """The authenticated Supabase user behind a session cookie."""

    id: str
    email: str | None = None


@dataclass
class Event:
    """An event row, trimmed to the fields the registration workflow reads."""

    id: str
    community_id: str
    title: str
    start_time: str                     # ISO timestamp
    timezone: str = "UTC"
    end_time: str | None = None
    description: str | None = None
    location_address: str | None = None
    online_meeting_link: str | None = None
    registration_deadline: str | None = None
    registration_type: str = "native"   # "native" | "external"
    external_registration_url: str | None = None
    is_approve_required: bool = False
    custom_questions: dict | None = None
    capacity: int | None = None


@dataclass
class Registration:
    """An event_registrations row, optionally joined with the user's profile."""

    id: str
    event_id: str
    rsvp_status: str = RSVPStatus.GOING.value
    is_verified: bool = False
    user_id: str | None = None
    anonymous_name: str | None = None
    anonymous_email: str | None = None
    anonymous_phone: str | None = None
    approval_status: str | None = None
    verification_token: str | None = None
    token_expires_at: str | None = None
    registered_at: str | None = None
    custom_answers: Any = None
    profile: dict | None = None

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id


@dataclass
class GoogleFormsToken:
    """Stored OAuth material for one user. One row per user."""

    user_id: str
    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expiry_date: str | None = None      # ISO timestamp
    scope: str | None = None
    updated_at: str | None = None


@dataclass
class TimeRemaining:
    """Time left until a registration deadline. Derived, never stored."""

    days: int
    hours: int
    formatted: str


@dataclass
class ConnectionStatus:
    connected: bool
    is_expired: bool | None = None
    last_updated: str | None = None
    message: str = ""

    def to_dict(self) -> dict:
        body: dict = {"connected": self.connected}
        if self.is_expired is not None:
            body["isExpired"] = self.is_expired
        if self.last_updated is not None:
            body["lastUpdated"] = self.last_updated
        if self.message:
            body["message"] = self.message
        return body


# ---------------------------------------------------------------------------
# Validated shapes
# ---------------------------------------------------------------------------


class Attender(BaseModel):
    """One row of the attenders table as shown to organizers."""

    id: StrictStr
    name: StrictStr
    email: StrictStr | None = None
    phone: StrictStr | None = None
    avatar_url: StrictStr | None = None
    rsvp_status: RSVPStatus
    approval_status: ApprovalStatus | None = None
    is_verified: StrictBool
    registered_at: StrictStr | None = None
    is_anonymous: StrictBool
    custom_answers: Any = None

    @property
    def effective_approval(self) -> ApprovalStatus:
        """Missing approval status means the event auto-approves."""
        return self.approval_status or ApprovalStatus.APPROVED


class PhoneQuestionConfig(BaseModel):
    enabled: bool = False
    required: bool = False


class CustomQuestion(BaseModel):
    id: str
    label: str
    required: bool = False
    order: int = 0


class CustomQuestionsConfig(BaseModel):
    phone: PhoneQuestionConfig = PhoneQuestionConfig()
    custom: list[CustomQuestion] = []

    @field_validator("custom")
    @classmethod
    def unique_ids(cls, v: list[CustomQuestion]) -> list[CustomQuestion]:
        seen: set[str] = set()
        for question in v:
            if question.id in seen:
                raise ValueError(f"Duplicate question id: {question.id}")
            seen.add(question.id)
        return v

    def ordered(self) -> list[CustomQuestion]:
        return sorted(self.custom, key=lambda q: q.order)

    @property
    def has_questions(self) -> bool:
        return self.phone.enabled or bool(self.custom)


def validate_attenders(rows: list[dict]) -> list[Attender]:
    """Validate a batch of attender dicts.

    Collects every violation in every row before raising, so the caller sees
    the full list at once.
    """
    attenders: list[Attender] = []
    errors: list[dict] = []
    for index, row in enumerate(rows):
        try:
            attenders.append(Attender.model_validate(row))
        except PydanticValidationError as exc:
            for err in exc.errors():
                errors.append({
                    "index": index,
                    "field": ".".join(str(part) for part in err["loc"]),
                    "message": err["msg"],
                })
    if errors:
        raise ValidationError(errors, message=f"{len(errors)} invalid attender field(s)")
    return attenders


# ---------------------------------------------------------------------------
# Presentation tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatusBadge:
    label: str
    variant: str
    class_name: str | None = field(default=None)


RSVP_STATUS_CONFIG: dict[RSVPStatus, StatusBadge] = {
    RSVPStatus.GOING: StatusBadge("Going", "default"),
    RSVPStatus.NOT_GOING: StatusBadge("Not Going", "destructive"),
    RSVPStatus.MAYBE: StatusBadge("Maybe", "secondary"),
}

APPROVAL_STATUS_CONFIG: dict[ApprovalStatus, StatusBadge] = {
    ApprovalStatus.APPROVED: StatusBadge(
        "Approved", "default", "bg-green-500 hover:bg-green-600",
    ),
    ApprovalStatus.REJECTED: StatusBadge(
        "Rejected", "destructive", "bg-red-400/50 hover:bg-red-400/60 text-red-800",
    ),
    ApprovalStatus.PENDING: StatusBadge(
        "Pending", "secondary", "bg-amber-500 hover:bg-amber-600 text-white",
    ),
}
