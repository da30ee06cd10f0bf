"""Custom registration questions: validation, interpretation and export.

Answers are stored as free-form JSON on the registration row. They are only
given meaning here, lazily, against the event's CustomQuestionsConfig.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from luhive.core.errors import ValidationError
from luhive.data.models import CustomQuestion, CustomQuestionsConfig

MAX_ANSWER_LENGTH = 500
PHONE_KEY = "phone"

_E164 = re.compile(r"^\+[1-9]\d{1,14}$")
_PHONE_FORMAT_HINT = (
    "Please enter a valid phone number in international format (e.g., +994501234567)"
)


def create_new_custom_question(order: int) -> CustomQuestion:
    return CustomQuestion(id=str(uuid.uuid4()), label="", required=False, order=order)


def load_config(raw: Any) -> CustomQuestionsConfig | None:
    """Parse the event's stored question config. None stays None."""
    if raw is None:
        return None
    if isinstance(raw, CustomQuestionsConfig):
        return raw
    try:
        return CustomQuestionsConfig.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(
            [{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()],
            message="Invalid custom questions configuration",
        ) from exc


def is_valid_phone_number(phone: str) -> bool:
    """E.164: a plus sign followed by 2 to 15 digits, no leading zero."""
    return bool(_E164.match(phone.strip()))


def format_phone_number(phone: str) -> str:
    """Group an E.164 number for display: +994501234567 -> +994 50 12 34 56 7."""
    if not phone:
        return ""

    cleaned = re.sub(r"[^\d+]", "", phone)
    if not cleaned.startswith("+"):
        return phone

    match = re.match(r"^\+(\d{1,3})(\d+)$", cleaned)
    if not match:
        return phone

    country_code, number = match.groups()
    pairs = [number[i:i + 2] for i in range(0, len(number), 2)]
    return f"+{country_code} {' '.join(pairs)}"


def _answer_text(answers: dict, key: str) -> str:
    value = answers.get(key)
    return value if isinstance(value, str) else ""


def validate_custom_answers(
    answers: dict | None,
    config: CustomQuestionsConfig | None,
) -> tuple[bool, dict[str, str]]:
    """Check answers against the config. Returns (valid, {field: message})."""
    errors: dict[str, str] = {}
    if config is None:
        return True, errors

    answers = answers or {}
    phone = _answer_text(answers, PHONE_KEY).strip()

    if config.phone.enabled and config.phone.required:
        if not phone:
            errors[PHONE_KEY] = "Phone number is required"
        elif not is_valid_phone_number(phone):
            errors[PHONE_KEY] = _PHONE_FORMAT_HINT
    elif config.phone.enabled and phone and not is_valid_phone_number(phone):
        errors[PHONE_KEY] = _PHONE_FORMAT_HINT

    for question in config.custom:
        answer = _answer_text(answers, question.id)
        if question.required and not answer.strip():
            errors[question.id] = "This field is required"
        elif len(answer) > MAX_ANSWER_LENGTH:
            errors[question.id] = f"Answer must be {MAX_ANSWER_LENGTH} characters or less"

    return not errors, errors


def require_valid_answers(answers: dict | None, config: CustomQuestionsConfig | None) -> None:
    """Raise ValidationError listing every invalid answer."""
    valid, errors = validate_custom_answers(answers, config)
    if not valid:
        raise ValidationError([{"field": k, "message": v} for k, v in errors.items()])


# ---------------------------------------------------------------------------
# Tagged view over stored answers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PhoneAnswer:
    value: str

    @property
    def display(self) -> str:
        return format_phone_number(self.value)


@dataclass(frozen=True)
class QuestionAnswer:
    question: CustomQuestion
    value: str


@dataclass(frozen=True)
class ExtraField:
    """A stored key the current config does not know about."""

    key: str
    value: Any


Answer = Union[PhoneAnswer, QuestionAnswer, ExtraField]


def interpret_answers(answers: Any, config: CustomQuestionsConfig | None) -> list[Answer]:
    """Interpret stored answers against the active config.

    Known questions come first in display order, then the phone answer,
    then any extra keys. Non-dict payloads yield nothing.
    """
    if not isinstance(answers, dict):
        return []

    result: list[Answer] = []
    known: set[str] = set()
    if config is not None:
        for question in config.ordered():
            known.add(question.id)
            if question.id in answers:
                result.append(QuestionAnswer(question, str(answers[question.id])))
        if config.phone.enabled:
            known.add(PHONE_KEY)
            if answers.get(PHONE_KEY):
                result.append(PhoneAnswer(str(answers[PHONE_KEY])))

    for key, value in answers.items():
        if key not in known:
            result.append(ExtraField(key, value))
    return result


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def get_csv_headers(config: CustomQuestionsConfig | None) -> list[str]:
    if config is None:
        return []
    headers = ["Phone"] if config.phone.enabled else []
    headers.extend(q.label for q in config.ordered())
    return headers


def flatten_custom_answers(answers: Any, config: CustomQuestionsConfig | None) -> dict[str, str]:
    """One column per configured question; '-' for missing answers."""
    flat: dict[str, str] = {}
    if config is None or not isinstance(answers, dict):
        return flat

    if config.phone.enabled:
        phone = answers.get(PHONE_KEY)
        flat["Phone"] = format_phone_number(phone) if phone else "-"

    for question in config.ordered():
        flat[question.label] = answers.get(question.id) or "-"
    return flat
