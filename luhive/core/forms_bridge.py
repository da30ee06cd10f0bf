"""
Luhive Events: Google Forms to attender bridge.

Translates parsed form structure into a CustomQuestionsConfig and parsed
responses into Attender rows, so externally collected registrations show
up in the same attenders table as native ones.

Name, email and phone are detected by question title; every other question
becomes a custom question keyed by the provider's question id.
"""

from __future__ import annotations

import re

from luhive.core.custom_questions import PHONE_KEY
from luhive.data.models import (
    Attender,
    CustomQuestion,
    CustomQuestionsConfig,
    PhoneQuestionConfig,
    RSVPStatus,
)
from luhive.integrations.google_forms import ParsedQuestion, ParsedResponse

_NAME_TITLE = re.compile(r"\bname\b", re.IGNORECASE)
_EMAIL_TITLE = re.compile(r"\be-?mail\b", re.IGNORECASE)
_PHONE_TITLE = re.compile(r"\b(phone|mobile|telephone|whatsapp)\b", re.IGNORECASE)


def classify_question(question: ParsedQuestion) -> str | None:
    """Return "email", "phone" or "name" for identity questions, else None.

    Email is checked first since titles like "Email (name@...)" mention both.
    """
    if _EMAIL_TITLE.search(question.title):
        return "email"
    if _PHONE_TITLE.search(question.title):
        return "phone"
    if _NAME_TITLE.search(question.title):
        return "name"
    return None


def questions_to_config(questions: list[ParsedQuestion]) -> CustomQuestionsConfig:
    phone = PhoneQuestionConfig()
    custom: list[CustomQuestion] = []
    for question in questions:
        kind = classify_question(question)
        if kind == "phone" and not phone.enabled:
            phone = PhoneQuestionConfig(enabled=True, required=question.required)
        elif kind is None:
            custom.append(CustomQuestion(
                id=question.question_id,
                label=question.title,
                required=question.required,
                order=len(custom),
            ))
    return CustomQuestionsConfig(phone=phone, custom=custom)


def _text(value: str | list[str] | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        value = ", ".join(v for v in value if v)
    return value.strip() or None


def response_to_attender(response: ParsedResponse, questions: list[ParsedQuestion]) -> Attender:
    """Project one form response onto an anonymous, verified attender."""
    identity: dict[str, str] = {}
    custom_answers: dict[str, str] = {}

    for question in questions:
        answer = response.answers.get(question.question_id)
        value = _text(answer.value) if answer else None
        if value is None:
            continue
        kind = classify_question(question)
        if kind is None:
            custom_answers[question.question_id] = value
        elif kind not in identity:
            identity[kind] = value

    if "phone" in identity:
        custom_answers[PHONE_KEY] = identity["phone"]

    return Attender(
        id=response.response_id,
        name=identity.get("name") or "Anonymous",
        email=identity.get("email"),
        phone=identity.get("phone"),
        rsvp_status=RSVPStatus.GOING,
        is_verified=True,
        registered_at=response.last_submitted_time or response.create_time or None,
        is_anonymous=True,
        custom_answers=custom_answers or None,
    )


def responses_to_attenders(
    responses: list[ParsedResponse], questions: list[ParsedQuestion]
) -> list[Attender]:
    return [response_to_attender(r, questions) for r in responses]
