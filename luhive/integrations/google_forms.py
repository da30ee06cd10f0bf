"""
Luhive Events: Google Forms API access and parsing.

Read-side of the external form bridge: lists the organizer's forms via
Drive, fetches a form's structure and responses via the Forms API, and
parses the provider's heterogeneous item structure into ParsedQuestion /
ParsedResponse. Nothing fetched here is cached beyond the request.

The googleapiclient calls are blocking and run via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from luhive.core.errors import ExternalProviderError, TokenExpired

logger = logging.getLogger(__name__)

_FORM_MIME_TYPE = "application/vnd.google-apps.form"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    CHECKBOX = "checkbox"
    DROPDOWN = "dropdown"
    SHORT_TEXT = "short_text"
    PARAGRAPH = "paragraph"
    SCALE = "scale"
    DATE = "date"
    TIME = "time"
    FILE_UPLOAD = "file_upload"
    GRID = "grid"
    UNKNOWN = "unknown"


_CHOICE_TYPES = {
    "RADIO": QuestionType.MULTIPLE_CHOICE,
    "CHECKBOX": QuestionType.CHECKBOX,
    "DROP_DOWN": QuestionType.DROPDOWN,
}


@dataclass
class ParsedQuestion:
    item_id: str
    title: str
    question_id: str
    required: bool
    type: QuestionType
    choices: list[str] | None = None
    low: int | None = None
    high: int | None = None
    low_label: str | None = None
    high_label: str | None = None

    def to_dict(self) -> dict:
        body: dict = {
            "itemId": self.item_id,
            "title": self.title,
            "questionId": self.question_id,
            "required": self.required,
            "type": self.type.value,
        }
        if self.choices is not None:
            body["choices"] = self.choices
        for key, value in (
            ("low", self.low), ("high", self.high),
            ("lowLabel", self.low_label), ("highLabel", self.high_label),
        ):
            if value is not None:
                body[key] = value
        return body


@dataclass
class ParsedAnswer:
    question_title: str
    value: str | list[str] | None


@dataclass
class ParsedResponse:
    response_id: str
    create_time: str
    last_submitted_time: str
    answers: dict[str, ParsedAnswer] = field(default_factory=dict)

    def answers_by_title(self) -> dict[str, str | list[str] | None]:
        return {a.question_title: a.value for a in self.answers.values()}

    def to_dict(self) -> dict:
        return {
            "responseId": self.response_id,
            "createTime": self.create_time,
            "lastSubmittedTime": self.last_submitted_time,
            "answers": {
                qid: {"questionTitle": a.question_title, "value": a.value}
                for qid, a in self.answers.items()
            },
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def get_question_type(question: dict) -> QuestionType:
    """Map a Forms API question object onto QuestionType.

    Anything unrecognized maps to UNKNOWN so provider schema additions never
    break parsing.
    """
    if not isinstance(question, dict):
        return QuestionType.UNKNOWN

    choice = question.get("choiceQuestion")
    if isinstance(choice, dict):
        return _CHOICE_TYPES.get(choice.get("type", ""), QuestionType.UNKNOWN)
    text = question.get("textQuestion")
    if text is not None:
        return QuestionType.PARAGRAPH if (text or {}).get("paragraph") else QuestionType.SHORT_TEXT
    if "scaleQuestion" in question:
        return QuestionType.SCALE
    if "dateQuestion" in question:
        return QuestionType.DATE
    if "timeQuestion" in question:
        return QuestionType.TIME
    if "fileUploadQuestion" in question:
        return QuestionType.FILE_UPLOAD
    if "rowQuestion" in question:
        return QuestionType.GRID
    return QuestionType.UNKNOWN


def parse_question(item: dict) -> ParsedQuestion | None:
    """Parse one form item. Non-question items (sections, images) yield None."""
    question_item = item.get("questionItem")
    if not isinstance(question_item, dict):
        return None
    question = question_item.get("question") or {}

    parsed = ParsedQuestion(
        item_id=str(item.get("itemId", "")),
        title=item.get("title") or "Untitled Question",
        question_id=str(question.get("questionId", "")),
        required=bool(question.get("required", False)),
        type=get_question_type(question),
    )

    choice = question.get("choiceQuestion")
    if isinstance(choice, dict):
        parsed.choices = [opt.get("value", "") for opt in choice.get("options", []) if isinstance(opt, dict)]

    scale = question.get("scaleQuestion")
    if isinstance(scale, dict):
        parsed.low = scale.get("low")
        parsed.high = scale.get("high")
        parsed.low_label = scale.get("lowLabel")
        parsed.high_label = scale.get("highLabel")

    return parsed


def parse_form_questions(form: dict) -> list[ParsedQuestion]:
    questions = []
    for item in form.get("items") or []:
        parsed = parse_question(item)
        if parsed is not None:
            questions.append(parsed)
    return questions


def _answer_value(answer: dict) -> str | list[str] | None:
    text_answers = answer.get("textAnswers")
    if isinstance(text_answers, dict):
        values = [a.get("value", "") for a in text_answers.get("answers", [])]
        return values[0] if len(values) == 1 else values
    file_answers = answer.get("fileUploadAnswers")
    if isinstance(file_answers, dict):
        return [a.get("fileName", "") for a in file_answers.get("answers", [])]
    return None


def parse_response(response: dict, questions: list[ParsedQuestion]) -> ParsedResponse:
    titles = {q.question_id: q.title for q in questions}
    parsed = ParsedResponse(
        response_id=response.get("responseId", ""),
        create_time=response.get("createTime", ""),
        last_submitted_time=response.get("lastSubmittedTime", ""),
    )
    for question_id, answer in (response.get("answers") or {}).items():
        parsed.answers[question_id] = ParsedAnswer(
            question_title=titles.get(question_id, question_id),
            value=_answer_value(answer) if isinstance(answer, dict) else None,
        )
    return parsed


def parse_responses(responses: list[dict], questions: list[ParsedQuestion]) -> list[ParsedResponse]:
    return [parse_response(r, questions) for r in responses]


# ---------------------------------------------------------------------------
# API access
# ---------------------------------------------------------------------------


def _provider_error(exc: Exception, action: str) -> ExternalProviderError:
    status = getattr(getattr(exc, "resp", None), "status", None)
    if status == 401 or "invalid_grant" in str(exc):
        return TokenExpired(diagnostic=str(exc))
    return ExternalProviderError(f"Failed to {action}", diagnostic=str(exc))


async def list_forms(credentials: Any) -> list[dict]:
    """List the user's forms (newest first) via the Drive API."""
    def _list() -> list[dict]:
        drive = build("drive", "v3", credentials=credentials, cache_discovery=False)
        result = drive.files().list(
            q=f"mimeType='{_FORM_MIME_TYPE}'",
            fields="files(id, name, createdTime, modifiedTime, webViewLink)",
            orderBy="modifiedTime desc",
            pageSize=100,
        ).execute()
        return result.get("files", [])

    try:
        forms = await asyncio.to_thread(_list)
    except (HttpError, OSError, ValueError) as exc:
        logger.error("Google Drive error (list_forms): %s", exc)
        raise _provider_error(exc, "list forms") from exc
    logger.info("Found %d Google form(s)", len(forms))
    return forms


async def get_form(credentials: Any, form_id: str) -> dict:
    def _get() -> dict:
        forms = build("forms", "v1", credentials=credentials, cache_discovery=False)
        return forms.forms().get(formId=form_id).execute()

    try:
        return await asyncio.to_thread(_get)
    except (HttpError, OSError, ValueError) as exc:
        logger.error("Google Forms error (get_form %s): %s", form_id, exc)
        raise _provider_error(exc, "get form") from exc


async def get_form_responses(credentials: Any, form_id: str) -> list[dict]:
    def _list() -> list[dict]:
        forms = build("forms", "v1", credentials=credentials, cache_discovery=False)
        responses: list[dict] = []
        request = forms.forms().responses().list(formId=form_id)
        while request is not None:
            page = request.execute()
            responses.extend(page.get("responses", []))
            token = page.get("nextPageToken")
            request = (
                forms.forms().responses().list(formId=form_id, pageToken=token)
                if token else None
            )
        return responses

    try:
        return await asyncio.to_thread(_list)
    except (HttpError, OSError, ValueError) as exc:
        logger.error("Google Forms error (responses %s): %s", form_id, exc)
        raise _provider_error(exc, "load form responses") from exc
