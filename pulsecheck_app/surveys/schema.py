"""
Schema types shared by feedback forms and questionnaires.

A FormSchema is an ordered list of typed questions. Multi-section schemas
also carry, on each question, a copy of its section's title and description
(``section_metadata``) so that renderers never need to resolve sections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from pulsecheck_app.core import errors
from pulsecheck_app.core.store import (
    FEEDBACK_FORMS,
    FEEDBACK_RESPONSES,
    QUESTIONNAIRE_RESPONSES,
    QUESTIONNAIRES,
)

RATING = "rating"
TEXT = "text"
MULTI_CHOICE = "multiChoice"
LABEL = "label"
QUESTION_TYPES = (RATING, TEXT, MULTI_CHOICE, LABEL)

RATING_MIN = 1
RATING_MAX = 5


@dataclass(frozen=True)
class FormKind:
    """Feedback forms and questionnaires share a shape but not storage."""

    share_kind: str
    collection: str
    response_collection: str
    label: str
    export_subject: str


FEEDBACK = FormKind(
    share_kind="feedback",
    collection=FEEDBACK_FORMS,
    response_collection=FEEDBACK_RESPONSES,
    label="feedback form",
    export_subject="feedback",
)
QUESTIONNAIRE = FormKind(
    share_kind="questionnaires",
    collection=QUESTIONNAIRES,
    response_collection=QUESTIONNAIRE_RESPONSES,
    label="questionnaire",
    export_subject="questionnaire",
)
FORM_KINDS = {kind.share_kind: kind for kind in (FEEDBACK, QUESTIONNAIRE)}


@dataclass
class SectionMetadata:
    section_id: str
    section_title: str
    section_description: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "section_id": self.section_id,
            "section_title": self.section_title,
            "section_description": self.section_description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SectionMetadata | None:
        if not data:
            return None
        return cls(
            section_id=str(data.get("section_id", "")),
            section_title=data.get("section_title", ""),
            section_description=data.get("section_description", ""),
        )


@dataclass
class Question:
    id: str
    type: str
    question_text: str = ""
    required: bool = True
    options: list[str] | None = None
    multiple_select: bool | None = None
    section_id: str | None = None
    section_metadata: SectionMetadata | None = None

    @property
    def is_label(self) -> bool:
        return self.type == LABEL

    @property
    def is_multi_select(self) -> bool:
        return self.type == MULTI_CHOICE and bool(self.multiple_select)

    @property
    def collects_answer(self) -> bool:
        return not self.is_label

    @property
    def is_required(self) -> bool:
        # Labels never collect a value, whatever the stored flag says
        return self.required and not self.is_label

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "question_text": self.question_text,
            "required": self.is_required,
        }
        if self.type == MULTI_CHOICE:
            data["options"] = list(self.options or [])
            data["multiple_select"] = bool(self.multiple_select)
        if self.section_id:
            data["section_id"] = self.section_id
        if self.section_metadata is not None:
            data["section_metadata"] = self.section_metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Question:
        q_type = data.get("type")
        options = data.get("options")
        return cls(
            id=str(data.get("id", "")),
            type=q_type,
            question_text=data.get("question_text", ""),
            required=bool(data.get("required", q_type != LABEL)),
            options=list(options) if options is not None else None,
            multiple_select=data.get("multiple_select"),
            section_id=data.get("section_id") or None,
            section_metadata=SectionMetadata.from_dict(data.get("section_metadata")),
        )


@dataclass
class Section:
    """Builder-only grouping; published schemas keep it on each question."""

    id: str
    title: str = ""
    description: str = ""
    question_ids: list[str] = field(default_factory=list)

    def metadata(self) -> SectionMetadata:
        return SectionMetadata(
            section_id=self.id,
            section_title=self.title,
            section_description=self.description,
        )


@dataclass
class FormSchema:
    id: str
    title: str
    location: str
    questions: list[Question] = field(default_factory=list)
    description: str = ""
    created_at: datetime | None = None
    is_active: bool = True
    is_multi_section: bool = False
    category: str | None = None
    target_audience: str | None = None

    def question(self, question_id: str) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def answerable_questions(self) -> list[Question]:
        return [q for q in self.questions if q.collects_answer]

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "questions": [q.to_dict() for q in self.questions],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "is_active": self.is_active,
            "is_multi_section": self.is_multi_section,
        }
        if self.category is not None:
            document["category"] = self.category
        if self.target_audience is not None:
            document["target_audience"] = self.target_audience
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> FormSchema:
        created_at = document.get("created_at")
        if isinstance(created_at, str):
            created_at = parse_datetime(created_at)
        return cls(
            id=str(document.get("id", "")),
            title=document.get("title", ""),
            location=document.get("location", ""),
            questions=[Question.from_dict(q) for q in document.get("questions") or []],
            description=document.get("description") or "",
            created_at=created_at,
            is_active=document.get("is_active", True),
            is_multi_section=bool(document.get("is_multi_section", False)),
            category=document.get("category"),
            target_audience=document.get("target_audience"),
        )


def validate_location(location: str) -> None:
    if not location:
        raise errors.ValidationError("Please select a location.")
    if location not in settings.PULSECHECK_LOCATIONS:
        raise errors.ValidationError(f"Unknown location: {location}")


def validate_schema(schema: FormSchema) -> None:
    """Raise ValidationError for a schema that may not be published."""
    if not schema.title.strip() or not schema.location or not schema.questions:
        raise errors.ValidationError(
            "Please fill in all required fields and add at least one question"
        )
    validate_location(schema.location)

    if (
        schema.category
        and schema.category not in settings.PULSECHECK_QUESTIONNAIRE_CATEGORIES
    ):
        raise errors.ValidationError(f"Unknown questionnaire category: {schema.category}")

    seen = set()
    for position, question in enumerate(schema.questions, start=1):
        if question.type not in QUESTION_TYPES:
            raise errors.ValidationError(
                f"Question {position} has an unknown type: {question.type}"
            )
        if question.id in seen:
            raise errors.ValidationError(f"Duplicate question id: {question.id}")
        seen.add(question.id)
        if not question.question_text.strip():
            raise errors.ValidationError(f"Question {position} needs some text")
        if question.type == MULTI_CHOICE:
            if not [o for o in question.options or [] if o.strip()]:
                raise errors.ValidationError(
                    f"Question {position} needs at least one option"
                )


def now_iso() -> str:
    return timezone.now().isoformat()
