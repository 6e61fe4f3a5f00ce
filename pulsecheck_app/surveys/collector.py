"""
Response collector for feedback forms and questionnaires.

``render`` turns a published schema into the structure a front end draws;
``submit`` validates a respondent's answers against the schema and stores
exactly one response document. Validation always runs before any write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any
import uuid

from django.utils import timezone

from pulsecheck_app.core import errors
from pulsecheck_app.core.retry import retry_operation
from pulsecheck_app.core.store import DocumentStore

from .schema import (
    LABEL,
    MULTI_CHOICE,
    RATING,
    RATING_MAX,
    RATING_MIN,
    TEXT,
    FormKind,
    FormSchema,
    Question,
)

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"
MULTI_SELECT_SEPARATOR = ", "

WIDGETS = {
    RATING: "rating",
    TEXT: "textarea",
    LABEL: "label",
}


@dataclass
class RenderedField:
    question_id: str
    widget: str
    label: str
    required: bool
    options: list[str] = field(default_factory=list)
    choices: list[int] = field(default_factory=list)


@dataclass
class RenderedSection:
    section_id: str | None
    title: str
    description: str
    fields: list[RenderedField] = field(default_factory=list)


@dataclass
class RenderedForm:
    form_id: str
    title: str
    description: str
    location: str
    is_multi_section: bool
    sections: list[RenderedSection] = field(default_factory=list)


def _widget(question: Question) -> str:
    if question.type == MULTI_CHOICE:
        return "checkbox" if question.multiple_select else "radio"
    return WIDGETS.get(question.type, "textarea")


def render(schema: FormSchema) -> RenderedForm:
    """Group questions into ordered sections with a widget per question.

    Sections appear in order of their first question. Single-section
    schemas, and questions without section metadata, land in an untitled
    section.
    """
    form = RenderedForm(
        form_id=schema.id,
        title=schema.title,
        description=schema.description,
        location=schema.location,
        is_multi_section=schema.is_multi_section,
    )
    by_id: dict[str | None, RenderedSection] = {}
    for question in schema.questions:
        meta = question.section_metadata if schema.is_multi_section else None
        section_id = meta.section_id if meta else None
        section = by_id.get(section_id)
        if section is None:
            section = RenderedSection(
                section_id=section_id,
                title=meta.section_title if meta else "",
                description=meta.section_description if meta else "",
            )
            by_id[section_id] = section
            form.sections.append(section)
        section.fields.append(
            RenderedField(
                question_id=question.id,
                widget=_widget(question),
                label=question.question_text,
                required=question.is_required,
                options=[o for o in question.options or [] if o],
                choices=(
                    list(range(RATING_MIN, RATING_MAX + 1))
                    if question.type == RATING
                    else []
                ),
            )
        )
    return form


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v for v in value.split(MULTI_SELECT_SEPARATOR) if v != ""]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _is_missing(question: Question, value: Any) -> bool:
    if value is None or value == "":
        return True
    if question.is_multi_select:
        return len(_as_list(value)) == 0
    return False


def _clean_rating(question: Question, value: Any) -> int:
    try:
        if isinstance(value, bool):
            raise TypeError("bool is not a rating")
        rating = int(value)
    except (TypeError, ValueError):
        raise errors.ValidationError(
            f"'{question.question_text}' needs a rating from {RATING_MIN} to {RATING_MAX}"
        )
    if isinstance(value, float) and value != rating:
        raise errors.ValidationError(
            f"'{question.question_text}' needs a whole-number rating"
        )
    if not RATING_MIN <= rating <= RATING_MAX:
        raise errors.ValidationError(
            f"'{question.question_text}' needs a rating from {RATING_MIN} to {RATING_MAX}"
        )
    return rating


def _clean_choice(question: Question, value: Any) -> str | list[str]:
    options = [o for o in question.options or [] if o]
    if question.multiple_select:
        selected = _as_list(value)
        unknown = [v for v in selected if v not in options]
    else:
        selected = str(value)
        unknown = [] if selected in options else [selected]
    if unknown:
        raise errors.ValidationError(
            f"'{question.question_text}' has no option {', '.join(unknown)}"
        )
    return selected


def validate_answers(schema: FormSchema, answers: dict[str, Any]) -> None:
    """Reject the submission when any required question is unanswered."""
    missing = [
        q.question_text
        for q in schema.questions
        if q.is_required and _is_missing(q, answers.get(q.id))
    ]
    if missing:
        raise errors.ValidationError(
            "Please answer all required questions", missing=missing
        )


def normalise_answers(schema: FormSchema, answers: dict[str, Any]) -> dict[str, Any]:
    """Keep answers to known, non-label questions in their canonical form.

    Ratings become ints, multi-select answers become lists (a comma-joined
    string is split on ", ") and single choices must name a declared option.
    """
    cleaned: dict[str, Any] = {}
    for question in schema.answerable_questions():
        value = answers.get(question.id)
        if _is_missing(question, value):
            continue
        if question.type == RATING:
            cleaned[question.id] = _clean_rating(question, value)
        elif question.type == MULTI_CHOICE:
            cleaned[question.id] = _clean_choice(question, value)
        else:
            cleaned[question.id] = str(value)
    return cleaned


class ResponseCollector:
    def __init__(
        self,
        kind: FormKind,
        store: DocumentStore,
        connectivity=None,
        settings_store=None,
        notifier=None,
    ):
        self.kind = kind
        self.store = store
        self.connectivity = connectivity
        self.settings_store = settings_store
        self.notifier = notifier

    def load(self, form_id: str) -> FormSchema:
        document = self.store.get(self.kind.collection, form_id)
        if document is None:
            raise errors.NotFoundError(f"This {self.kind.label} could not be found.")
        schema = FormSchema.from_document(document)
        if not schema.is_active:
            raise errors.NotFoundError(f"This {self.kind.label} is no longer active.")
        return schema

    def render(self, form_id: str) -> RenderedForm:
        return render(self.load(form_id))

    def response_count(self, form_id: str) -> int:
        return self.store.count(self.kind.response_collection, {"form_id": form_id})

    def submit(
        self,
        schema: FormSchema,
        answers: dict[str, Any],
        respondent: str | None = None,
    ) -> dict[str, Any]:
        """Validate and store one response. Returns the stored document."""
        if not schema.is_active:
            raise errors.NotFoundError(f"This {self.kind.label} is no longer active.")
        answers = answers or {}
        validate_answers(schema, answers)
        cleaned = normalise_answers(schema, answers)

        count = self.response_count(schema.id)
        if self.settings_store is not None:
            management = self.settings_store.read().response_management
            if management.limit_reached(count):
                logger.info(
                    f"Rejected response to {self.kind.label} {schema.id}: "
                    f"limit of {management.response_limit} reached"
                )
                raise errors.PermissionDeniedError(
                    f"This {self.kind.label} is no longer accepting responses."
                )

        if self.connectivity is not None:
            self.connectivity.ensure_online()

        response = {
            "id": uuid.uuid4().hex,
            "form_id": schema.id,
            "respondent": (respondent or "").strip() or ANONYMOUS,
            "location": schema.location,
            "responses": cleaned,
            "submitted_at": timezone.now().isoformat(),
        }
        retry_operation(
            lambda: self.store.create(
                self.kind.response_collection, response["id"], response
            )
        )
        logger.info(f"Stored response {response['id']} for {self.kind.label} {schema.id}")

        if self.notifier is not None:
            self.notifier.response_received(
                self.kind.share_kind, schema.to_document(), response, count + 1
            )
        return response
