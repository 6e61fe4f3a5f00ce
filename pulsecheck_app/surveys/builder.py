"""
Builder state machine for feedback forms and questionnaires.

Steps run ``basics -> (sections) -> questions -> preview``; the sections step
only exists for multi-section schemas. The builder holds the draft in memory;
``build()`` produces the FormSchema that FormService.publish persists.
"""

from __future__ import annotations

from typing import Callable
import uuid

from django.utils import timezone

from pulsecheck_app.core import errors

from .schema import (
    LABEL,
    MULTI_CHOICE,
    QUESTION_TYPES,
    FormSchema,
    Question,
    Section,
    validate_location,
)

BASICS = "basics"
SECTIONS = "sections"
QUESTIONS = "questions"
PREVIEW = "preview"


def _new_id() -> str:
    return uuid.uuid4().hex


class SchemaBuilder:
    def __init__(
        self,
        existing: FormSchema | None = None,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._new_id = id_factory
        self.step = BASICS
        self.title = ""
        self.description = ""
        self.location = ""
        self.category: str | None = None
        self.target_audience: str | None = None
        self.is_multi_section = False
        self.questions: list[Question] = []
        self.sections: list[Section] = []
        self.active_section_id: str | None = None
        self.existing_id: str | None = None
        self.existing_created_at = None
        if existing is not None:
            self._load(existing)

    def _load(self, schema: FormSchema) -> None:
        """Start editing a published schema, rebuilding sections from its metadata."""
        self.existing_id = schema.id
        self.existing_created_at = schema.created_at
        self.title = schema.title
        self.description = schema.description
        self.location = schema.location
        self.category = schema.category
        self.target_audience = schema.target_audience
        self.is_multi_section = schema.is_multi_section
        self.questions = [
            Question.from_dict(q.to_dict()) for q in schema.questions
        ]

        if schema.is_multi_section:
            by_id: dict[str, Section] = {}
            for question in self.questions:
                meta = question.section_metadata
                if meta is None:
                    continue
                section = by_id.get(meta.section_id)
                if section is None:
                    section = Section(
                        id=meta.section_id,
                        title=meta.section_title,
                        description=meta.section_description,
                    )
                    by_id[meta.section_id] = section
                    self.sections.append(section)
                section.question_ids.append(question.id)
                question.section_id = meta.section_id
            if self.sections:
                self.active_section_id = self.sections[0].id

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @property
    def steps(self) -> list[str]:
        if self.is_multi_section:
            return [BASICS, SECTIONS, QUESTIONS, PREVIEW]
        return [BASICS, QUESTIONS, PREVIEW]

    def can_advance(self) -> bool:
        try:
            self._check_step_complete()
        except errors.ValidationError:
            return False
        return self.step != PREVIEW

    def _check_step_complete(self) -> None:
        if self.step == BASICS:
            if not self.title.strip() or not self.location:
                raise errors.ValidationError("Please enter a title and choose a location.")
            validate_location(self.location)
        elif self.step == SECTIONS and not self.sections:
            raise errors.ValidationError("Please create at least one section")

    def next_step(self) -> str:
        self._check_step_complete()
        steps = self.steps
        position = steps.index(self.step)
        if position + 1 < len(steps):
            self.step = steps[position + 1]
        return self.step

    def previous_step(self) -> str:
        steps = self.steps
        if self.step not in steps:
            self.step = BASICS
            return self.step
        position = steps.index(self.step)
        if position > 0:
            self.step = steps[position - 1]
        return self.step

    def set_multi_section(self, enabled: bool) -> None:
        self.is_multi_section = enabled
        if not enabled and self.step == SECTIONS:
            self.step = BASICS

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _section(self, section_id: str) -> Section:
        for section in self.sections:
            if section.id == section_id:
                return section
        raise errors.NotFoundError(f"Section {section_id} not found")

    def add_section(self, title: str, description: str = "") -> Section:
        """Append a section and make it the one new questions are added to."""
        section = Section(id=self._new_id(), title=title, description=description)
        self.sections.append(section)
        self.active_section_id = section.id
        return section

    def update_section(
        self, section_id: str, title: str | None = None, description: str | None = None
    ) -> Section:
        section = self._section(section_id)
        if title is not None:
            section.title = title
        if description is not None:
            section.description = description
        return section

    def remove_section(self, section_id: str) -> None:
        """Drop a section; its questions stay in the schema, unassigned."""
        self._section(section_id)
        for question in self.questions:
            if question.section_id == section_id:
                question.section_id = None
                question.section_metadata = None
        self.sections = [s for s in self.sections if s.id != section_id]
        if self.active_section_id == section_id:
            self.active_section_id = self.sections[0].id if self.sections else None

    def set_active_section(self, section_id: str | None) -> None:
        if section_id is not None:
            self._section(section_id)
        self.active_section_id = section_id

    def assign_question_to_section(self, question_id: str, section_id: str) -> None:
        section = self._section(section_id)
        question = self._question(question_id)
        for other in self.sections:
            if question_id in other.question_ids:
                other.question_ids.remove(question_id)
        question.section_id = section.id
        section.question_ids.append(question_id)

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    def _question(self, question_id: str) -> Question:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise errors.NotFoundError(f"Question {question_id} not found")

    def add_question(self, question_type: str) -> Question:
        if question_type not in QUESTION_TYPES:
            raise errors.ValidationError(f"Unknown question type: {question_type}")
        question = Question(
            id=self._new_id(),
            type=question_type,
            required=question_type != LABEL,
        )
        if question_type == MULTI_CHOICE:
            question.options = [""]
            question.multiple_select = False
        if self.is_multi_section and self.active_section_id:
            question.section_id = self.active_section_id
            self._section(self.active_section_id).question_ids.append(question.id)
        self.questions.append(question)
        return question

    def update_question(
        self,
        question_id: str,
        question_text: str | None = None,
        required: bool | None = None,
        options: list[str] | None = None,
        multiple_select: bool | None = None,
    ) -> Question:
        question = self._question(question_id)
        if question_text is not None:
            question.question_text = question_text
        if required is not None:
            question.required = required and question.type != LABEL
        if question.type == MULTI_CHOICE:
            if options is not None:
                question.options = list(options)
            if multiple_select is not None:
                question.multiple_select = multiple_select
        return question

    def move_question(self, question_id: str, direction: str) -> None:
        """Swap a question with its neighbour; no-op at either end."""
        if direction not in ("up", "down"):
            raise errors.ValidationError(f"Unknown direction: {direction}")
        index = self.questions.index(self._question(question_id))
        new_index = index - 1 if direction == "up" else index + 1
        if new_index < 0 or new_index >= len(self.questions):
            return
        self.questions[index], self.questions[new_index] = (
            self.questions[new_index],
            self.questions[index],
        )

    def remove_question(self, question_id: str) -> None:
        self._question(question_id)
        self.questions = [q for q in self.questions if q.id != question_id]
        for section in self.sections:
            if question_id in section.question_ids:
                section.question_ids.remove(question_id)

    def _choice_question(self, question_id: str) -> Question:
        question = self._question(question_id)
        if question.type != MULTI_CHOICE:
            raise errors.ValidationError("Only multiple choice questions have options")
        if question.options is None:
            question.options = []
        return question

    def add_option(self, question_id: str, value: str = "") -> None:
        self._choice_question(question_id).options.append(value)

    def update_option(self, question_id: str, index: int, value: str) -> None:
        options = self._choice_question(question_id).options
        if not 0 <= index < len(options):
            raise errors.NotFoundError(f"Option {index} not found")
        options[index] = value

    def remove_option(self, question_id: str, index: int) -> None:
        options = self._choice_question(question_id).options
        if not 0 <= index < len(options):
            raise errors.NotFoundError(f"Option {index} not found")
        del options[index]

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def build(self) -> FormSchema:
        """Return the schema to publish.

        For multi-section schemas each question gets a copy of its section's
        current title and description; later section edits in this builder
        do not reach an already built schema.
        """
        questions = [Question.from_dict(q.to_dict()) for q in self.questions]
        if self.is_multi_section and self.sections:
            sections = {s.id: s for s in self.sections}
            for question in questions:
                section = sections.get(question.section_id)
                question.section_metadata = section.metadata() if section else None
                if section is None:
                    question.section_id = None
        else:
            for question in questions:
                question.section_id = None
                question.section_metadata = None

        return FormSchema(
            id=self.existing_id or self._new_id(),
            title=self.title.strip(),
            description=self.description,
            location=self.location,
            questions=questions,
            created_at=self.existing_created_at or timezone.now(),
            is_active=True,
            is_multi_section=self.is_multi_section,
            category=self.category,
            target_audience=self.target_audience,
        )

    @classmethod
    def from_payload(cls, payload: dict, existing: FormSchema | None = None) -> SchemaBuilder:
        """Replay an API payload through the builder's operations.

        ``sections`` is a list of ``{id?, title, description}``. A question
        names its section either by ``section_id`` or by ``section_index``
        into that list. Ids present in the payload are kept, so editing a
        published schema does not renumber its questions or sections.
        """
        builder = cls(existing=existing)
        builder.title = payload.get("title") or ""
        builder.description = payload.get("description") or ""
        builder.location = payload.get("location") or ""
        builder.category = payload.get("category") or None
        builder.target_audience = payload.get("target_audience") or None
        builder.set_multi_section(bool(payload.get("is_multi_section", False)))
        builder.questions = []
        builder.sections = []

        for raw in payload.get("sections") or []:
            section = builder.add_section(raw.get("title", ""), raw.get("description", ""))
            if raw.get("id"):
                section.id = str(raw["id"])

        # Questions are placed explicitly below, not into the last added section
        builder.active_section_id = None
        section_ids = {s.id for s in builder.sections}
        for raw in payload.get("questions") or []:
            question = builder.add_question(raw.get("type"))
            if raw.get("id"):
                question.id = str(raw["id"])
            builder.update_question(
                question.id,
                question_text=raw.get("question_text", ""),
                required=raw.get("required"),
                options=raw.get("options"),
                multiple_select=raw.get("multiple_select"),
            )

            target = None
            if raw.get("section_id") is not None:
                target = str(raw["section_id"])
                if target not in section_ids:
                    raise errors.ValidationError(f"Unknown section: {target}")
            elif raw.get("section_index") is not None:
                index = int(raw["section_index"])
                if not 0 <= index < len(builder.sections):
                    raise errors.ValidationError(f"Unknown section index: {index}")
                target = builder.sections[index].id
            if target is not None and builder.is_multi_section:
                builder.assign_question_to_section(question.id, target)

        if builder.sections:
            builder.active_section_id = builder.sections[0].id
        return builder
