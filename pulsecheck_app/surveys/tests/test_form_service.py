"""Tests for publishing and administering feedback forms and questionnaires."""

from datetime import datetime, timezone as dt_timezone

import pytest

from pulsecheck_app.core import errors
from pulsecheck_app.core.store import QUESTIONNAIRE_RESPONSES, QUESTIONNAIRES
from pulsecheck_app.surveys.builder import SchemaBuilder
from pulsecheck_app.surveys.schema import QUESTIONNAIRE, RATING, TEXT
from pulsecheck_app.surveys.services.form_service import FormService

pytestmark = pytest.mark.django_db


@pytest.fixture
def service(store, connectivity, settings_store):
    return FormService(QUESTIONNAIRE, store, connectivity, settings_store)


def multi_section_builder():
    builder = SchemaBuilder()
    builder.title = "Onboarding"
    builder.location = "Marketing"
    builder.category = "Employee Feedback"
    builder.set_multi_section(True)
    builder.add_section("Week one", "Your first days")
    q1 = builder.add_question(RATING)
    builder.update_question(q1.id, question_text="How welcome did you feel?")
    builder.add_section("Tools")
    q2 = builder.add_question(TEXT)
    builder.update_question(q2.id, question_text="What is missing?", required=False)
    return builder


class TestPublish:
    def test_multi_section_publish_stores_section_copies(self, service, store, settings):
        settings.SITE_URL = "https://pulse.example.com"

        result = service.publish(multi_section_builder().build())

        assert result.created is True
        assert result.share.url == f"https://pulse.example.com/questionnaires/{result.schema.id}"
        assert result.share.qr_code.startswith("data:image/png;base64,")
        document = store.get(QUESTIONNAIRES, result.schema.id)
        titles = [q["section_metadata"]["section_title"] for q in document["questions"]]
        assert titles == ["Week one", "Tools"]
        assert document["is_multi_section"] is True
        assert document["category"] == "Employee Feedback"

    def test_missing_title_is_rejected_without_writing(self, service, store):
        builder = multi_section_builder()
        builder.title = " "

        with pytest.raises(errors.ValidationError, match="at least one question"):
            service.publish(builder.build())

        assert store.count(QUESTIONNAIRES) == 0

    def test_no_questions(self, service):
        builder = SchemaBuilder()
        builder.title = "Empty"
        builder.location = "Online"

        with pytest.raises(errors.ValidationError):
            service.publish(builder.build())

    def test_choice_question_needs_an_option(self, service):
        builder = SchemaBuilder()
        builder.title = "Choices"
        builder.location = "Online"
        choice = builder.add_question("multiChoice")
        builder.update_question(choice.id, question_text="Pick one")

        with pytest.raises(errors.ValidationError, match="at least one option"):
            service.publish(builder.build())

    def test_unknown_category(self, service):
        builder = multi_section_builder()
        builder.category = "Astrology"

        with pytest.raises(errors.ValidationError, match="category"):
            service.publish(builder.build())

    def test_republishing_keeps_creation_time(self, service):
        first = service.publish(multi_section_builder().build()).schema
        editor = SchemaBuilder(existing=first)
        editor.title = "Onboarding 2"
        editor.existing_created_at = datetime(2030, 1, 1, tzinfo=dt_timezone.utc)

        result = service.publish(editor.build())

        assert result.created is False
        assert result.schema.title == "Onboarding 2"
        assert result.schema.created_at == first.created_at

    def test_offline_publish(self, service, connectivity, store):
        connectivity.mark_offline()

        with pytest.raises(errors.NetworkError):
            service.publish(multi_section_builder().build())

        assert store.count(QUESTIONNAIRES) == 0


class TestAdministration:
    def test_list_newest_first_and_active_filter(self, service):
        older, newer = multi_section_builder().build(), multi_section_builder().build()
        older.created_at = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        newer.created_at = datetime(2024, 2, 1, tzinfo=dt_timezone.utc)
        service.publish(older)
        service.publish(newer)
        service.set_active(older.id, False)

        assert [s.id for s in service.list()] == [newer.id, older.id]
        assert [s.id for s in service.list(active_only=True)] == [newer.id]

    def test_get_missing(self, service):
        with pytest.raises(errors.NotFoundError):
            service.get("missing")

    def test_delete_keeps_responses(self, service, store):
        schema = service.publish(multi_section_builder().build()).schema
        store.set(QUESTIONNAIRE_RESPONSES, "r1", {"id": "r1", "form_id": schema.id})

        service.delete(schema.id)

        assert store.get(QUESTIONNAIRES, schema.id) is None
        assert [r["id"] for r in service.responses(schema.id)] == ["r1"]

    def test_responses_newest_first(self, service, store):
        store.set(QUESTIONNAIRE_RESPONSES, "a", {"form_id": "f", "submitted_at": "2024-01-01T00:00:00"})
        store.set(QUESTIONNAIRE_RESPONSES, "b", {"form_id": "f", "submitted_at": "2024-02-01T00:00:00"})
        store.set(QUESTIONNAIRE_RESPONSES, "c", {"form_id": "g", "submitted_at": "2024-03-01T00:00:00"})

        assert [r["submitted_at"][:7] for r in service.responses("f")] == ["2024-02", "2024-01"]
        assert len(service.responses()) == 3
