"""Tests for the settings store: default filling, validation and saving."""

import copy
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import MagicMock

import pytest

from pulsecheck_app.core import errors
from pulsecheck_app.core.settings_store import (
    SETTINGS_KEY,
    Security,
    SettingsStore,
    apply_defaults,
    merge_documents,
    validate_settings,
)
from pulsecheck_app.core.store import SETTINGS

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=dt_timezone.utc)


class TestApplyDefaults:
    def test_empty_document_gets_every_default(self):
        settings = apply_defaults(None, now=NOW)

        assert settings.start_date == NOW
        assert settings.end_date == NOW + timedelta(days=30)
        assert settings.is_active is True
        assert settings.notifications.alert_threshold == 10
        assert settings.integrations.export_format == "csv"
        assert settings.defaults.default_expiry_days == 30
        assert settings.security.allowed_ip_ranges == []

    def test_partial_document_is_not_modified(self):
        partial = {"appearance": {"primary_color": "#000000"}, "notifications": None}
        before = copy.deepcopy(partial)

        settings = apply_defaults(partial, now=NOW)

        assert partial == before
        assert settings.appearance.primary_color == "#000000"
        assert settings.appearance.secondary_color == "#8B5CF6"
        assert settings.notifications.alert_threshold == 10

    def test_explicit_zeros_and_false_are_kept(self):
        settings = apply_defaults(
            {
                "is_active": False,
                "response_management": {
                    "auto_archive_after_days": 0,
                    "response_limit": 0,
                },
                "notifications": {"alert_threshold": 0},
            },
            now=NOW,
        )

        assert settings.is_active is False
        assert settings.response_management.auto_archive_after_days == 0
        assert settings.notifications.alert_threshold == 0

    def test_end_date_defaults_to_a_month_after_stored_start(self):
        settings = apply_defaults({"start_date": "2024-07-01T00:00:00Z"}, now=NOW)

        assert settings.end_date == datetime(2024, 7, 31, tzinfo=dt_timezone.utc)

    def test_naive_dates_are_read_as_utc(self):
        settings = apply_defaults({"start_date": "2024-07-01T09:00:00"}, now=NOW)

        assert settings.start_date == datetime(2024, 7, 1, 9, tzinfo=dt_timezone.utc)

    def test_unparseable_date_is_rejected(self):
        with pytest.raises(errors.ValidationError):
            apply_defaults({"start_date": "next tuesday"}, now=NOW)


class TestSurveyStatus:
    @pytest.fixture
    def survey(self):
        return apply_defaults(
            {"start_date": "2024-06-10T00:00:00Z", "end_date": "2024-06-20T00:00:00Z"},
            now=NOW,
        )

    def test_upcoming(self, survey):
        assert survey.survey_status(NOW) == "upcoming"

    def test_active(self, survey):
        assert survey.survey_status(NOW + timedelta(days=10)) == "active"

    def test_ended(self, survey):
        assert survey.survey_status(NOW + timedelta(days=30)) == "ended"

    def test_inactive_wins(self, survey):
        survey.is_active = False
        assert survey.survey_status(NOW + timedelta(days=10)) == "inactive"


class TestMergeDocuments:
    def test_nested_sections_merge_field_by_field(self):
        base = {"notifications": {"alert_threshold": 10, "daily_digest": False}}

        merged = merge_documents(base, {"notifications": {"daily_digest": True}})

        assert merged == {"notifications": {"alert_threshold": 10, "daily_digest": True}}
        assert base["notifications"]["daily_digest"] is False


class TestValidateSettings:
    def test_start_must_precede_end(self):
        settings = apply_defaults(
            {"start_date": "2024-06-10T00:00:00Z", "end_date": "2024-06-09T00:00:00Z"},
            now=NOW,
        )
        with pytest.raises(errors.ValidationError, match="before end date"):
            validate_settings(settings, now=NOW)

    def test_new_start_date_in_the_past_is_rejected(self):
        settings = apply_defaults({"start_date": "2024-05-01T00:00:00Z"}, now=NOW)
        with pytest.raises(errors.ValidationError, match="in the past"):
            validate_settings(settings, now=NOW)

    def test_unchanged_past_start_date_is_allowed(self):
        stored = apply_defaults({"start_date": "2024-05-01T00:00:00Z"}, now=NOW)
        edited = apply_defaults(
            {"start_date": "2024-05-01T00:00:00Z", "is_active": False}, now=NOW
        )

        validate_settings(edited, now=NOW, previous=stored)

    def test_notifications_need_an_email(self):
        settings = apply_defaults(
            {"notifications": {"email_notifications": True}}, now=NOW
        )
        with pytest.raises(errors.ValidationError, match="notification email"):
            validate_settings(settings, now=NOW)

    def test_negative_limits_are_rejected(self):
        settings = apply_defaults({"response_management": {"response_limit": -1}}, now=NOW)
        with pytest.raises(errors.ValidationError, match="response_limit"):
            validate_settings(settings, now=NOW)

    def test_unknown_export_format(self):
        settings = apply_defaults({"integrations": {"export_format": "pdf"}}, now=NOW)
        with pytest.raises(errors.ValidationError, match="Export format"):
            validate_settings(settings, now=NOW)

    def test_text_alert_threshold_is_rejected(self):
        settings = apply_defaults(
            {
                "notifications": {
                    "email_notifications": True,
                    "notification_email": "hr@example.com",
                    "alert_threshold": "5",
                }
            },
            now=NOW,
        )
        with pytest.raises(errors.ValidationError, match="whole number"):
            validate_settings(settings, now=NOW)

    def test_ip_ranges_must_be_a_list(self):
        settings = apply_defaults({"security": {"allowed_ip_ranges": "10.0.0.0/8"}}, now=NOW)
        with pytest.raises(errors.ValidationError, match="must be a list"):
            validate_settings(settings, now=NOW)

    def test_invalid_ip_range(self):
        settings = apply_defaults(
            {"security": {"allowed_ip_ranges": ["10.0.0.0/8", "not-a-range"]}}, now=NOW
        )
        with pytest.raises(errors.ValidationError, match="not-a-range"):
            validate_settings(settings, now=NOW)


class TestSecurityAllows:
    def test_empty_list_allows_everyone(self):
        assert Security().allows("203.0.113.9") is True

    def test_matching_range(self):
        security = Security(allowed_ip_ranges=["10.0.0.0/8", "192.168.1.5"])

        assert security.allows("10.20.30.40") is True
        assert security.allows("192.168.1.5") is True
        assert security.allows("192.168.1.6") is False

    def test_garbage_address_is_refused(self):
        assert Security(allowed_ip_ranges=["10.0.0.0/8"]).allows("unknown") is False


@pytest.mark.django_db
class TestSettingsStore:
    def test_read_fills_missing_sections_without_writing(self, store, settings_store):
        """A document missing notifications reads with the default threshold."""
        stored = {
            "start_date": "2024-06-01T00:00:00+00:00",
            "end_date": "2024-07-01T00:00:00+00:00",
            "appearance": {"primary_color": "#111111"},
        }
        store.set(SETTINGS, SETTINGS_KEY, stored)

        settings = settings_store.read(now=NOW)

        assert settings.notifications.alert_threshold == 10
        assert settings.appearance.primary_color == "#111111"
        assert store.get(SETTINGS, SETTINGS_KEY) == stored

    def test_update_merges_and_persists(self, store, settings_store):
        settings_store.update({"notifications": {"daily_digest": True}}, now=NOW)
        settings_store.update({"appearance": {"primary_color": "#222222"}}, now=NOW)

        saved = store.get(SETTINGS, SETTINGS_KEY)
        assert saved["notifications"]["daily_digest"] is True
        assert saved["notifications"]["alert_threshold"] == 10
        assert saved["appearance"]["primary_color"] == "#222222"

    def test_invalid_update_writes_nothing(self, store, settings_store):
        with pytest.raises(errors.ValidationError):
            settings_store.update({"integrations": {"export_format": "pdf"}}, now=NOW)

        assert store.get(SETTINGS, SETTINGS_KEY) is None

    def test_offline_save_is_refused(self, store, connectivity, settings_store):
        connectivity.mark_offline()

        with pytest.raises(errors.NetworkError):
            settings_store.update({"is_active": False}, now=NOW)

        assert store.get(SETTINGS, SETTINGS_KEY) is None

    def test_replace_banner_drops_previous_image(self, store, connectivity):
        banners = MagicMock()
        banners.upload.return_value = "/media/banners/new.png"
        store.set(SETTINGS, SETTINGS_KEY, {"banner_image_url": "/media/banners/old.png"})
        settings_store = SettingsStore(store, connectivity, banners)

        settings = settings_store.replace_banner(object())

        assert settings.banner_image_url == "/media/banners/new.png"
        banners.delete_quietly.assert_called_once_with("/media/banners/old.png")
        assert store.get(SETTINGS, SETTINGS_KEY)["banner_image_url"] == (
            "/media/banners/new.png"
        )

    def test_replace_banner_without_storage(self, settings_store):
        with pytest.raises(errors.UnknownError):
            settings_store.replace_banner(object())
