"""Tests for nomination validation, submission and aggregation."""

from datetime import datetime, timezone as dt_timezone

import pytest

from pulsecheck_app.core import errors
from pulsecheck_app.core.settings_store import SETTINGS_KEY
from pulsecheck_app.core.store import NOMINATIONS, SETTINGS
from pulsecheck_app.nominations.categories import CATEGORIES, get_category
from pulsecheck_app.nominations.roster import Employee, Roster
from pulsecheck_app.nominations.services import NominationService, aggregate

NOW = datetime(2024, 6, 15, tzinfo=dt_timezone.utc)

ROSTER = Roster(
    [
        Employee("1", "Ada Obi", "ada.obi@example.com", employment_status="Active"),
        Employee("2", "Bo Ene", "bo.ene@example.com", employment_status="Active"),
        Employee("3", "Cy Uba", "cy.uba@example.com", employment_status="Inactive"),
    ]
)


def full_ballot(nominee="Ada Obi", **overrides):
    ballot = {c.category_id: nominee for c in CATEGORIES}
    ballot.update(overrides)
    return ballot


@pytest.fixture
def open_window(store):
    store.set(
        SETTINGS,
        SETTINGS_KEY,
        {
            "start_date": "2024-06-01T00:00:00+00:00",
            "end_date": "2024-06-30T00:00:00+00:00",
        },
    )


@pytest.fixture
def service(store, connectivity, settings_store, open_window):
    return NominationService(store, connectivity, settings_store, roster=ROSTER)


class TestCategories:
    def test_ten_fixed_categories(self):
        assert [c.category_id for c in CATEGORIES] == list(range(1, 11))

    def test_string_ids(self):
        assert get_category("3").title == "Employee of the Year"
        assert get_category("x") is None
        assert get_category(11) is None


class TestAggregate:
    def test_every_category_is_reported(self):
        results = aggregate([])

        assert len(results) == 10
        assert all(r.total_votes == 0 and r.nominations == {} for r in results)

    def test_totals_match_nominee_counts(self):
        submissions = [
            {"nominations": {"1": "Ada Obi", "2": "Bo Ene"}},
            {"nominations": {"1": "Bo Ene", "2": "Bo Ene"}},
            {"nominations": {"1": "Ada Obi", "3": ""}},
        ]

        results = aggregate(submissions)

        for result in results:
            assert result.total_votes == sum(result.nominations.values())
        assert results[0].nominations == {"Ada Obi": 2, "Bo Ene": 1}
        assert results[1].total_votes == 2
        assert results[2].total_votes == 0

    def test_unknown_categories_are_ignored(self):
        results = aggregate([{"nominations": {"99": "Ada Obi", "bogus": "Bo Ene"}}])

        assert sum(r.total_votes for r in results) == 0

    def test_ties_keep_first_seen_order(self):
        results = aggregate(
            [
                {"nominations": {"5": "Bo Ene"}},
                {"nominations": {"5": "Ada Obi"}},
                {"nominations": {"5": "Cy Uba"}},
                {"nominations": {"5": "Cy Uba"}},
            ]
        )

        assert results[4].ranked() == [("Cy Uba", 2), ("Bo Ene", 1), ("Ada Obi", 1)]
        assert results[4].to_dict()["nominations"][0] == {"nominee": "Cy Uba", "votes": 2}


class TestNominatorChecks:
    def test_roster_email(self, service):
        assert service.check_nominator(" Ada.Obi@Example.com ") == "ada.obi@example.com"

    def test_unknown_email(self, service):
        with pytest.raises(errors.ValidationError, match="employee records"):
            service.check_nominator("stranger@example.com")

    def test_company_domain(self, service, settings):
        settings.PULSECHECK_NOMINATION_EMAIL_DOMAIN = "qaras.example"

        with pytest.raises(errors.ValidationError, match="@qaras.example"):
            service.check_nominator("ada.obi@example.com")

    def test_empty_roster_accepts_any_address(self, store):
        assert NominationService(store).check_nominator("x@y.z") == "x@y.z"


class TestSubmit:
    def test_submission_is_stored_by_identity(self, service, store):
        submission = service.submit("Ada.Obi@example.com", full_ballot(), now=NOW)

        stored = store.get(NOMINATIONS, "ada.obi@example.com")
        assert stored == submission
        assert stored["nominations"]["1"] == "Ada Obi"
        assert service.has_submitted("ADA.OBI@example.com") is True

    def test_second_submission_is_rejected_and_first_kept(self, service, store):
        service.submit("ada.obi@example.com", full_ballot(), now=NOW)

        with pytest.raises(errors.DuplicateSubmissionError):
            service.submit("ada.obi@example.com", full_ballot("Bo Ene"), now=NOW)

        stored = store.get(NOMINATIONS, "ada.obi@example.com")
        assert set(stored["nominations"].values()) == {"Ada Obi"}
        assert store.count(NOMINATIONS) == 1

    def test_incomplete_ballot(self, service, store):
        ballot = full_ballot()
        del ballot[10]

        with pytest.raises(errors.ValidationError) as exc_info:
            service.submit("ada.obi@example.com", ballot, now=NOW)

        assert exc_info.value.details["missing"] == ["Leadership and Mentorship"]
        assert store.count(NOMINATIONS) == 0

    def test_inactive_employee_cannot_be_nominated(self, service):
        with pytest.raises(errors.ValidationError) as exc_info:
            service.submit("ada.obi@example.com", full_ballot(**{"4": "Cy Uba"}), now=NOW)

        assert exc_info.value.details["unknown"] == ["Cy Uba"]

    def test_unknown_category(self, service):
        with pytest.raises(errors.ValidationError, match="Unknown award category"):
            service.submit("ada.obi@example.com", full_ballot(**{"42": "Ada Obi"}), now=NOW)

    def test_window_closed(self, service):
        with pytest.raises(errors.PermissionDeniedError, match="closed"):
            service.submit(
                "ada.obi@example.com",
                full_ballot(),
                now=datetime(2024, 7, 2, tzinfo=dt_timezone.utc),
            )

    def test_window_not_open(self, service):
        with pytest.raises(errors.PermissionDeniedError, match="not opened"):
            service.submit(
                "ada.obi@example.com",
                full_ballot(),
                now=datetime(2024, 5, 1, tzinfo=dt_timezone.utc),
            )

    def test_results(self, service):
        second = full_ballot("Ada Obi")
        second[1] = "Bo Ene"
        service.submit("ada.obi@example.com", full_ballot("Bo Ene"), now=NOW)
        service.submit("bo.ene@example.com", second, now=NOW)

        results = service.results()

        assert results[0].ranked() == [("Bo Ene", 2)]
        assert results[1].ranked() == [("Bo Ene", 1), ("Ada Obi", 1)]
