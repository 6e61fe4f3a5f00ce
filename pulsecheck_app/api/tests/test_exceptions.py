"""Tests for mapping PulseCheck errors onto HTTP responses."""

from unittest.mock import patch

import pytest
import requests
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from django_ratelimit.exceptions import Ratelimited
from rest_framework import exceptions as drf_exceptions
from rest_framework.exceptions import ValidationError as DRFValidationError

from pulsecheck_app.api.exceptions import pulsecheck_exception_handler
from pulsecheck_app.core import errors


class TestExceptionHandler:
    @pytest.mark.parametrize(
        "exc, status_code, code",
        [
            (errors.ValidationError(), 400, "validation"),
            (errors.AuthenticationError(), 401, "authentication"),
            (errors.PermissionDeniedError(), 403, "permission_denied"),
            (errors.NotFoundError(), 404, "not_found"),
            (errors.DuplicateSubmissionError(), 409, "duplicate_submission"),
            (errors.NetworkError(), 503, "network"),
            (errors.UnknownError(), 500, "unknown"),
        ],
    )
    def test_pulsecheck_errors(self, exc, status_code, code):
        response = pulsecheck_exception_handler(exc, {})

        assert response.status_code == status_code
        assert response.data["code"] == code
        assert response.data["error"] == exc.user_message

    def test_details_are_included(self):
        exc = errors.ValidationError("Please answer all required questions", missing=["Q1"])

        response = pulsecheck_exception_handler(exc, {})

        assert response.data["details"] == {"missing": ["Q1"]}

    def test_serializer_errors_are_wrapped(self):
        response = pulsecheck_exception_handler(
            DRFValidationError({"title": ["This field is required."]}), {}
        )

        assert response.status_code == 400
        assert response.data["code"] == "validation"
        assert response.data["details"] == {"title": ["This field is required."]}

    def test_transient_failures_become_503(self):
        response = pulsecheck_exception_handler(requests.ConnectionError("reset"), {})

        assert response.status_code == 503
        assert response.data["code"] == "network"

    @patch("pulsecheck_app.api.exceptions.logger")
    def test_unexpected_errors_are_logged_and_hidden(self, mock_logger):
        response = pulsecheck_exception_handler(KeyError("secret internals"), {})

        assert response.status_code == 500
        assert response.data == {
            "error": errors.UnknownError.default_message,
            "code": "unknown",
        }
        mock_logger.error.assert_called_once()


class TestFrameworkErrorShape:
    """Framework exceptions carry the same {"error", "code"} body as ours."""

    @pytest.mark.parametrize(
        "exc, status_code, code",
        [
            (drf_exceptions.NotAuthenticated(), 401, "authentication"),
            (drf_exceptions.AuthenticationFailed(), 401, "authentication"),
            (drf_exceptions.PermissionDenied(), 403, "permission_denied"),
            (drf_exceptions.NotFound(), 404, "not_found"),
            (drf_exceptions.MethodNotAllowed("DELETE"), 405, "method_not_allowed"),
            (drf_exceptions.Throttled(wait=30), 429, "throttled"),
            (Http404(), 404, "not_found"),
            (DjangoPermissionDenied(), 403, "permission_denied"),
        ],
    )
    def test_reshaped(self, exc, status_code, code):
        response = pulsecheck_exception_handler(exc, {})

        assert response.status_code == status_code
        assert set(response.data) == {"error", "code"}
        assert response.data["code"] == code
        assert response.data["error"]

    def test_permission_message_is_kept(self):
        response = pulsecheck_exception_handler(
            drf_exceptions.PermissionDenied("Administrators only."), {}
        )

        assert response.data == {"error": "Administrators only.", "code": "permission_denied"}

    def test_throttled_keeps_retry_after(self):
        response = pulsecheck_exception_handler(drf_exceptions.Throttled(wait=30), {})

        assert response["Retry-After"] == "30"

    def test_rate_limited(self):
        response = pulsecheck_exception_handler(Ratelimited(), {})

        assert response.status_code == 403
        assert response.data == {
            "error": "Too many attempts. Please wait a minute and try again.",
            "code": "rate_limited",
        }
