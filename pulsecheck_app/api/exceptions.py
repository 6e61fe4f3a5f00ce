"""Turns PulseCheck errors into JSON API responses."""

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from django_ratelimit.exceptions import Ratelimited
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from pulsecheck_app.core import errors
from pulsecheck_app.core.retry import is_transient_error

logger = logging.getLogger(__name__)

# Most specific classes first
STATUS_CODES = (
    (errors.DuplicateSubmissionError, status.HTTP_409_CONFLICT),
    (errors.AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (errors.PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (errors.ValidationError, status.HTTP_400_BAD_REQUEST),
    (errors.NotFoundError, status.HTTP_404_NOT_FOUND),
    (errors.NetworkError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


RATE_LIMITED_MESSAGE = "Too many attempts. Please wait a minute and try again."

# DRF error codes renamed to the PulseCheck vocabulary; others pass through
DRF_CODES = {
    "not_authenticated": errors.AuthenticationError.code,
    "authentication_failed": errors.AuthenticationError.code,
    "permission_denied": errors.PermissionDeniedError.code,
    "not_found": errors.NotFoundError.code,
}


def error_body(exc: errors.PulseCheckError) -> dict:
    body = {"error": exc.user_message, "code": exc.code}
    if exc.details:
        body["details"] = exc.details
    return body


def _as_api_exception(exc):
    """Map the Django exceptions DRF understands onto their DRF equivalents."""
    if isinstance(exc, Ratelimited):
        return drf_exceptions.PermissionDenied(RATE_LIMITED_MESSAGE, code="rate_limited")
    if isinstance(exc, Http404):
        return drf_exceptions.NotFound()
    if isinstance(exc, DjangoPermissionDenied):
        return drf_exceptions.PermissionDenied()
    return exc


def api_error_body(exc: drf_exceptions.APIException, data) -> dict:
    if isinstance(exc, DRFValidationError):
        return {
            "error": errors.ValidationError.default_message,
            "code": errors.ValidationError.code,
            "details": data,
        }
    detail = exc.detail
    code = getattr(detail, "code", None) or exc.default_code
    return {"error": str(detail), "code": DRF_CODES.get(code, code)}


def pulsecheck_exception_handler(exc, context):
    if isinstance(exc, errors.PulseCheckError):
        for error_class, status_code in STATUS_CODES:
            if isinstance(exc, error_class):
                return Response(error_body(exc), status=status_code)
        logger.error(f"Unhandled PulseCheck error: {exc}", exc_info=exc)
        return Response(error_body(exc), status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    exc = _as_api_exception(exc)
    response = exception_handler(exc, context)
    if response is not None:
        # Status and headers (WWW-Authenticate, Retry-After) are kept
        response.data = api_error_body(exc, response.data)
        return response

    if is_transient_error(exc):
        logger.warning(f"Transient failure surfaced to client: {exc}")
        return Response(
            error_body(errors.NetworkError()),
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    view = context.get("view")
    logger.error(
        f"Unexpected error in {type(view).__name__ if view else 'API'}: {exc}",
        exc_info=exc,
    )
    return Response(
        error_body(errors.UnknownError()),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
