"""
Error taxonomy shared by every PulseCheck service.

Services raise these; the API exception handler turns them into JSON
responses. Each error carries a ``user_message`` that is safe to show to the
person who triggered it.
"""


class PulseCheckError(Exception):
    """Base class for expected, user-facing failures."""

    code = "error"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, **details):
        self.user_message = message or self.default_message
        self.details = details
        super().__init__(self.user_message)


class ValidationError(PulseCheckError):
    """Missing or malformed input. Nothing has been written."""

    code = "validation"
    default_message = "Please fill in all required fields."


class NotFoundError(PulseCheckError):
    """A referenced poll, form, questionnaire or document is absent, inactive or expired."""

    code = "not_found"
    default_message = "The requested item could not be found."


class NetworkError(PulseCheckError):
    """A transient connectivity failure (eligible for retry)."""

    code = "network"
    default_message = (
        "We couldn't reach the server. Please check your connection and try again."
    )


# Alias used by the retry helper's classification
TransientError = NetworkError


class PermissionDeniedError(PulseCheckError):
    """A terminal, non-retryable refusal."""

    code = "permission_denied"
    default_message = "You do not have permission to do that."


class DuplicateSubmissionError(PermissionDeniedError):
    """The submitter identity already has a stored submission."""

    code = "duplicate_submission"
    default_message = "You have already submitted your nominations."


class UnknownError(PulseCheckError):
    code = "unknown"


class AuthenticationError(PermissionDeniedError):
    """Credentials were missing, wrong, or the account is locked out."""

    code = "authentication"
    default_message = "Invalid username or password."
