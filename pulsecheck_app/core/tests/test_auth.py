"""Tests for the auth gateway and email verification tokens."""

from django.contrib.auth.models import AnonymousUser
from django.contrib.sessions.middleware import SessionMiddleware
from django.core import mail
from django.test import RequestFactory
import pytest

from pulsecheck_app.core import errors
from pulsecheck_app.core.auth import (
    AuthGateway,
    is_verified_admin,
    make_verification_token,
    read_verification_token,
)

PASSWORD = "a-long-test-password"


def session_request():
    request = RequestFactory().post("/api/auth/login/")
    SessionMiddleware(lambda r: None).process_request(request)
    request.user = AnonymousUser()
    return request


class TestVerificationTokens:
    def test_round_trip_normalises_email(self):
        token = make_verification_token("  Ada@Example.COM ")

        assert read_verification_token(token) == "ada@example.com"

    def test_expired_token(self):
        token = make_verification_token("ada@example.com")

        with pytest.raises(errors.ValidationError, match="expired"):
            read_verification_token(token, max_age=-1)

    def test_tampered_token(self):
        token = make_verification_token("ada@example.com")

        with pytest.raises(errors.ValidationError, match="invalid"):
            read_verification_token("eve@example.com" + token[token.index(":"):])


@pytest.mark.django_db
class TestSignIn:
    @pytest.fixture
    def user(self, django_user_model):
        return django_user_model.objects.create_user(
            username="ada", email="ada@example.com", password=PASSWORD
        )

    def test_sign_in_by_email_returns_tokens(self, user):
        request = session_request()

        tokens = AuthGateway().sign_in(request, "ADA@example.com", PASSWORD)

        assert set(tokens) == {"access", "refresh"}
        assert request.user == user

    def test_sign_in_by_username(self, user):
        tokens = AuthGateway().sign_in(session_request(), "ada", PASSWORD)
        assert tokens["access"]

    def test_wrong_password(self, user):
        with pytest.raises(errors.AuthenticationError):
            AuthGateway().sign_in(session_request(), "ada", "wrong")

    def test_missing_fields(self):
        with pytest.raises(errors.ValidationError):
            AuthGateway().sign_in(session_request(), "", "")

    def test_current_identity(self, user):
        request = session_request()
        gateway = AuthGateway()

        assert gateway.current_identity(request) is None
        gateway.sign_in(request, "ada", PASSWORD)
        assert gateway.current_identity(request) == user

        gateway.sign_out(request)
        assert gateway.current_identity(request) is None


@pytest.mark.django_db
class TestEmailVerification:
    def test_send_verification_emails_a_link(self, settings):
        settings.SITE_URL = "https://pulse.example.com"

        assert AuthGateway().send_verification("ada@example.com") is True

        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.to == ["ada@example.com"]
        html_body = message.alternatives[0][0]
        assert "https://pulse.example.com/verify-email?token=" in html_body
        assert "Verify my email" in message.body

    def test_send_verification_rejects_bad_address(self):
        with pytest.raises(errors.ValidationError):
            AuthGateway().send_verification("not-an-email")

    def test_verify_token_marks_profile(self, django_user_model):
        user = django_user_model.objects.create_user(
            username="ada", email="Ada@example.com", password=PASSWORD
        )
        gateway = AuthGateway()
        assert gateway.is_email_verified(user) is False

        email = gateway.verify_token(make_verification_token("ada@example.com"))

        user.profile.refresh_from_db()
        assert email == "ada@example.com"
        assert user.profile.email_verified is True
        assert user.profile.email_verified_at is not None
        assert gateway.is_email_verified(user) is True


@pytest.mark.django_db
class TestIsVerifiedAdmin:
    def test_requires_staff_and_verified_email(self, django_user_model):
        user = django_user_model.objects.create_user(username="bo", password=PASSWORD)
        assert is_verified_admin(user) is False

        user.is_staff = True
        user.save()
        assert is_verified_admin(user) is False

        user.profile.mark_verified()
        assert is_verified_admin(user) is True

    def test_anonymous(self):
        assert is_verified_admin(AnonymousUser()) is False
