"""API tests for sign-in and email verification."""

from django.core import mail
import pytest
from rest_framework.test import APIClient

from pulsecheck_app.core.auth import make_verification_token

pytestmark = pytest.mark.django_db

PASSWORD = "a-long-test-password"


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(
        username="ada", email="ada@example.com", password=PASSWORD, is_staff=True
    )


class TestLogin:
    def test_login_returns_working_jwt(self, api_client, user):
        response = api_client.post(
            "/api/auth/login/",
            {"identifier": "ada@example.com", "password": PASSWORD},
            format="json",
        )

        assert response.status_code == 200
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        me = client.get("/api/auth/me/").data
        assert me["username"] == "ada"
        assert me["email_verified"] is False

    def test_bad_password(self, api_client, user):
        response = api_client.post(
            "/api/auth/login/",
            {"identifier": "ada", "password": "wrong"},
            format="json",
        )

        assert response.status_code == 401
        assert response.data["error"] == "Invalid username or password."

    def test_me_requires_login(self, api_client):
        response = api_client.get("/api/auth/me/")

        assert response.status_code == 401
        assert response.data["code"] == "authentication"
        assert "detail" not in response.data
        assert response.has_header("WWW-Authenticate")


class TestVerificationFlow:
    def test_verified_staff_gains_admin_access(self, api_client, user):
        api_client.force_authenticate(user)
        assert api_client.get("/api/polls/").status_code == 403

        sent = api_client.post("/api/auth/send-verification/")
        assert sent.status_code == 200
        assert mail.outbox[0].to == ["ada@example.com"]

        verified = api_client.post(
            "/api/auth/verify/",
            {"token": make_verification_token("ada@example.com")},
            format="json",
        )
        assert verified.data == {"email": "ada@example.com", "verified": True}
        assert api_client.get("/api/polls/").status_code == 200

    def test_invalid_token(self, api_client):
        response = api_client.post("/api/auth/verify/", {"token": "nope"}, format="json")
        assert response.status_code == 400
