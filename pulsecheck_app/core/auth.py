"""
Authentication gateway.

Wraps django.contrib.auth, SimpleJWT and signed email verification tokens
behind the handful of operations the rest of PulseCheck needs:

- current_identity(request)
- sign_in(request, identifier, password)
- sign_out(request)
- send_verification(email)
- verify_token(token)
- is_email_verified(user)
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from django.conf import settings
from django.contrib.auth import authenticate, get_user_model, login, logout
from django.core import signing
from rest_framework_simplejwt.tokens import RefreshToken

from . import errors
from .email_utils import send_verification_email
from .models import UserProfile

logger = logging.getLogger(__name__)

VERIFICATION_SALT = "pulsecheck.email-verification"


def _normalise_email(email: str) -> str:
    return (email or "").strip().lower()


def make_verification_token(email: str) -> str:
    return signing.TimestampSigner(salt=VERIFICATION_SALT).sign(_normalise_email(email))


def read_verification_token(token: str, max_age: int | None = None) -> str:
    """Return the email a token was issued for.

    Raises:
        ValidationError: the token is malformed, tampered with or expired.
    """
    if max_age is None:
        max_age = settings.PULSECHECK_VERIFICATION_MAX_AGE
    signer = signing.TimestampSigner(salt=VERIFICATION_SALT)
    try:
        return signer.unsign(token or "", max_age=max_age)
    except signing.SignatureExpired:
        raise errors.ValidationError(
            "This verification link has expired. Please request a new one."
        )
    except signing.BadSignature:
        raise errors.ValidationError("This verification link is invalid.")


class AuthGateway:
    def current_identity(self, request):
        """The signed-in user, or None for anonymous requests."""
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return None
        return user

    def sign_in(self, request, identifier: str, password: str) -> dict:
        """Authenticate by username or email and open a session.

        Returns a SimpleJWT access/refresh pair for API clients.
        """
        if not identifier or not password:
            raise errors.ValidationError("Please enter your email and password.")

        username = identifier
        if "@" in identifier:
            User = get_user_model()
            match = User.objects.filter(email__iexact=identifier.strip()).first()
            if match is not None:
                username = match.get_username()

        user = authenticate(request, username=username, password=password)
        if user is None:
            logger.warning(f"Failed sign-in attempt for {identifier}")
            raise errors.AuthenticationError()

        login(request, user, backend="django.contrib.auth.backends.ModelBackend")
        refresh = RefreshToken.for_user(user)
        logger.info(f"User {user.get_username()} signed in")
        return {"refresh": str(refresh), "access": str(refresh.access_token)}

    def sign_out(self, request) -> None:
        user = self.current_identity(request)
        logout(request)
        if user is not None:
            logger.info(f"User {user.get_username()} signed out")

    def send_verification(self, email: str, path: str = "/verify-email") -> bool:
        email = _normalise_email(email)
        if not email or "@" not in email:
            raise errors.ValidationError("Please enter a valid email address.")
        query = urlencode({"token": make_verification_token(email)})
        verify_url = f"{settings.SITE_URL.rstrip('/')}{path}?{query}"
        return send_verification_email(email, verify_url)

    def verify_token(self, token: str) -> str:
        """Check a verification token and mark matching accounts as verified.

        Returns the verified email address.
        """
        email = read_verification_token(token)
        profiles = UserProfile.objects.filter(
            user__email__iexact=email, email_verified=False
        )
        for profile in profiles:
            profile.mark_verified()
        logger.info(f"Email verified: {email}")
        return email

    def is_email_verified(self, user) -> bool:
        if user is None or not user.is_authenticated:
            return False
        profile, _ = UserProfile.objects.get_or_create(user=user)
        return profile.email_verified


def is_verified_admin(user) -> bool:
    """Administrator views need a staff account with a verified email."""
    if user is None or not user.is_authenticated:
        return False
    if not (user.is_staff or user.is_superuser):
        return False
    return AuthGateway().is_email_verified(user)
