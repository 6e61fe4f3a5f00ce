from django.conf import settings
from django.db import models
from django.utils import timezone


class Document(models.Model):
    """A JSON document addressed by (collection, key).

    Every PulseCheck record (polls, forms, responses, nominations, settings)
    lives here as a full document. Writes replace the whole ``data`` payload;
    there is no partial patching.
    """

    collection = models.CharField(max_length=64, db_index=True)
    key = models.CharField(max_length=255)
    data = models.JSONField(default=dict)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["collection", "key"], name="unique_document_key"
            )
        ]
        ordering = ["collection", "created_at", "id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.collection}/{self.key}"


class UserProfile(models.Model):
    """Per-user account state that django.contrib.auth does not track.

    Every user has one profile (created automatically on signup).
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="profile"
    )
    email_verified = models.BooleanField(
        default=False,
        help_text="Unverified users are blocked from administrator views",
    )
    email_verified_at = models.DateTimeField(null=True, blank=True)

    def mark_verified(self) -> None:
        self.email_verified = True
        self.email_verified_at = timezone.now()
        self.save(update_fields=["email_verified", "email_verified_at"])

    def __str__(self) -> str:  # pragma: no cover
        return f"Profile for {self.user}"
