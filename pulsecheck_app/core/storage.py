"""Banner image storage on top of Django's storage API."""

from __future__ import annotations

import logging
import os
import uuid

from django.conf import settings
from django.core.files.storage import Storage, default_storage

from . import errors

logger = logging.getLogger(__name__)

BANNER_PREFIX = "banners/"


class BannerStorage:
    def __init__(
        self,
        storage: Storage | None = None,
        max_bytes: int | None = None,
        content_types: list[str] | None = None,
    ):
        self.storage = storage or default_storage
        self.max_bytes = max_bytes or settings.PULSECHECK_BANNER_MAX_BYTES
        self.content_types = content_types or settings.PULSECHECK_BANNER_CONTENT_TYPES

    def validate(self, upload) -> None:
        content_type = getattr(upload, "content_type", None)
        if content_type not in self.content_types:
            raise errors.ValidationError(
                "Invalid file type. Please upload a JPEG, PNG, or WebP image."
            )
        if upload.size > self.max_bytes:
            raise errors.ValidationError(
                f"File size too large. Maximum size is {self.max_bytes // (1024 * 1024)}MB."
            )

    def upload(self, upload) -> str:
        """Store the banner and return a URL it can be fetched from."""
        self.validate(upload)
        ext = os.path.splitext(upload.name or "")[1].lower()
        name = self.storage.save(f"{BANNER_PREFIX}banner-{uuid.uuid4().hex}{ext}", upload)
        logger.info(f"Uploaded banner image {name} ({upload.size} bytes)")
        return self.storage.url(name)

    def _name_from_url(self, url: str) -> str:
        media_url = settings.MEDIA_URL or ""
        if media_url and url.startswith(media_url):
            return url[len(media_url):]
        marker = url.find(BANNER_PREFIX)
        return url[marker:] if marker >= 0 else url

    def delete_quietly(self, url: str) -> None:
        """Delete a superseded banner. Failures are logged, never raised."""
        try:
            self.storage.delete(self._name_from_url(url))
        except Exception as e:
            logger.error(f"Error deleting old banner {url}: {e}", exc_info=True)
