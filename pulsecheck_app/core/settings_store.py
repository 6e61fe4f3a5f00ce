"""
System settings: one document (``settings/survey``) read with default filling.

The stored document may be missing whole sections or individual fields
(older deployments wrote fewer of them). ``apply_defaults`` fills every gap
from the dataclass defaults below without touching the stored document.
A field counts as missing only when it is absent or null; explicit zeros
and empty strings are kept (0 means "unlimited"/"never" for the response
management limits).
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta, timezone as dt_timezone
import ipaddress
import logging
from typing import Any

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from . import errors
from .retry import retry_operation
from .store import SETTINGS, DocumentStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "survey"

EXPORT_FORMATS = ("csv", "json", "excel")

DEFAULT_FOOTER_TEXT = "© PulseCheck. All rights reserved."
DEFAULT_DISCLAIMER = (
    "Your privacy is important to us. All responses are confidential and will "
    "be used only for the intended purpose."
)


@dataclass
class Appearance:
    primary_color: str = "#6366F1"
    secondary_color: str = "#8B5CF6"
    logo_url: str = ""
    custom_css: str = ""


@dataclass
class ResponseManagement:
    data_retention_days: int = 0  # 0 keeps responses indefinitely
    auto_archive_after_days: int = 90  # 0 never archives
    response_limit: int = 0  # 0 means no limit

    def limit_reached(self, response_count: int) -> bool:
        return self.response_limit > 0 and response_count >= self.response_limit


@dataclass
class Notifications:
    email_notifications: bool = False
    notification_email: str = ""
    alert_threshold: int = 10
    daily_digest: bool = False


@dataclass
class Security:
    enable_recaptcha: bool = False
    allowed_ip_ranges: list[str] = field(default_factory=list)
    require_verification: bool = False

    def allows(self, ip: str) -> bool:
        """True when ``ip`` falls in an allowed range; an empty list allows everyone."""
        if not self.allowed_ip_ranges:
            return True
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return False
        for cidr in self.allowed_ip_ranges:
            try:
                if address in ipaddress.ip_network(cidr, strict=False):
                    return True
            except ValueError:
                logger.warning(f"Ignoring invalid allowed IP range {cidr}")
        return False


@dataclass
class Integrations:
    api_keys: dict[str, str] = field(default_factory=dict)
    webhook_url: str = ""
    export_format: str = "csv"


@dataclass
class Defaults:
    default_expiry_days: int = 30
    footer_text: str = DEFAULT_FOOTER_TEXT
    disclaimer: str = DEFAULT_DISCLAIMER


SECTIONS = {
    "appearance": Appearance,
    "response_management": ResponseManagement,
    "notifications": Notifications,
    "security": Security,
    "integrations": Integrations,
    "defaults": Defaults,
}


@dataclass
class SystemSettings:
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    banner_image_url: str = ""
    appearance: Appearance = field(default_factory=Appearance)
    response_management: ResponseManagement = field(default_factory=ResponseManagement)
    notifications: Notifications = field(default_factory=Notifications)
    security: Security = field(default_factory=Security)
    integrations: Integrations = field(default_factory=Integrations)
    defaults: Defaults = field(default_factory=Defaults)

    def survey_status(self, now: datetime | None = None) -> str:
        """One of ``inactive``, ``upcoming``, ``active`` or ``ended``."""
        now = now or timezone.now()
        if not self.is_active:
            return "inactive"
        if now < self.start_date:
            return "upcoming"
        if now > self.end_date:
            return "ended"
        return "active"

    def to_document(self) -> dict[str, Any]:
        document = asdict(self)
        document["start_date"] = self.start_date.isoformat()
        document["end_date"] = self.end_date.isoformat()
        return document


def _parse_date(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = parse_datetime(str(value))
        if parsed is None:
            raise errors.ValidationError(f"Invalid date: {value}")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def _fill_section(section_cls, data: Any):
    data = data if isinstance(data, dict) else {}
    defaults = section_cls()
    values = {}
    for f in fields(section_cls):
        value = data.get(f.name)
        values[f.name] = (
            copy.deepcopy(value) if value is not None else getattr(defaults, f.name)
        )
    return section_cls(**values)


def apply_defaults(
    partial: dict[str, Any] | None, now: datetime | None = None
) -> SystemSettings:
    """Build a complete SystemSettings from a possibly partial document.

    Pure: ``partial`` is never modified. Without stored dates the survey
    window runs from ``now`` for one month.
    """
    partial = partial or {}
    now = now or timezone.now()

    start_date = _parse_date(partial.get("start_date")) or now
    end_date = _parse_date(partial.get("end_date")) or start_date + timedelta(days=30)
    is_active = partial.get("is_active")

    return SystemSettings(
        start_date=start_date,
        end_date=end_date,
        is_active=True if is_active is None else bool(is_active),
        banner_image_url=partial.get("banner_image_url") or "",
        **{
            name: _fill_section(section_cls, partial.get(name))
            for name, section_cls in SECTIONS.items()
        },
    )


def merge_documents(base: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay ``changes`` on ``base`` and return a new dict."""
    merged = copy.deepcopy(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_documents(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_settings(
    settings: SystemSettings,
    now: datetime | None = None,
    previous: SystemSettings | None = None,
) -> None:
    """Raise ValidationError for an unsaveable settings tree.

    The start date may not be more than a day in the past, unless it is the
    start date already stored (a running survey window stays editable).
    """
    now = now or timezone.now()
    if settings.start_date >= settings.end_date:
        raise errors.ValidationError("Start date must be before end date")
    start_changed = previous is None or previous.start_date != settings.start_date
    if start_changed and settings.start_date < now - timedelta(days=1):
        raise errors.ValidationError("Start date cannot be in the past")

    management = settings.response_management
    for name in ("data_retention_days", "auto_archive_after_days", "response_limit"):
        value = getattr(management, name)
        if not isinstance(value, int) or value < 0:
            raise errors.ValidationError(f"{name} must be a whole number of 0 or more")

    threshold = settings.notifications.alert_threshold
    if not isinstance(threshold, int) or isinstance(threshold, bool):
        raise errors.ValidationError("Alert threshold must be a whole number")
    if not isinstance(settings.security.allowed_ip_ranges, list):
        raise errors.ValidationError("Allowed IP ranges must be a list")

    if settings.notifications.email_notifications:
        if not settings.notifications.notification_email:
            raise errors.ValidationError(
                "A notification email is required when email notifications are on"
            )
        if settings.notifications.alert_threshold < 1:
            raise errors.ValidationError("Alert threshold must be at least 1")

    if settings.integrations.export_format not in EXPORT_FORMATS:
        raise errors.ValidationError(
            f"Export format must be one of: {', '.join(EXPORT_FORMATS)}"
        )

    for cidr in settings.security.allowed_ip_ranges:
        try:
            ipaddress.ip_network(cidr, strict=False)
        except ValueError:
            raise errors.ValidationError(f"Invalid IP range: {cidr}")


class SettingsStore:
    """Reads and writes the singleton settings document."""

    def __init__(self, store: DocumentStore, connectivity=None, banner_storage=None):
        self.store = store
        self.connectivity = connectivity
        self.banner_storage = banner_storage

    def read(self, now: datetime | None = None) -> SystemSettings:
        return apply_defaults(self.store.get(SETTINGS, SETTINGS_KEY), now=now)

    def save(self, settings: SystemSettings, now: datetime | None = None) -> SystemSettings:
        stored = self.store.get(SETTINGS, SETTINGS_KEY)
        previous = apply_defaults(stored, now=now) if stored else None
        validate_settings(settings, now=now, previous=previous)
        if self.connectivity is not None:
            self.connectivity.ensure_online()
        document = settings.to_document()
        retry_operation(lambda: self.store.set(SETTINGS, SETTINGS_KEY, document))
        logger.info("System settings saved")
        return settings

    def update(self, changes: dict[str, Any], now: datetime | None = None) -> SystemSettings:
        """Overlay ``changes`` on the current settings and save the result."""
        current = self.read(now=now).to_document()
        return self.save(apply_defaults(merge_documents(current, changes), now=now), now=now)

    def replace_banner(self, upload) -> SystemSettings:
        """Upload a new banner image and drop the previous one."""
        if self.banner_storage is None:
            raise errors.UnknownError("Banner storage is not configured")
        current = self.read()
        url = self.banner_storage.upload(upload)
        if current.banner_image_url:
            self.banner_storage.delete_quietly(current.banner_image_url)
        current.banner_image_url = url
        if self.connectivity is not None:
            self.connectivity.ensure_online()
        document = current.to_document()
        retry_operation(lambda: self.store.set(SETTINGS, SETTINGS_KEY, document))
        logger.info(f"Banner image replaced with {url}")
        return current
