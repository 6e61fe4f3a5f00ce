"""
RetentionService - Applies the response management policy from system settings.

Policy (``response_management``):
- data_retention_days: responses older than this are deleted (0 keeps them)
- auto_archive_after_days: polls, feedback forms and questionnaires created
  longer ago than this are deactivated (0 never archives)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from pulsecheck_app.core.store import (
    FEEDBACK_FORMS,
    FEEDBACK_RESPONSES,
    POLL_RESPONSES,
    POLLS,
    QUESTIONNAIRE_RESPONSES,
    QUESTIONNAIRES,
    DocumentStore,
)

logger = logging.getLogger(__name__)

RESPONSE_COLLECTIONS = (POLL_RESPONSES, FEEDBACK_RESPONSES, QUESTIONNAIRE_RESPONSES)
ITEM_COLLECTIONS = (POLLS, FEEDBACK_FORMS, QUESTIONNAIRES)


@dataclass
class RetentionReport:
    # collection -> document keys
    expired_responses: dict[str, list[str]] = field(default_factory=dict)
    archived_items: dict[str, list[str]] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def expired_count(self) -> int:
        return sum(len(keys) for keys in self.expired_responses.values())

    @property
    def archived_count(self) -> int:
        return sum(len(keys) for keys in self.archived_items.values())


def _older_than(value, cutoff: datetime) -> bool:
    parsed = parse_datetime(value) if isinstance(value, str) else value
    return isinstance(parsed, datetime) and parsed < cutoff


class RetentionService:
    def __init__(self, store: DocumentStore, settings_store):
        self.store = store
        self.settings_store = settings_store

    def find_expired_responses(self, retention_days: int, now: datetime) -> dict[str, list[str]]:
        if retention_days <= 0:
            return {}
        cutoff = now - timedelta(days=retention_days)
        return {
            collection: [
                doc["id"]
                for doc in self.store.query(collection)
                if _older_than(doc.get("submitted_at"), cutoff)
            ]
            for collection in RESPONSE_COLLECTIONS
        }

    def find_archivable_items(self, archive_days: int, now: datetime) -> dict[str, list[str]]:
        if archive_days <= 0:
            return {}
        cutoff = now - timedelta(days=archive_days)
        return {
            collection: [
                doc["id"]
                for doc in self.store.query(collection, {"is_active": True})
                if _older_than(doc.get("created_at"), cutoff)
            ]
            for collection in ITEM_COLLECTIONS
        }

    def apply(self, dry_run: bool = False, now: datetime | None = None) -> RetentionReport:
        """
        Delete expired responses and archive old items.

        Args:
            dry_run: Report what would change without writing
            now: Reference time (defaults to timezone.now())

        Returns:
            RetentionReport listing affected document keys per collection
        """
        now = now or timezone.now()
        policy = self.settings_store.read(now=now).response_management
        report = RetentionReport(
            expired_responses=self.find_expired_responses(policy.data_retention_days, now),
            archived_items=self.find_archivable_items(policy.auto_archive_after_days, now),
            dry_run=dry_run,
        )
        if dry_run:
            return report

        for collection, keys in report.expired_responses.items():
            for key in keys:
                self.store.delete(collection, key)
        for collection, keys in report.archived_items.items():
            for key in keys:
                document = self.store.get(collection, key)
                if document is None:
                    continue
                document["is_active"] = False
                self.store.set(collection, key, document)

        logger.info(
            f"Retention applied: {report.expired_count} responses deleted, "
            f"{report.archived_count} items archived"
        )
        return report
