"""
Django management command to apply the response management policy.

Run daily (e.g., via cron or scheduled job) to:
1. Delete responses older than ``data_retention_days``
2. Deactivate polls, feedback forms and questionnaires older than
   ``auto_archive_after_days``

Usage:
    python manage.py apply_retention
    python manage.py apply_retention --dry-run
    python manage.py apply_retention --verbose
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from pulsecheck_app.core.settings_store import SettingsStore
from pulsecheck_app.core.store import DocumentStore
from pulsecheck_app.surveys.services.retention_service import RetentionService


class Command(BaseCommand):
    help = "Delete expired responses and archive old polls, forms and questionnaires"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be done without actually doing it",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show detailed output",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        verbose = options["verbose"]

        self.stdout.write(
            self.style.SUCCESS(f"Starting retention run at {timezone.now()}")
        )
        if dry_run:
            self.stdout.write(
                self.style.WARNING("DRY RUN MODE - No changes will be made")
            )

        store = DocumentStore()
        service = RetentionService(store, SettingsStore(store))
        report = service.apply(dry_run=dry_run)

        if verbose:
            for collection, keys in report.expired_responses.items():
                self.stdout.write(f"{collection}: {len(keys)} expired responses")
                for key in keys[:10]:
                    self.stdout.write(f"  - {key}")
            for collection, keys in report.archived_items.items():
                self.stdout.write(f"{collection}: {len(keys)} items to archive")
                for key in keys[:10]:
                    self.stdout.write(f"  - {key}")

        if dry_run:
            self.stdout.write(
                self.style.WARNING(
                    f"Would delete {report.expired_count} responses and "
                    f"archive {report.archived_count} items"
                )
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Deleted {report.expired_count} responses and "
                    f"archived {report.archived_count} items"
                )
            )
