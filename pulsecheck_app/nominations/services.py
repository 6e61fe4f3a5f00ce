"""
Staff award nominations.

Each nominator (identified by their verified email) submits one nominee per
category, exactly once. The submission document is keyed by the identity,
so uniqueness is enforced by the store's create-if-absent write rather than
a check followed by a write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Any, Iterable

from django.conf import settings
from django.utils import timezone

from pulsecheck_app.core import errors
from pulsecheck_app.core.retry import retry_operation
from pulsecheck_app.core.store import NOMINATIONS, DocumentConflict, DocumentStore

from .categories import CATEGORIES, NominationCategory, get_category
from .roster import Roster

logger = logging.getLogger(__name__)


@dataclass
class CategoryResult:
    category: NominationCategory
    # nominee name -> votes, in first-seen order
    nominations: dict[str, int] = field(default_factory=dict)
    total_votes: int = 0

    def ranked(self) -> list[tuple[str, int]]:
        """Nominees by descending votes; ties keep first-seen order."""
        return sorted(self.nominations.items(), key=lambda item: -item[1])

    def to_dict(self) -> dict[str, Any]:
        return {
            "category_id": self.category.category_id,
            "title": self.category.title,
            "description": self.category.description,
            "total_votes": self.total_votes,
            "nominations": [
                {"nominee": nominee, "votes": votes} for nominee, votes in self.ranked()
            ],
        }


def aggregate(submissions: Iterable[dict[str, Any]]) -> list[CategoryResult]:
    """Tally votes per category and nominee.

    Always returns one result per fixed category. Unknown category ids and
    blank nominees are skipped.
    """
    results = {c.category_id: CategoryResult(category=c) for c in CATEGORIES}
    for submission in submissions:
        for category_id, nominee in (submission.get("nominations") or {}).items():
            category = get_category(category_id)
            if category is None or not nominee:
                continue
            result = results[category.category_id]
            result.nominations[nominee] = result.nominations.get(nominee, 0) + 1
            result.total_votes += 1
    return [results[c.category_id] for c in CATEGORIES]


def normalise_identity(identity: str) -> str:
    return (identity or "").strip().lower()


class NominationService:
    def __init__(
        self,
        store: DocumentStore,
        connectivity=None,
        settings_store=None,
        roster: Roster | None = None,
    ):
        self.store = store
        self.connectivity = connectivity
        self.settings_store = settings_store
        self.roster = roster or Roster()

    def categories(self) -> tuple[NominationCategory, ...]:
        return CATEGORIES

    def candidates(self):
        return self.roster.active()

    def check_nominator(self, email: str) -> str:
        """Return the normalised identity for a nominator email.

        With a roster loaded the email must belong to an employee; with a
        configured domain it must be an address at that domain.
        """
        identity = normalise_identity(email)
        if not identity or "@" not in identity:
            raise errors.ValidationError("Please enter a valid email address.")
        domain = settings.PULSECHECK_NOMINATION_EMAIL_DOMAIN.lower().lstrip("@")
        if domain and not identity.endswith(f"@{domain}"):
            raise errors.ValidationError(f"Please use your company email (@{domain})")
        if len(self.roster) and self.roster.find_by_email(identity) is None:
            raise errors.ValidationError("Email not found in employee records")
        return identity

    def check_window(self, now: datetime | None = None) -> None:
        if self.settings_store is None:
            return
        status = self.settings_store.read(now=now).survey_status(now)
        if status == "upcoming":
            raise errors.PermissionDeniedError("Nominations have not opened yet.")
        if status in ("ended", "inactive"):
            raise errors.PermissionDeniedError("Nominations are closed.")

    def has_submitted(self, identity: str) -> bool:
        return self.store.get(NOMINATIONS, normalise_identity(identity)) is not None

    def validate_nominations(self, nominations: dict[Any, str]) -> dict[str, str]:
        """Return nominations keyed by category id string; reject incomplete sets."""
        cleaned: dict[str, str] = {}
        for category_id, nominee in (nominations or {}).items():
            category = get_category(category_id)
            if category is None:
                raise errors.ValidationError(f"Unknown award category: {category_id}")
            nominee = (nominee or "").strip()
            if nominee:
                cleaned[str(category.category_id)] = nominee

        missing = [c.title for c in CATEGORIES if str(c.category_id) not in cleaned]
        if missing:
            raise errors.ValidationError(
                "Please choose a nominee for every category", missing=missing
            )
        if len(self.roster):
            unknown = sorted({n for n in cleaned.values() if not self.roster.is_candidate(n)})
            if unknown:
                raise errors.ValidationError(
                    f"Not an active employee: {', '.join(unknown)}", unknown=unknown
                )
        return cleaned

    def submit(
        self,
        identity: str,
        nominations: dict[Any, str],
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Store a complete submission for ``identity``.

        Raises:
            ValidationError: a category is missing or a nominee is unknown
            PermissionDeniedError: the nomination window is not open
            DuplicateSubmissionError: ``identity`` already submitted; the stored
                submission is left unchanged
        """
        identity = normalise_identity(identity)
        if not identity:
            raise errors.ValidationError("Please verify your email before nominating.")
        self.check_window(now)
        cleaned = self.validate_nominations(nominations)
        if self.connectivity is not None:
            self.connectivity.ensure_online()

        submission = {
            "submitter_identity": identity,
            "nominations": cleaned,
            "submitted_at": (now or timezone.now()).isoformat(),
        }
        try:
            retry_operation(lambda: self.store.create(NOMINATIONS, identity, submission))
        except DocumentConflict:
            logger.info(f"Rejected duplicate nomination submission from {identity}")
            raise errors.DuplicateSubmissionError()
        logger.info(f"Stored nominations from {identity}")
        return submission

    def submissions(self) -> list[dict[str, Any]]:
        return self.store.query(NOMINATIONS, order_by="submitted_at")

    def results(self) -> list[CategoryResult]:
        return aggregate(self.submissions())
