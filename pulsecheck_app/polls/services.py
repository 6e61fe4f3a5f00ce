"""
Poll engine: single-question polls with an ordered option list.

Polls are stored in the ``polls`` collection and their votes in
``poll-responses``. A poll is open while it is active and its end date (if
any) has not passed; expiry is checked when a vote arrives, it is never
written back to the poll.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone as dt_timezone
import logging
from typing import Any
import uuid

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from pulsecheck_app.core import errors
from pulsecheck_app.core.qr_utils import ShareLink, build_share_link
from pulsecheck_app.core.retry import retry_operation
from pulsecheck_app.core.store import POLL_RESPONSES, POLLS, DocumentStore
from pulsecheck_app.surveys.schema import validate_location

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"
EDITABLE_FIELDS = (
    "title",
    "question",
    "description",
    "options",
    "location",
    "end_date",
    "is_active",
)


def parse_end_date(value: Any) -> datetime | None:
    """Accept a datetime, an ISO datetime string or a bare date.

    A bare date means midnight UTC at the start of that day.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        parsed = parse_datetime(str(value))
        if parsed is None:
            day = parse_date(str(value))
            if day is None:
                raise errors.ValidationError(f"Invalid end date: {value}")
            parsed = datetime.combine(day, time.min)
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def clean_options(options: list[str] | None) -> list[str]:
    cleaned = [str(o).strip() for o in options or [] if str(o).strip()]
    if len(cleaned) < 2:
        raise errors.ValidationError(
            "Please fill in all required fields and provide at least two options"
        )
    if len(set(cleaned)) != len(cleaned):
        raise errors.ValidationError("Poll options must be distinct")
    return cleaned


@dataclass
class Poll:
    id: str
    title: str
    question: str
    options: list[str]
    location: str
    created_at: datetime
    description: str = ""
    end_date: datetime | None = None
    is_active: bool = True

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.end_date is None:
            return False
        return (now or timezone.now()) > self.end_date

    def status(self, now: datetime | None = None) -> str:
        if not self.is_active:
            return "inactive"
        return "expired" if self.is_expired(now) else "active"

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "question": self.question,
            "description": self.description,
            "options": list(self.options),
            "location": self.location,
            "created_at": self.created_at.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_active": self.is_active,
        }

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Poll:
        created_at = document.get("created_at")
        return cls(
            id=document["id"],
            title=document.get("title", ""),
            question=document.get("question", ""),
            options=list(document.get("options") or []),
            location=document.get("location", ""),
            created_at=(
                parse_datetime(created_at) if isinstance(created_at, str) else created_at
            ),
            description=document.get("description") or "",
            end_date=parse_end_date(document.get("end_date")),
            is_active=document.get("is_active", True),
        )


@dataclass
class PollTally:
    poll_id: str
    counts: dict[str, int] = field(default_factory=dict)
    total_votes: int = 0
    percentages: dict[str, int] = field(default_factory=dict)


def percentage(count: int, total: int) -> int:
    """round(count / total * 100) with halves rounded up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (count * 200 + total) // (2 * total)


def tally_responses(poll_id: str, options: list[str], responses: list[dict]) -> PollTally:
    counts = {option: 0 for option in options}
    for response in responses:
        selected = response.get("selected_option")
        if selected in counts:
            counts[selected] += 1
    total = sum(counts.values())
    return PollTally(
        poll_id=poll_id,
        counts=counts,
        total_votes=total,
        percentages={option: percentage(n, total) for option, n in counts.items()},
    )


class PollService:
    def __init__(
        self,
        store: DocumentStore,
        connectivity=None,
        settings_store=None,
        notifier=None,
    ):
        self.store = store
        self.connectivity = connectivity
        self.settings_store = settings_store
        self.notifier = notifier

    def _ensure_online(self) -> None:
        if self.connectivity is not None:
            self.connectivity.ensure_online()

    def _save(self, poll: Poll) -> Poll:
        self._ensure_online()
        document = poll.to_document()
        retry_operation(lambda: self.store.set(POLLS, poll.id, document))
        return poll

    def _validate(self, poll: Poll) -> None:
        if not poll.title.strip() or not poll.question.strip() or not poll.location:
            raise errors.ValidationError(
                "Please fill in all required fields and provide at least two options"
            )
        validate_location(poll.location)
        poll.options = clean_options(poll.options)

    def create_poll(
        self,
        title: str,
        question: str,
        options: list[str],
        location: str,
        description: str | None = None,
        end_date: Any = None,
    ) -> Poll:
        poll = Poll(
            id=uuid.uuid4().hex,
            title=(title or "").strip(),
            question=(question or "").strip(),
            options=list(options or []),
            location=location or "",
            created_at=timezone.now(),
            description=description or "",
            end_date=parse_end_date(end_date),
        )
        self._validate(poll)
        self._save(poll)
        logger.info(f"Created poll {poll.id} with {len(poll.options)} options")
        return poll

    def share_link(self, poll_id: str) -> ShareLink:
        return build_share_link("polls", poll_id)

    def get_poll(self, poll_id: str) -> Poll:
        document = self.store.get(POLLS, poll_id)
        if document is None:
            raise errors.NotFoundError("Poll not found")
        return Poll.from_document(document)

    def list_polls(self, active_only: bool = False) -> list[Poll]:
        filters = {"is_active": True} if active_only else None
        return [
            Poll.from_document(doc)
            for doc in self.store.query(POLLS, filters, order_by="-created_at")
        ]

    def get_open_poll(self, poll_id: str, now: datetime | None = None) -> Poll:
        """Return the poll if it can take votes; NotFoundError otherwise."""
        poll = self.get_poll(poll_id)
        if not poll.is_active:
            raise errors.NotFoundError("This poll is no longer active")
        if poll.is_expired(now):
            raise errors.NotFoundError("This poll has expired")
        return poll

    def update_poll(self, poll_id: str, **changes) -> Poll:
        """Replace editable fields; id and created_at never change."""
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise errors.ValidationError(
                f"Cannot change poll fields: {', '.join(sorted(unknown))}"
            )
        poll = self.get_poll(poll_id)
        for name, value in changes.items():
            if name == "end_date":
                value = parse_end_date(value)
            elif name in ("title", "question") and value is not None:
                value = value.strip()
            elif name == "description":
                value = value or ""
            setattr(poll, name, value)
        self._validate(poll)
        self._save(poll)
        logger.info(f"Updated poll {poll_id}: {', '.join(sorted(changes))}")
        return poll

    def delete_poll(self, poll_id: str) -> None:
        """Remove the poll. Its responses stay stored."""
        self.get_poll(poll_id)
        self._ensure_online()
        retry_operation(lambda: self.store.delete(POLLS, poll_id))
        logger.info(f"Deleted poll {poll_id}")

    def responses(self, poll_id: str | None = None) -> list[dict[str, Any]]:
        filters = {"poll_id": poll_id} if poll_id else None
        return self.store.query(POLL_RESPONSES, filters, order_by="-submitted_at")

    def submit_response(
        self,
        poll_id: str,
        selected_option: str,
        respondent: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        if not selected_option or not str(selected_option).strip():
            raise errors.ValidationError("Please select an option")
        poll = self.get_open_poll(poll_id, now=now)
        if selected_option not in poll.options:
            raise errors.ValidationError(f"'{selected_option}' is not an option for this poll")

        count = self.store.count(POLL_RESPONSES, {"poll_id": poll_id})
        if self.settings_store is not None:
            management = self.settings_store.read().response_management
            if management.limit_reached(count):
                raise errors.PermissionDeniedError(
                    "This poll is no longer accepting responses."
                )

        self._ensure_online()
        response = {
            "id": uuid.uuid4().hex,
            "poll_id": poll_id,
            "respondent": (respondent or "").strip() or ANONYMOUS,
            "selected_option": selected_option,
            "location": poll.location,
            "submitted_at": (now or timezone.now()).isoformat(),
        }
        retry_operation(lambda: self.store.create(POLL_RESPONSES, response["id"], response))
        logger.info(f"Stored vote {response['id']} for poll {poll_id}")

        if self.notifier is not None:
            self.notifier.response_received("polls", poll.to_document(), response, count + 1)
        return response

    def tally(self, poll_id: str) -> PollTally:
        poll = self.get_poll(poll_id)
        return tally_responses(poll.id, poll.options, self.responses(poll_id))
