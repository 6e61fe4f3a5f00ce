"""
Document store used by every PulseCheck service.

Services never talk to the ORM directly; they receive a ``DocumentStore``
in their constructor and read/write whole JSON documents through it:

- get(collection, key)
- query(collection, filters, order_by)
- set(collection, key, document)      full replacement
- create(collection, key, document)   insert, DocumentConflict if the key exists
- delete(collection, key)
- subscribe(collection, callback, filters)
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable

from django.db import IntegrityError, transaction
from django.dispatch import Signal

from .models import Document

logger = logging.getLogger(__name__)

# Collections
NOMINATIONS = "nominations"
POLLS = "polls"
POLL_RESPONSES = "poll-responses"
FEEDBACK_FORMS = "feedback-forms"
FEEDBACK_RESPONSES = "feedback-responses"
QUESTIONNAIRES = "questionnaires"
QUESTIONNAIRE_RESPONSES = "questionnaire-responses"
SETTINGS = "settings"

# Sent by core.signals whenever a document is saved or deleted.
# Receivers get ``collection`` and ``key`` keyword arguments.
document_changed = Signal()


class DocumentConflict(Exception):
    """Raised by create() when a document already exists under the key."""

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"A document with this key already exists in {collection}")


def _matches(data: dict, filters: dict | None) -> bool:
    if not filters:
        return True
    return all(data.get(field) == value for field, value in filters.items())


class DocumentStore:
    """ORM-backed store of JSON documents keyed by (collection, key)."""

    def get(self, collection: str, key: str) -> dict | None:
        doc = Document.objects.filter(collection=collection, key=key).first()
        if doc is None:
            return None
        return copy.deepcopy(doc.data)

    def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Return matching documents, optionally ordered by a top-level field.

        ``order_by`` takes a field name, prefixed with ``-`` for descending.
        Filtering and ordering happen in Python; collections hold a few
        hundred documents at most.
        """
        docs = [
            copy.deepcopy(doc.data)
            for doc in Document.objects.filter(collection=collection).iterator()
            if _matches(doc.data, filters)
        ]
        if order_by:
            descending = order_by.startswith("-")
            field = order_by.lstrip("-")
            present = [d for d in docs if d.get(field) is not None]
            missing = [d for d in docs if d.get(field) is None]
            present.sort(key=lambda d: d[field], reverse=descending)
            # Documents without the field always sort last
            docs = present + missing
        return docs

    def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        if not filters:
            return Document.objects.filter(collection=collection).count()
        return len(self.query(collection, filters))

    def set(self, collection: str, key: str, data: dict) -> dict:
        Document.objects.update_or_create(
            collection=collection, key=key, defaults={"data": data}
        )
        logger.debug(f"Wrote document {collection}/{key}")
        return copy.deepcopy(data)

    def create(self, collection: str, key: str, data: dict) -> dict:
        try:
            with transaction.atomic():
                Document.objects.create(collection=collection, key=key, data=data)
        except IntegrityError as e:
            raise DocumentConflict(collection, key) from e
        logger.debug(f"Created document {collection}/{key}")
        return copy.deepcopy(data)

    def delete(self, collection: str, key: str) -> bool:
        deleted, _ = Document.objects.filter(collection=collection, key=key).delete()
        return deleted > 0

    def subscribe(
        self,
        collection: str,
        callback: Callable[[list[dict]], None],
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> Callable[[], None]:
        """Invoke ``callback`` with the matching documents now and after every change.

        Returns a function that cancels the subscription.
        """

        def receiver(sender, collection: str, **kwargs):
            if collection == watched:
                callback(self.query(watched, filters, order_by))

        watched = collection
        document_changed.connect(receiver, weak=False)
        callback(self.query(watched, filters, order_by))

        def unsubscribe() -> None:
            document_changed.disconnect(receiver)

        return unsubscribe
