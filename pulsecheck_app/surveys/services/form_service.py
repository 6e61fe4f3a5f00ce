"""
FormService - Publishing and administration of feedback forms and questionnaires.

Features:
- Publish a built schema (new or edited) with retried writes
- Share URL and QR code for every published schema
- List, fetch, activate/deactivate and delete schemas
- Fetch the responses stored for a schema
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from pulsecheck_app.core import errors
from pulsecheck_app.core.qr_utils import ShareLink, build_share_link
from pulsecheck_app.core.retry import retry_operation
from pulsecheck_app.core.store import DocumentStore

from ..schema import FormKind, FormSchema, validate_schema

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    schema: FormSchema
    share: ShareLink
    created: bool


class FormService:
    """
    Service for one kind of schema (feedback form or questionnaire).

    Deleting a schema leaves its responses in place; they stay exportable
    through ``responses()`` but no longer render anywhere.
    """

    def __init__(
        self,
        kind: FormKind,
        store: DocumentStore,
        connectivity=None,
        settings_store=None,
        notifier=None,
    ):
        self.kind = kind
        self.store = store
        self.connectivity = connectivity
        self.settings_store = settings_store
        self.notifier = notifier

    def _ensure_online(self) -> None:
        if self.connectivity is not None:
            self.connectivity.ensure_online()

    def publish(self, schema: FormSchema) -> PublishResult:
        """
        Persist a schema and return it with its share link.

        Args:
            schema: Output of SchemaBuilder.build()

        Returns:
            PublishResult with the stored schema, share URL and QR code

        Raises:
            ValidationError: title, location or questions are missing
            NetworkError: offline, or the write kept failing
        """
        validate_schema(schema)
        self._ensure_online()

        stored = self.store.get(self.kind.collection, schema.id)
        created = stored is None
        if stored is not None:
            # Editing keeps the original creation time
            original = FormSchema.from_document(stored)
            schema.created_at = original.created_at or schema.created_at

        document = schema.to_document()
        retry_operation(lambda: self.store.set(self.kind.collection, schema.id, document))
        logger.info(
            f"{'Published' if created else 'Updated'} {self.kind.label} "
            f"{schema.id} ({len(schema.questions)} questions)"
        )
        return PublishResult(
            schema=FormSchema.from_document(document),
            share=self.share_link(schema.id),
            created=created,
        )

    def share_link(self, form_id: str) -> ShareLink:
        return build_share_link(self.kind.share_kind, form_id)

    def get(self, form_id: str) -> FormSchema:
        document = self.store.get(self.kind.collection, form_id)
        if document is None:
            raise errors.NotFoundError(f"This {self.kind.label} could not be found.")
        return FormSchema.from_document(document)

    def list(self, active_only: bool = False) -> list[FormSchema]:
        filters = {"is_active": True} if active_only else None
        return [
            FormSchema.from_document(doc)
            for doc in self.store.query(
                self.kind.collection, filters, order_by="-created_at"
            )
        ]

    def set_active(self, form_id: str, is_active: bool) -> FormSchema:
        schema = self.get(form_id)
        schema.is_active = is_active
        self._ensure_online()
        document = schema.to_document()
        retry_operation(lambda: self.store.set(self.kind.collection, form_id, document))
        logger.info(
            f"{self.kind.label.capitalize()} {form_id} "
            f"{'activated' if is_active else 'deactivated'}"
        )
        return schema

    def delete(self, form_id: str) -> None:
        self.get(form_id)
        self._ensure_online()
        retry_operation(lambda: self.store.delete(self.kind.collection, form_id))
        logger.info(f"Deleted {self.kind.label} {form_id}")

    def responses(self, form_id: str | None = None) -> list[dict[str, Any]]:
        """Stored responses, newest first; all responses of this kind without ``form_id``."""
        filters = {"form_id": form_id} if form_id else None
        return self.store.query(
            self.kind.response_collection, filters, order_by="-submitted_at"
        )
