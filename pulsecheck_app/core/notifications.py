"""Best-effort side effects after a response has been stored."""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.utils import timezone
import requests

from .email_utils import send_response_alert_email

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 5

KIND_LABELS = {
    "polls": "poll",
    "feedback": "feedback form",
    "questionnaires": "questionnaire",
}


class ResponseNotifier:
    """Sends threshold alert emails and webhook events for new responses.

    Failures are logged and never raised: the response is already stored.
    """

    def __init__(self, settings_store):
        self.settings_store = settings_store

    def response_received(
        self, kind: str, item: dict[str, Any], response: dict[str, Any], count: int
    ) -> None:
        try:
            system_settings = self.settings_store.read()
        except Exception as e:
            logger.error(f"Could not read settings for notifications: {e}", exc_info=True)
            return

        notifications = system_settings.notifications
        threshold = notifications.alert_threshold
        if (
            notifications.email_notifications
            and notifications.notification_email
            and threshold > 0
            and count > 0
            and count % threshold == 0
        ):
            send_response_alert_email(
                to_email=notifications.notification_email,
                kind_label=KIND_LABELS.get(kind, kind),
                title=item.get("title", ""),
                location=item.get("location", ""),
                count=count,
                results_url=f"{settings.SITE_URL.rstrip('/')}/admin/{kind}/{item.get('id')}",
                system_settings=system_settings,
            )

        webhook_url = system_settings.integrations.webhook_url
        if webhook_url:
            self.post_webhook(
                webhook_url,
                {
                    "event": "response.created",
                    "kind": kind,
                    "item_id": item.get("id"),
                    "title": item.get("title", ""),
                    "response_id": response.get("id"),
                    "response_count": count,
                    "sent_at": timezone.now().isoformat(),
                },
            )

    def post_webhook(self, url: str, payload: dict[str, Any]) -> bool:
        try:
            resp = requests.post(url, json=payload, timeout=WEBHOOK_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Webhook delivery to {url} failed: {e}")
            return False
        logger.info(f"Webhook {payload.get('event')} delivered to {url}")
        return True
