"""Bounded retry with exponential backoff for writes at risk from network failures."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from django.conf import settings
import requests

from . import errors

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_CODES = {"unavailable", "deadline-exceeded"}
TRANSIENT_MESSAGE_MARKERS = ("network", "timeout", "connection", "unavailable")


def is_transient_error(exc: BaseException) -> bool:
    """Return True when ``exc`` looks like a temporary network failure."""
    if isinstance(exc, errors.NetworkError):
        return True
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if getattr(exc, "code", None) in TRANSIENT_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS)


def retry_operation(
    operation: Callable[[], T],
    retries: int | None = None,
    delay: float | None = None,
    backoff_factor: float = 2,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation``, retrying transient failures.

    Args:
        operation: Zero-argument callable performing the write
        retries: Retries after the first attempt (defaults to PULSECHECK_RETRY_ATTEMPTS)
        delay: Seconds to wait before the first retry (defaults to PULSECHECK_RETRY_BASE_DELAY)
        backoff_factor: Multiplier applied to the delay after each retry
        sleep: Injected for tests

    Returns:
        Whatever ``operation`` returns on its first successful attempt

    Raises:
        The last error unmodified once retries are exhausted, or immediately
        when the error is not transient.
    """
    if retries is None:
        retries = settings.PULSECHECK_RETRY_ATTEMPTS
    if delay is None:
        delay = settings.PULSECHECK_RETRY_BASE_DELAY

    remaining = retries
    while True:
        try:
            return operation()
        except Exception as exc:
            if remaining <= 0 or not is_transient_error(exc):
                raise
            logger.warning(
                f"Retrying operation after transient error ({exc}); "
                f"{remaining} attempts remaining, waiting {delay}s"
            )
            sleep(delay)
            remaining -= 1
            delay *= backoff_factor
