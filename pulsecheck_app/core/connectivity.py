"""
Process-wide online/offline tracking.

The monitor is owned by the core app config and handed to services that
write. When a probe URL is configured it is re-checked lazily, at most once
per ``interval`` seconds, whenever somebody asks whether we are online.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import requests

from . import errors

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "You're offline. Please connect to the internet and try again."


class ConnectivityMonitor:
    def __init__(
        self,
        probe_url: str = "",
        interval: float = 30.0,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.probe_url = probe_url
        self.interval = interval
        self.timeout = timeout
        self._clock = clock
        self._online = True
        self._last_probe: float | None = None

    def mark_online(self) -> None:
        if not self._online:
            logger.info("Connectivity restored")
        self._online = True
        self._last_probe = self._clock()

    def mark_offline(self) -> None:
        if self._online:
            logger.warning("Connectivity lost; writes will be rejected locally")
        self._online = False
        self._last_probe = self._clock()

    def probe(self) -> bool:
        """Check reachability of the probe URL and record the result."""
        try:
            response = requests.head(
                self.probe_url, timeout=self.timeout, allow_redirects=True
            )
            reachable = response.status_code < 500
        except requests.RequestException as e:
            logger.debug(f"Reachability probe to {self.probe_url} failed: {e}")
            reachable = False

        if reachable:
            self.mark_online()
        else:
            self.mark_offline()
        return reachable

    @property
    def is_online(self) -> bool:
        if not self.probe_url:
            return self._online
        due = (
            self._last_probe is None
            or self._clock() - self._last_probe >= self.interval
        )
        if due:
            self.probe()
        return self._online

    def ensure_online(self) -> None:
        """Raise NetworkError instead of attempting a write while offline."""
        if not self.is_online:
            raise errors.NetworkError(OFFLINE_MESSAGE)
