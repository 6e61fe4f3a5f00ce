"""Tests for the connectivity monitor."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from pulsecheck_app.core import errors
from pulsecheck_app.core.connectivity import OFFLINE_MESSAGE, ConnectivityMonitor


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestWithoutProbe:
    def test_online_by_default(self):
        monitor = ConnectivityMonitor()
        assert monitor.is_online is True
        monitor.ensure_online()

    def test_offline_rejects_writes(self):
        monitor = ConnectivityMonitor()
        monitor.mark_offline()

        with pytest.raises(errors.NetworkError) as exc_info:
            monitor.ensure_online()
        assert exc_info.value.user_message == OFFLINE_MESSAGE

        monitor.mark_online()
        monitor.ensure_online()


class TestWithProbe:
    @patch("pulsecheck_app.core.connectivity.requests.head")
    def test_reachable_probe_marks_online(self, mock_head):
        mock_head.return_value = MagicMock(status_code=204)
        monitor = ConnectivityMonitor(probe_url="https://status.example.com")

        assert monitor.is_online is True
        mock_head.assert_called_once()

    @patch("pulsecheck_app.core.connectivity.requests.head")
    def test_failed_probe_marks_offline(self, mock_head):
        mock_head.side_effect = requests.ConnectionError("unreachable")
        monitor = ConnectivityMonitor(probe_url="https://status.example.com")

        assert monitor.is_online is False
        with pytest.raises(errors.NetworkError):
            monitor.ensure_online()

    @patch("pulsecheck_app.core.connectivity.requests.head")
    def test_server_error_counts_as_unreachable(self, mock_head):
        mock_head.return_value = MagicMock(status_code=503)
        monitor = ConnectivityMonitor(probe_url="https://status.example.com")

        assert monitor.is_online is False

    @patch("pulsecheck_app.core.connectivity.requests.head")
    def test_probe_is_rate_limited_by_interval(self, mock_head):
        mock_head.return_value = MagicMock(status_code=200)
        clock = FakeClock()
        monitor = ConnectivityMonitor(
            probe_url="https://status.example.com", interval=30, clock=clock
        )

        assert monitor.is_online
        clock.now = 10
        assert monitor.is_online
        assert mock_head.call_count == 1

        clock.now = 31
        mock_head.side_effect = requests.Timeout("slow")
        assert monitor.is_online is False
        assert mock_head.call_count == 2
