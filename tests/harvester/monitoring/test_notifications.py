"""
Tests for Slack notification helpers.
"""
from unittest.mock import MagicMock, patch

import requests

from conftest import utc
from src.harvester.models.collection import HealthIssue, HealthReport, HealthStatus, Severity
from src.harvester.monitoring.notifications import (
    SlackLifecycleListener,
    format_collection_error_message,
    format_health_message,
    notify_health,
    send_slack_notification,
)


def _report(status=HealthStatus.DEGRADED, issue_count=1):
    return HealthReport(
        status=status,
        checked_at=utc(2024, 3, 11, 10),
        period_hours=24,
        collectors={"total": 1, "active": 1},
        sources={"total": 2, "active": 1, "warning": 0, "error": 1},
        recent_collections={"total": 2, "successful": 1, "failed": 1},
        issues=[
            HealthIssue(type="source", severity=Severity.ERROR, id=str(i), name=f"Source {i}", message="down")
            for i in range(issue_count)
        ],
    )


class TestSlackNotifications:
    """Tests for send_slack_notification."""

    @patch('src.harvester.monitoring.notifications.requests.post')
    @patch('src.harvester.monitoring.notifications.settings')
    def test_send_success(self, mock_settings, mock_post):
        mock_settings.alert_enable_slack = True
        mock_settings.alert_slack_webhook = "https://hooks.slack.com/test"
        mock_post.return_value = MagicMock(status_code=200)

        assert send_slack_notification("Test message") is True
        assert mock_post.call_args[1]["json"]["text"] == "Test message"
        assert mock_post.call_args[1]["timeout"] == 10

    @patch('src.harvester.monitoring.notifications.requests.post')
    @patch('src.harvester.monitoring.notifications.settings')
    def test_disabled(self, mock_settings, mock_post):
        mock_settings.alert_enable_slack = False

        assert send_slack_notification("Test message") is False
        mock_post.assert_not_called()

    @patch('src.harvester.monitoring.notifications.settings')
    def test_missing_webhook(self, mock_settings):
        mock_settings.alert_enable_slack = True
        mock_settings.alert_slack_webhook = None

        assert send_slack_notification("Test message") is False

    @patch('src.harvester.monitoring.notifications.requests.post')
    @patch('src.harvester.monitoring.notifications.settings')
    def test_http_failure(self, mock_settings, mock_post):
        mock_settings.alert_enable_slack = True
        mock_settings.alert_slack_webhook = "https://hooks.slack.com/test"
        mock_post.return_value = MagicMock(status_code=400, text="Bad request")

        assert send_slack_notification("Test message") is False

    @patch('src.harvester.monitoring.notifications.requests.post')
    @patch('src.harvester.monitoring.notifications.settings')
    def test_connection_error(self, mock_settings, mock_post):
        mock_settings.alert_enable_slack = True
        mock_settings.alert_slack_webhook = "https://hooks.slack.com/test"
        mock_post.side_effect = requests.ConnectionError("refused")

        assert send_slack_notification("Test message") is False


class TestFormatting:
    """Tests for message formatting."""

    def test_collection_error_message(self):
        message = format_collection_error_message(
            {"source_id": 4, "name": "St. Mary's", "message": "Failed to fetch index"}
        )

        assert "St. Mary's" in message
        assert "source 4" in message
        assert "Failed to fetch index" in message

    def test_health_message_truncates_issues(self):
        message = format_health_message(_report(issue_count=7))

        assert message.startswith("*Collection health: DEGRADED*")
        assert message.count("[error]") == 5
        assert "... and 2 more" in message


class TestNotifyHealth:
    """Tests for notify_health and the lifecycle listener."""

    @patch('src.harvester.monitoring.notifications.send_slack_notification')
    def test_healthy_report_is_silent(self, mock_send):
        assert notify_health(_report(HealthStatus.HEALTHY, issue_count=0)) is False
        mock_send.assert_not_called()

    @patch('src.harvester.monitoring.notifications.send_slack_notification', return_value=True)
    def test_degraded_report_is_sent(self, mock_send):
        assert notify_health(_report(), webhook_url="https://hooks.slack.com/x") is True
        assert mock_send.call_args[0][1] == "https://hooks.slack.com/x"

    @patch('src.harvester.monitoring.notifications.send_slack_notification')
    def test_listener_only_posts_errors(self, mock_send):
        listener = SlackLifecycleListener("https://hooks.slack.com/x")

        listener("collection_started", {"source_id": 1})
        listener("collection_completed", {"source_id": 1})
        listener("collection_error", {"source_id": 1, "name": "County", "message": "boom"})

        mock_send.assert_called_once()
        assert "boom" in mock_send.call_args[0][0]
