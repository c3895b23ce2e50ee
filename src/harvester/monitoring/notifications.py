"""
Notification Utilities

Slack alerts for collection lifecycle events.
"""
from typing import Any, Dict, Optional

import requests

from config.settings import settings
from src.harvester.models.collection import HealthReport, HealthStatus
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)


def send_slack_notification(message: str, webhook_url: Optional[str] = None) -> bool:
    """
    Send notification to Slack via webhook.

    Args:
        message: Message to send
        webhook_url: Slack webhook URL (defaults to settings.alert_slack_webhook)

    Returns:
        True if successful, False otherwise
    """
    if not settings.alert_enable_slack:
        logger.info("slack_notifications_disabled")
        return False

    webhook_url = webhook_url or settings.alert_slack_webhook
    if not webhook_url:
        logger.warning("slack_webhook_url_not_configured")
        return False

    try:
        response = requests.post(webhook_url, json={"text": message}, timeout=10)
    except requests.RequestException as e:
        logger.error("slack_notification_error", error=str(e))
        return False

    if response.status_code != 200:
        logger.error("slack_notification_failed",
                     status_code=response.status_code,
                     response=response.text)
        return False

    logger.info("slack_notification_sent")
    return True


def format_collection_error_message(payload: Dict[str, Any]) -> str:
    return (
        f"*Collection failed:* {payload.get('name', 'unknown source')} "
        f"(source {payload.get('source_id')})\n"
        f"{payload.get('message', 'no message')}"
    )


def format_health_message(report: HealthReport) -> str:
    """Summarize a health report, listing at most five issues."""
    lines = [
        f"*Collection health: {report.status.value.upper()}*",
        f"Sources: {report.sources.get('active', 0)} active, "
        f"{report.sources.get('warning', 0)} warning, {report.sources.get('error', 0)} error",
        f"Last {report.period_hours}h: {report.recent_collections.get('successful', 0)} successful, "
        f"{report.recent_collections.get('failed', 0)} failed",
    ]
    for issue in report.issues[:5]:
        lines.append(f"- [{issue.severity.value}] {issue.name}: {issue.message}")
    if len(report.issues) > 5:
        lines.append(f"... and {len(report.issues) - 5} more")
    return "\n".join(lines)


def notify_health(report: HealthReport, webhook_url: Optional[str] = None) -> bool:
    """Alert when the system is not healthy."""
    if report.status == HealthStatus.HEALTHY:
        return False
    return send_slack_notification(format_health_message(report), webhook_url)


class SlackLifecycleListener:
    """
    Manager listener that posts failed collections to Slack.

    Usage:
        manager.add_listener(SlackLifecycleListener())
    """

    def __init__(self, webhook_url: Optional[str] = None):
        self.webhook_url = webhook_url

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        if event == "collection_error":
            send_slack_notification(format_collection_error_message(payload), self.webhook_url)
