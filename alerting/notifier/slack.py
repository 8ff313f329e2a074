from __future__ import annotations

from typing import Any, Dict

from ..models import Alert, AlertChannel
from .base import HttpNotifier
from .templates import human_time, severity_color


def build_slack_payload(message: str, alert: Alert) -> Dict[str, Any]:
	return {
		"text": message,
		"attachments": [
			{
				"color": severity_color(alert.severity),
				"fields": [
					{"title": "Alert ID", "value": alert.id, "short": True},
					{"title": "Severity", "value": alert.severity, "short": True},
					{"title": "Source", "value": alert.source, "short": True},
					{"title": "Created", "value": human_time(alert.created_at), "short": True},
				],
			}
		],
	}


class SlackNotifier(HttpNotifier):
	"""Incoming webhook Slack: текст плюс attachment с цветом важности."""

	def target_url(self, channel: AlertChannel) -> str:
		return str(channel.config.get("webhook_url") or "")

	def build_payload(self, message: str, alert: Alert) -> Dict[str, Any]:
		return build_slack_payload(message, alert)
