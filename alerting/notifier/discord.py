from __future__ import annotations

from typing import Any, Dict

from ..models import Alert, AlertChannel
from .base import HttpNotifier
from .templates import human_time, severity_color

# ограничение длины сообщения Discord
_MAX_CONTENT = 2000


def embed_color(severity: str) -> int:
	"""Discord принимает цвет только целым числом."""
	return int(severity_color(severity).lstrip("#"), 16)


def build_discord_payload(message: str, alert: Alert) -> Dict[str, Any]:
	return {
		"content": message[:_MAX_CONTENT],
		"embeds": [
			{
				"color": embed_color(alert.severity),
				"fields": [
					{"name": "Alert ID", "value": alert.id, "inline": True},
					{"name": "Severity", "value": alert.severity, "inline": True},
					{"name": "Source", "value": alert.source, "inline": True},
					{"name": "Created", "value": human_time(alert.created_at), "inline": True},
				],
			}
		],
	}


class DiscordNotifier(HttpNotifier):
	def target_url(self, channel: AlertChannel) -> str:
		return str(channel.config.get("webhook_url") or "")

	def build_payload(self, message: str, alert: Alert) -> Dict[str, Any]:
		return build_discord_payload(message, alert)
