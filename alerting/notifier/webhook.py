from __future__ import annotations

import logging
from typing import Any, Dict

from ..models import Alert, AlertChannel
from .base import HttpNotifier

CONSOLE_URL = "console"


class WebhookNotifier(HttpNotifier):
	"""Простой отправитель уведомлений через HTTP Webhook.
	url == "console" означает вывод в лог без сетевого вызова."""

	def __init__(self, **kwargs: Any) -> None:
		super().__init__(**kwargs)
		self._logger = logging.getLogger("notifier.webhook")

	def target_url(self, channel: AlertChannel) -> str:
		return str(channel.config.get("url") or "")

	def build_payload(self, message: str, alert: Alert) -> Dict[str, Any]:
		return {"message": message, "alert": alert.to_dict()}

	async def send(self, channel: AlertChannel, message: str, alert: Alert) -> bool:
		if self.target_url(channel) == CONSOLE_URL:
			self._logger.info("webhook alert: %s", message, extra={"channel_id": channel.id, "alert_id": alert.id})
			return True
		return await super().send(channel, message, alert)
