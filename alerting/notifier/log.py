from __future__ import annotations

import logging

from ..models import Alert, AlertChannel
from .base import Notifier


_level_map = {
	"critical": logging.CRITICAL,
	"high": logging.ERROR,
	"medium": logging.WARNING,
	"low": logging.INFO,
}


class LogNotifier(Notifier):
	"""Заглушка для email/sms/push: сообщение только пишется в лог."""

	def __init__(self, kind: str) -> None:
		self._kind = kind
		self._logger = logging.getLogger(f"notifier.{kind}")

	async def send(self, channel: AlertChannel, message: str, alert: Alert) -> bool:
		lvl = _level_map.get(alert.severity, logging.INFO)
		self._logger.log(
			lvl,
			"%s alert: channel=%s, alert_id=%s, msg=%s",
			self._kind,
			channel.id,
			alert.id,
			message,
			extra={"channel_id": channel.id, "alert_id": alert.id},
		)
		return True
