from __future__ import annotations

import abc
import logging
from typing import Any, Dict

import aiohttp

from ..models import Alert, AlertChannel

logger = logging.getLogger(__name__)


class Notifier(abc.ABC):
	"""Транспорт одного типа канала. Возвращает True при успешной доставке."""

	@abc.abstractmethod
	async def send(self, channel: AlertChannel, message: str, alert: Alert) -> bool:
		...


class HttpNotifier(Notifier):
	"""Общая часть транспортов, отправляющих JSON методом POST."""

	def __init__(self, *, connect_timeout_s: float = 3.0, read_timeout_s: float = 5.0) -> None:
		self._timeout = aiohttp.ClientTimeout(connect=connect_timeout_s, total=connect_timeout_s + read_timeout_s)

	@abc.abstractmethod
	def target_url(self, channel: AlertChannel) -> str:
		...

	@abc.abstractmethod
	def build_payload(self, message: str, alert: Alert) -> Dict[str, Any]:
		...

	async def send(self, channel: AlertChannel, message: str, alert: Alert) -> bool:
		url = self.target_url(channel)
		if not url:
			logger.error("channel %s has no target url", channel.id, extra={"channel_id": channel.id, "alert_id": alert.id})
			return False
		payload = self.build_payload(message, alert)
		async with aiohttp.ClientSession(timeout=self._timeout) as session:
			async with session.post(url, json=payload) as resp:
				# тело не нужно, проверяем только код
				await resp.read()
				if resp.status >= 400:
					logger.warning("channel %s responded %s", channel.id, resp.status, extra={"channel_id": channel.id, "alert_id": alert.id})
					return False
				return True
