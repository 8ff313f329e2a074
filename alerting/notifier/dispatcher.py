from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from ..metrics import record_notification
from ..models import Alert, AlertChannel, AlertTemplate
from .base import Notifier
from .templates import render, select_template

logger = logging.getLogger(__name__)


class ChannelDispatcher:
	"""Рассылка алерта по каналам. Каждый канал отправляется независимо,
	ошибка одного канала не мешает остальным и не выбрасывается наружу."""

	def __init__(
		self,
		notifiers: Mapping[str, Notifier],
		channels: Callable[[str], Optional[AlertChannel]],
		templates: Callable[[], Iterable[AlertTemplate]],
	) -> None:
		self._notifiers = dict(notifiers)
		self._channels = channels
		self._templates = templates
		self._inflight: Set[asyncio.Task] = set()

	async def send(self, alert: Alert, channel_ids: Optional[List[str]] = None) -> Dict[str, bool]:
		"""Отправить алерт в каналы (по умолчанию в каналы самого алерта).
		Отсутствующие и выключенные каналы пропускаются и в результат не попадают."""
		ids = list(dict.fromkeys(alert.channels if channel_ids is None else channel_ids))
		targets: List[AlertChannel] = []
		for cid in ids:
			channel = self._channels(cid)
			if channel is None:
				logger.debug("channel %s not found, skipped", cid, extra={"alert_id": alert.id})
				continue
			if not channel.enabled:
				logger.debug("channel %s disabled, skipped", cid, extra={"alert_id": alert.id})
				continue
			targets.append(channel)
		if not targets:
			return {}
		results = await asyncio.gather(*[self.send_to_channel(ch, alert) for ch in targets])
		return {ch.id: ok for ch, ok in zip(targets, results)}

	def spawn(self, alert: Alert, channel_ids: Optional[List[str]] = None) -> asyncio.Task:
		"""Запустить send в фоне. Используется из колбэков таймеров, чтобы
		медленный канал одного алерта не задерживал таймеры других."""
		task = asyncio.get_running_loop().create_task(self.send(alert, channel_ids))
		self._inflight.add(task)
		task.add_done_callback(self._inflight.discard)
		return task

	@property
	def inflight(self) -> int:
		return sum(1 for t in self._inflight if not t.done())

	async def drain(self) -> None:
		"""Дождаться фоновых рассылок, включая запущенные во время ожидания."""
		while True:
			pending = [t for t in self._inflight if not t.done()]
			if not pending:
				return
			await asyncio.gather(*pending, return_exceptions=True)

	async def aclose(self) -> int:
		"""Отменить незавершённые фоновые рассылки; вернуть их число."""
		pending = [t for t in self._inflight if not t.done()]
		for t in pending:
			t.cancel()
		if pending:
			await asyncio.gather(*pending, return_exceptions=True)
		self._inflight.clear()
		return len(pending)

	async def send_to_channel(self, channel: AlertChannel, alert: Alert) -> bool:
		ok = await self._deliver(channel, alert)
		record_notification(channel.type, ok)
		return ok

	async def _deliver(self, channel: AlertChannel, alert: Alert) -> bool:
		extra = {"alert_id": alert.id, "channel_id": channel.id}
		template = select_template(self._templates(), channel.type)
		if template is None:
			logger.error("No template found for channel type %s", channel.type, extra=extra)
			return False
		notifier = self._notifiers.get(channel.type)
		if notifier is None:
			logger.error("Unsupported channel type: %s", channel.type, extra=extra)
			return False
		message = render(template.template, alert)
		try:
			return bool(await notifier.send(channel, message, alert))
		except Exception:
			# намеренно глушим исключения каналов, чтобы не ронять рассылку
			logger.exception("Failed to send alert to channel %s", channel.id, extra=extra)
			return False
