from __future__ import annotations

import logging
from datetime import datetime
from functools import partial
from typing import Optional

from .metrics import record_escalation
from .models import Alert
from .notifier.dispatcher import ChannelDispatcher
from .rules import RuleEngine
from .scheduler import ESCALATION, TimerScheduler
from .store import AlertStore

logger = logging.getLogger(__name__)


class EscalationScheduler:
	"""Поуровневая эскалация активных алертов по политике правила.

	Уровень N+1 планируется только после срабатывания уровня N. При
	срабатывании статус алерта перечитывается: если он уже не active
	(подтверждён, решён, подавлен или вытеснен), действие отбрасывается
	без изменений, даже если отмена таймера не успела.
	"""

	def __init__(self, timers: TimerScheduler, store: AlertStore, rules: RuleEngine, dispatcher: ChannelDispatcher) -> None:
		self._timers = timers
		self._store = store
		self._rules = rules
		self._dispatcher = dispatcher

	def setup(self, alert: Alert) -> Optional[datetime]:
		"""Запланировать следующий уровень; вернуть время срабатывания или None."""
		if alert.status != "active":
			return None
		rule = self._rules.get(alert.rule_id)
		if rule is None or not rule.escalation_policy.enabled:
			return None
		policy = rule.escalation_policy
		if alert.escalation_level >= min(policy.max_level, alert.max_escalation_level):
			return None
		level = policy.level(alert.escalation_level + 1)
		if level is None:
			return None
		due = self._timers.schedule(ESCALATION, alert.id, level.delay, partial(self._fire, alert.id))
		alert.next_escalation_at = due
		return due

	def cancel(self, alert: Alert) -> bool:
		alert.next_escalation_at = None
		return self._timers.cancel(ESCALATION, alert.id)

	async def _fire(self, alert_id: str) -> None:
		alert = self._store.get(alert_id)
		if alert is None or alert.status != "active":
			logger.debug("escalation for %s discarded: alert missing or not active", alert_id)
			return
		alert.next_escalation_at = None
		rule = self._rules.get(alert.rule_id)
		if rule is None or not rule.escalation_policy.enabled:
			return
		policy = rule.escalation_policy
		number = alert.escalation_level + 1
		level = policy.level(number)
		if level is None or number > min(policy.max_level, alert.max_escalation_level):
			return
		alert.escalation_level = number
		alert.touch(self._timers.now())
		record_escalation(number)
		logger.info("alert %s escalated to level %s", alert.id, number, extra={"alert_id": alert.id})
		self.setup(alert)
		# рассылка идёт в фоне, цикл таймеров её не ждёт
		self._dispatcher.spawn(alert, level.channels)
