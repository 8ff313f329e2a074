from __future__ import annotations

import logging
from datetime import datetime, timedelta
from functools import partial
from typing import Callable, Optional

from .conditions import matches_suppression
from .models import Alert, SuppressionRule
from .rules import RuleEngine
from .scheduler import SUPPRESSION, TimerScheduler
from .store import AlertStore

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MIN = 60

# вызывается синхронно после возврата алерта в active
ReactivationHook = Callable[[Alert], None]


class SuppressionEngine:
	"""Окна подавления: проверка правил при создании алерта, таймер
	реактивации (один на алерт) и возврат в active."""

	def __init__(self, timers: TimerScheduler, store: AlertStore, rules: RuleEngine, on_reactivated: ReactivationHook) -> None:
		self._timers = timers
		self._store = store
		self._rules = rules
		self._on_reactivated = on_reactivated

	def match(self, alert: Alert) -> Optional[SuppressionRule]:
		rule = self._rules.get(alert.rule_id)
		if rule is None:
			return None
		for sup in rule.suppression_rules:
			if sup.enabled and matches_suppression(sup.condition, alert):
				return sup
		return None

	def suppress(self, alert: Alert, reason: str, actor: str, duration_minutes: float = DEFAULT_DURATION_MIN) -> datetime:
		"""Перевести алерт в suppressed и (пере)запустить таймер реактивации."""
		now = self._timers.now()
		alert.status = "suppressed"
		alert.suppressed_by = actor
		alert.suppression_reason = reason
		alert.suppressed_until = now + timedelta(minutes=max(0.0, float(duration_minutes)))
		alert.touch(now)
		due = self._timers.schedule(SUPPRESSION, alert.id, duration_minutes, partial(self._expire, alert.id))
		logger.info("alert %s suppressed by %s: %s", alert.id, actor, reason, extra={"alert_id": alert.id})
		return due

	def release(self, alert: Alert) -> None:
		"""Вернуть алерт в active и снять таймер; отправку и эскалацию делает владелец."""
		self._timers.cancel(SUPPRESSION, alert.id)
		alert.status = "active"
		alert.clear_suppression()
		alert.touch(self._timers.now())

	def cancel(self, alert_id: str) -> bool:
		return self._timers.cancel(SUPPRESSION, alert_id)

	async def _expire(self, alert_id: str) -> None:
		alert = self._store.get(alert_id)
		if alert is None or alert.status != "suppressed":
			logger.debug("reactivation for %s discarded: alert missing or not suppressed", alert_id)
			return
		self.release(alert)
		logger.info("alert %s reactivated after suppression window", alert.id, extra={"alert_id": alert.id})
		self._on_reactivated(alert)
