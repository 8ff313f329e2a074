from __future__ import annotations

import asyncio
import logging
import os
from collections import Counter
from dataclasses import fields
from typing import Any, Dict, Iterable, List, Mapping, Optional

from . import scheduler as timer_loop
from .defaults import default_channels, default_rules, default_templates
from .escalation import EscalationScheduler
from .metrics import record_alert_created, record_transition
from .models import (
	Alert,
	AlertChannel,
	AlertFilter,
	AlertRule,
	AlertStats,
	AlertTemplate,
	MetricSample,
	generate_alert_id,
)
from .notifier.base import Notifier
from .notifier.dispatcher import ChannelDispatcher
from .notifier.factory import build_notifiers, build_notifiers_from_env
from .rules import RuleEngine
from .scheduler import Clock, TimerScheduler, system_clock
from .store import DEFAULT_CAPACITY, AlertStore
from .suppression import DEFAULT_DURATION_MIN, SuppressionEngine

logger = logging.getLogger(__name__)


def _apply_changes(obj: Any, changes: Mapping[str, Any], what: str) -> None:
	allowed = {f.name for f in fields(obj)} - {"id"}
	for key, value in changes.items():
		if key not in allowed:
			logger.warning("%s %s: unknown field %s ignored", what, obj.id, key)
			continue
		setattr(obj, key, value)


class AlertingService:
	"""Жизненный цикл алертов: правила, подавление, эскалация и рассылка.

	Все изменения состояния выполняются синхронно между точками await в
	одном event loop, поэтому операции над одним алертом атомарны друг
	относительно друга. Отложенные действия живут в TimerScheduler.
	"""

	def __init__(
		self,
		*,
		notifiers: Optional[Mapping[str, Notifier]] = None,
		clock: Optional[Clock] = None,
		capacity: int = DEFAULT_CAPACITY,
		timers: Optional[TimerScheduler] = None,
	) -> None:
		self._clock = clock or system_clock
		self.timers = timers or TimerScheduler(clock=self._clock)
		self.store = AlertStore(capacity)
		self.rules = RuleEngine(self._clock)
		self._channels: Dict[str, AlertChannel] = {}
		self._templates: Dict[str, AlertTemplate] = {}
		self.dispatcher = ChannelDispatcher(
			notifiers if notifiers is not None else build_notifiers(),
			self.get_channel,
			self.list_templates,
		)
		self.escalation = EscalationScheduler(self.timers, self.store, self.rules, self.dispatcher)
		self.suppression = SuppressionEngine(self.timers, self.store, self.rules, self._on_reactivated)
		self._loop_task: Optional[asyncio.Task] = None

	def load_defaults(self) -> None:
		for ch in default_channels():
			self.add_channel(ch)
		for tpl in default_templates():
			self.add_template(tpl)
		for rule in default_rules():
			self.add_rule(rule)

	# --- жизненный цикл ---

	async def start(self) -> None:
		if self._loop_task is None:
			self._loop_task = asyncio.create_task(self.timers.run())

	async def close(self) -> None:
		"""Остановить цикл таймеров, отменить отложенные действия и фоновые рассылки."""
		self.timers.stop()
		cancelled = self.timers.cancel_all()
		if self._loop_task is not None:
			try:
				await asyncio.wait_for(self._loop_task, timeout=5)
			except asyncio.TimeoutError:
				logger.warning("timer loop did not stop in time")
			self._loop_task = None
		aborted = await self.dispatcher.aclose()
		logger.info("alerting service closed, %s timers cancelled, %s deliveries aborted", cancelled, aborted)

	async def run_due_timers(self, now=None) -> int:
		"""Выполнить просроченные таймеры и дождаться запущенных ими рассылок."""
		fired = await self.timers.run_due(now)
		await self.dispatcher.drain()
		return fired

	# --- алерты ---

	async def create_alert(
		self,
		*,
		title: str,
		description: str = "",
		severity: str = "medium",
		source: str = "manual",
		channels: Optional[Iterable[str]] = None,
		tags: Optional[Mapping[str, str]] = None,
		metadata: Optional[Mapping[str, Any]] = None,
		metric: Optional[str] = None,
		threshold: Optional[float] = None,
		current_value: Optional[float] = None,
		condition: Optional[str] = None,
		rule_id: Optional[str] = None,
	) -> Alert:
		"""Прямое создание алерта; проходит ту же проверку подавления,
		рассылку и настройку эскалации, что и алерт от правила."""
		now = self._clock()
		alert = Alert(
			id=generate_alert_id(),
			title=title,
			description=description,
			severity=severity,
			source=source,
			metric=metric,
			threshold=threshold,
			current_value=current_value,
			condition=condition,
			tags=dict(tags or {}),
			created_at=now,
			updated_at=now,
			channels=list(channels or []),
			rule_id=rule_id,
			metadata={str(k): str(v) for k, v in (metadata or {}).items()},
		)
		return await self._admit(alert)

	async def _admit(self, alert: Alert) -> Alert:
		rule = self.rules.get(alert.rule_id)
		if rule is not None:
			alert.max_escalation_level = max(0, rule.escalation_policy.max_level)
		for old in self.store.add(alert):
			self.timers.cancel_key(old.id)
		record_alert_created(alert.severity)
		logger.info("alert %s created: %s [%s]", alert.id, alert.title, alert.severity, extra={"alert_id": alert.id})

		matched = self.suppression.match(alert)
		if matched is not None:
			self.suppression.suppress(alert, matched.reason or "Suppression rule matched", "system", matched.duration)
			record_transition("suppressed")
			return alert

		# эскалация настраивается до await, чтобы подтверждение во время
		# рассылки отменяло уже существующий таймер
		self.escalation.setup(alert)
		await self.dispatcher.send(alert)
		return alert

	def get_alert(self, alert_id: str) -> Optional[Alert]:
		return self.store.get(alert_id)

	def acknowledge_alert(self, alert_id: str, actor: str) -> bool:
		alert = self.store.get(alert_id)
		if alert is None or alert.status != "active":
			return False
		now = self._clock()
		alert.status = "acknowledged"
		alert.acknowledged_at = now
		alert.acknowledged_by = actor
		alert.touch(now)
		self.escalation.cancel(alert)
		record_transition("acknowledged")
		logger.info("alert %s acknowledged by %s", alert.id, actor, extra={"alert_id": alert.id})
		return True

	def resolve_alert(self, alert_id: str, actor: str) -> bool:
		alert = self.store.get(alert_id)
		if alert is None or alert.status == "resolved":
			return False
		now = self._clock()
		alert.status = "resolved"
		alert.resolved_at = now
		alert.resolved_by = actor
		alert.clear_suppression()
		alert.touch(now)
		self.escalation.cancel(alert)
		self.suppression.cancel(alert.id)
		record_transition("resolved")
		logger.info("alert %s resolved by %s", alert.id, actor, extra={"alert_id": alert.id})
		return True

	def suppress_alert(self, alert_id: str, reason: str, actor: str, duration_minutes: float = DEFAULT_DURATION_MIN) -> bool:
		alert = self.store.get(alert_id)
		if alert is None or alert.status not in ("active", "suppressed"):
			return False
		self.escalation.cancel(alert)
		self.suppression.suppress(alert, reason, actor, duration_minutes)
		record_transition("suppressed")
		return True

	async def unsuppress_alert(self, alert_id: str) -> bool:
		alert = self.store.get(alert_id)
		if alert is None or alert.status != "suppressed":
			return False
		self.suppression.release(alert)
		logger.info("alert %s unsuppressed", alert.id, extra={"alert_id": alert.id})
		self._reactivate(alert)
		await self.dispatcher.send(alert)
		return True

	def _reactivate(self, alert: Alert) -> None:
		record_transition("active")
		self.escalation.setup(alert)

	def _on_reactivated(self, alert: Alert) -> None:
		"""Истечение окна подавления: рассылка уходит в фон."""
		self._reactivate(alert)
		self.dispatcher.spawn(alert)

	def get_alerts(self, flt: Optional[AlertFilter] = None) -> List[Alert]:
		return self.store.query(flt)

	def get_stats(self) -> AlertStats:
		alerts = self.store.all()
		total = len(alerts)
		by_status = Counter(a.status for a in alerts)
		resolved = [a for a in alerts if a.status == "resolved" and a.resolved_at is not None]
		avg_resolution = 0.0
		if resolved:
			avg_resolution = sum((a.resolved_at - a.created_at).total_seconds() for a in resolved) / len(resolved) / 60.0
		escalated = sum(1 for a in alerts if a.escalation_level > 0)
		return AlertStats(
			total=total,
			active=by_status.get("active", 0),
			acknowledged=by_status.get("acknowledged", 0),
			resolved=by_status.get("resolved", 0),
			suppressed=by_status.get("suppressed", 0),
			by_severity=dict(Counter(a.severity for a in alerts)),
			by_source=dict(Counter(a.source for a in alerts)),
			by_status=dict(by_status),
			average_resolution_time=avg_resolution,
			escalation_rate=(escalated / total * 100.0) if total else 0.0,
		)

	# --- правила ---

	async def evaluate_rules(self, sample: MetricSample) -> List[Alert]:
		created = []
		for alert in self.rules.evaluate(sample):
			created.append(await self._admit(alert))
		return created

	def add_rule(self, rule: AlertRule) -> None:
		self.rules.add(rule)

	def update_rule(self, rule_id: str, **changes: Any) -> bool:
		return self.rules.update(rule_id, **changes)

	def remove_rule(self, rule_id: str) -> bool:
		return self.rules.remove(rule_id)

	def get_rule(self, rule_id: str) -> Optional[AlertRule]:
		return self.rules.get(rule_id)

	def list_rules(self) -> List[AlertRule]:
		return self.rules.list()

	# --- каналы ---

	def add_channel(self, channel: AlertChannel) -> None:
		self._channels[channel.id] = channel

	def update_channel(self, channel_id: str, **changes: Any) -> bool:
		channel = self._channels.get(channel_id)
		if channel is None:
			return False
		_apply_changes(channel, changes, "channel")
		return True

	def remove_channel(self, channel_id: str) -> bool:
		return self._channels.pop(channel_id, None) is not None

	def get_channel(self, channel_id: str) -> Optional[AlertChannel]:
		return self._channels.get(channel_id)

	def list_channels(self) -> List[AlertChannel]:
		return list(self._channels.values())

	async def test_channel(self, channel_id: str) -> bool:
		"""Отправить синтетический алерт low ровно в один канал (флаг enabled не учитывается)."""
		channel = self._channels.get(channel_id)
		if channel is None:
			return False
		now = self._clock()
		alert = Alert(
			id="test-alert",
			title="Test Alert",
			description="This is a test alert to verify channel configuration",
			severity="low",
			source="test",
			created_at=now,
			updated_at=now,
			max_escalation_level=0,
			channels=[channel_id],
		)
		return await self.dispatcher.send_to_channel(channel, alert)

	# --- шаблоны ---

	def add_template(self, template: AlertTemplate) -> None:
		self._templates[template.id] = template

	def update_template(self, template_id: str, **changes: Any) -> bool:
		template = self._templates.get(template_id)
		if template is None:
			return False
		_apply_changes(template, changes, "template")
		return True

	def remove_template(self, template_id: str) -> bool:
		return self._templates.pop(template_id, None) is not None

	def get_template(self, template_id: str) -> Optional[AlertTemplate]:
		return self._templates.get(template_id)

	def list_templates(self) -> List[AlertTemplate]:
		return list(self._templates.values())


def from_env(clock: Optional[Clock] = None) -> AlertingService:
	try:
		capacity = int(os.getenv("ALERTS_MAX", str(DEFAULT_CAPACITY)))
	except ValueError:
		capacity = DEFAULT_CAPACITY
	service = AlertingService(
		notifiers=build_notifiers_from_env(),
		clock=clock,
		capacity=capacity,
		timers=timer_loop.from_env(clock),
	)
	if os.getenv("ALERTS_DEFAULTS", "true").lower() in ("1", "true", "yes"):
		service.load_defaults()
	return service
