from __future__ import annotations

import logging
from dataclasses import fields
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .conditions import evaluate_condition
from .models import Alert, AlertRule, MetricSample, generate_alert_id

logger = logging.getLogger(__name__)

_RULE_FIELDS = {f.name for f in fields(AlertRule)} - {"id", "created_at"}


class RuleEngine:
	"""Реестр правил и сопоставление входящих метрик с ними."""

	def __init__(self, clock: Callable[[], datetime]) -> None:
		self._clock = clock
		self._rules: Dict[str, AlertRule] = {}

	def add(self, rule: AlertRule) -> None:
		if rule.id in self._rules:
			logger.warning("rule %s replaced", rule.id)
		self._rules[rule.id] = rule

	def update(self, rule_id: str, **changes: Any) -> bool:
		rule = self._rules.get(rule_id)
		if rule is None:
			return False
		for key, value in changes.items():
			if key not in _RULE_FIELDS:
				logger.warning("rule %s: unknown field %s ignored", rule_id, key)
				continue
			setattr(rule, key, value)
		rule.updated_at = self._clock()
		return True

	def remove(self, rule_id: str) -> bool:
		return self._rules.pop(rule_id, None) is not None

	def get(self, rule_id: Optional[str]) -> Optional[AlertRule]:
		if rule_id is None:
			return None
		return self._rules.get(rule_id)

	def list(self) -> List[AlertRule]:
		return list(self._rules.values())

	def in_cooldown(self, rule: AlertRule, now: datetime) -> bool:
		if rule.last_triggered is None:
			return False
		return now - rule.last_triggered < timedelta(minutes=rule.cooldown)

	def evaluate(self, sample: MetricSample) -> List[Alert]:
		"""Проверить сэмпл по всем включённым правилам.
		Возвращает новые (ещё не сохранённые) алерты; отметка срабатывания
		ставится сразу, поэтому повтор в окне cooldown ничего не даст."""
		now = self._clock()
		triggered: List[Alert] = []
		for rule in list(self._rules.values()):
			if not rule.enabled:
				continue
			if rule.metric and rule.metric != sample.name:
				continue
			if self.in_cooldown(rule, now):
				logger.debug("rule %s in cooldown, sample %s ignored", rule.id, sample.name)
				continue
			if not evaluate_condition(rule.condition, sample.value, rule.threshold):
				continue
			triggered.append(self.build_alert(rule, sample, now))
			rule.last_triggered = now
			logger.info("rule %s triggered by %s=%s", rule.id, sample.name, sample.value)
		return triggered

	def build_alert(self, rule: AlertRule, sample: MetricSample, now: datetime) -> Alert:
		tags = dict(rule.tags)
		tags.update(sample.tags)
		return Alert(
			id=generate_alert_id(),
			title=rule.name,
			description=rule.description,
			severity=rule.severity,
			source=rule.source,
			metric=rule.metric,
			threshold=rule.threshold,
			current_value=sample.value,
			condition=rule.condition,
			tags=tags,
			created_at=now,
			updated_at=now,
			channels=list(rule.channels),
			rule_id=rule.id,
			sample=MetricSample(name=sample.name, value=sample.value, tags=dict(sample.tags)),
			metadata={"rule_id": rule.id, "metric": sample.name, "value": str(sample.value)},
		)
