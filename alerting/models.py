from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union


# Уровень эскалации по умолчанию для алертов без правила
DEFAULT_MAX_ESCALATION_LEVEL = 3


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
	"""Гарантировать, что datetime имеет таймзону UTC."""
	if ts.tzinfo is None:
		return ts.replace(tzinfo=timezone.utc)
	return ts.astimezone(timezone.utc)


def generate_alert_id() -> str:
	"""Идентификатор вида alert_<epoch-ms>_<9 символов base36>."""
	suffix = "".join(random.choices(string.digits + string.ascii_lowercase, k=9))
	return f"alert_{int(time.time() * 1000)}_{suffix}"


def _iso(ts: Optional[datetime]) -> Optional[str]:
	return ts.isoformat() if ts is not None else None


@dataclass
class MetricSample:
	name: str
	value: float
	tags: Dict[str, str] = field(default_factory=dict)

	def to_dict(self) -> Dict[str, Any]:
		return {"name": self.name, "value": self.value, "tags": dict(self.tags)}


@dataclass
class Alert:
	id: str
	title: str
	description: str
	severity: str
	source: str
	status: str = "active"
	metric: Optional[str] = None
	threshold: Optional[float] = None
	current_value: Optional[float] = None
	condition: Optional[str] = None
	tags: Dict[str, str] = field(default_factory=dict)
	created_at: datetime = field(default_factory=utcnow)
	updated_at: datetime = field(default_factory=utcnow)
	acknowledged_at: Optional[datetime] = None
	acknowledged_by: Optional[str] = None
	resolved_at: Optional[datetime] = None
	resolved_by: Optional[str] = None
	suppressed_by: Optional[str] = None
	suppressed_until: Optional[datetime] = None
	suppression_reason: Optional[str] = None
	escalation_level: int = 0
	max_escalation_level: int = DEFAULT_MAX_ESCALATION_LEVEL
	next_escalation_at: Optional[datetime] = None
	channels: List[str] = field(default_factory=list)
	# происхождение алерта: правило и исходный сэмпл
	rule_id: Optional[str] = None
	sample: Optional[MetricSample] = None
	# только строки, используется для подстановки в шаблоны
	metadata: Dict[str, str] = field(default_factory=dict)

	def touch(self, now: datetime) -> None:
		self.updated_at = now

	def clear_suppression(self) -> None:
		self.suppressed_by = None
		self.suppressed_until = None
		self.suppression_reason = None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"title": self.title,
			"description": self.description,
			"severity": self.severity,
			"status": self.status,
			"source": self.source,
			"metric": self.metric,
			"threshold": self.threshold,
			"current_value": self.current_value,
			"condition": self.condition,
			"tags": dict(self.tags),
			"created_at": _iso(self.created_at),
			"updated_at": _iso(self.updated_at),
			"acknowledged_at": _iso(self.acknowledged_at),
			"acknowledged_by": self.acknowledged_by,
			"resolved_at": _iso(self.resolved_at),
			"resolved_by": self.resolved_by,
			"suppressed_by": self.suppressed_by,
			"suppressed_until": _iso(self.suppressed_until),
			"suppression_reason": self.suppression_reason,
			"escalation_level": self.escalation_level,
			"max_escalation_level": self.max_escalation_level,
			"next_escalation_at": _iso(self.next_escalation_at),
			"channels": list(self.channels),
			"rule_id": self.rule_id,
			"sample": self.sample.to_dict() if self.sample is not None else None,
			"metadata": dict(self.metadata),
		}


@dataclass
class EscalationLevel:
	level: int
	delay: float  # минуты
	channels: List[str] = field(default_factory=list)
	actions: List[str] = field(default_factory=list)


@dataclass
class EscalationPolicy:
	id: str
	name: str = ""
	levels: List[EscalationLevel] = field(default_factory=list)
	max_level: int = 0
	enabled: bool = False

	def level(self, number: int) -> Optional[EscalationLevel]:
		for lvl in self.levels:
			if lvl.level == number:
				return lvl
		return None


# Предикат: строка с маркером "test" либо функция от алерта
SuppressionPredicate = Union[str, Callable[[Alert], bool]]


@dataclass
class SuppressionRule:
	id: str
	condition: SuppressionPredicate
	duration: float = 60  # минуты
	enabled: bool = True
	reason: str = ""
	name: str = ""


@dataclass
class AlertRule:
	id: str
	name: str
	source: str
	condition: str
	threshold: float
	severity: str
	description: str = ""
	metric: Optional[str] = None
	enabled: bool = True
	tags: Dict[str, str] = field(default_factory=dict)
	channels: List[str] = field(default_factory=list)
	escalation_policy: EscalationPolicy = field(default_factory=lambda: EscalationPolicy(id="none"))
	suppression_rules: List[SuppressionRule] = field(default_factory=list)
	cooldown: float = 0  # минуты
	last_triggered: Optional[datetime] = None
	created_at: datetime = field(default_factory=utcnow)
	updated_at: datetime = field(default_factory=utcnow)


@dataclass
class AlertChannel:
	id: str
	type: str
	name: str = ""
	config: Dict[str, Any] = field(default_factory=dict)
	enabled: bool = True


@dataclass
class AlertTemplate:
	id: str
	type: str
	template: str
	name: str = ""
	variables: List[str] = field(default_factory=list)
	enabled: bool = True


@dataclass
class AlertFilter:
	status: Optional[str] = None
	severity: Optional[str] = None
	source: Optional[str] = None
	start_time: Optional[datetime] = None
	end_time: Optional[datetime] = None
	limit: Optional[int] = None
	offset: Optional[int] = None


@dataclass
class AlertStats:
	total: int = 0
	active: int = 0
	acknowledged: int = 0
	resolved: int = 0
	suppressed: int = 0
	by_severity: Dict[str, int] = field(default_factory=dict)
	by_source: Dict[str, int] = field(default_factory=dict)
	by_status: Dict[str, int] = field(default_factory=dict)
	average_resolution_time: float = 0.0  # минуты
	escalation_rate: float = 0.0  # проценты

	def to_dict(self) -> Dict[str, Any]:
		return {
			"total": self.total,
			"active": self.active,
			"acknowledged": self.acknowledged,
			"resolved": self.resolved,
			"suppressed": self.suppressed,
			"by_severity": dict(self.by_severity),
			"by_source": dict(self.by_source),
			"by_status": dict(self.by_status),
			"average_resolution_time": self.average_resolution_time,
			"escalation_rate": self.escalation_rate,
		}
