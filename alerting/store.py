from __future__ import annotations

from typing import Dict, List, Optional

from .models import Alert, AlertFilter, ensure_utc

DEFAULT_CAPACITY = 1000


class AlertStore:
	"""Ограниченный реестр алертов в порядке вставки.
	При переполнении вытесняются самые старые записи."""

	def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
		self._capacity = max(1, capacity)
		self._alerts: List[Alert] = []
		self._by_id: Dict[str, Alert] = {}

	@property
	def capacity(self) -> int:
		return self._capacity

	def __len__(self) -> int:
		return len(self._alerts)

	def add(self, alert: Alert) -> List[Alert]:
		"""Добавить алерт; вернуть вытесненные записи (старые первыми)."""
		self._alerts.append(alert)
		self._by_id[alert.id] = alert
		overflow = len(self._alerts) - self._capacity
		if overflow <= 0:
			return []
		evicted = self._alerts[:overflow]
		self._alerts = self._alerts[overflow:]
		for a in evicted:
			# id мог переиспользоваться более свежей записью
			if self._by_id.get(a.id) is a:
				del self._by_id[a.id]
		return evicted

	def get(self, alert_id: str) -> Optional[Alert]:
		return self._by_id.get(alert_id)

	def all(self) -> List[Alert]:
		return list(self._alerts)

	def query(self, flt: Optional[AlertFilter] = None) -> List[Alert]:
		"""Фильтр по статусу, важности, источнику и диапазону created_at,
		сортировка от новых к старым, затем offset и limit."""
		items = list(self._alerts)
		if flt is not None:
			if flt.status:
				items = [a for a in items if a.status == flt.status]
			if flt.severity:
				items = [a for a in items if a.severity == flt.severity]
			if flt.source:
				items = [a for a in items if a.source == flt.source]
			if flt.start_time is not None:
				start = ensure_utc(flt.start_time)
				items = [a for a in items if a.created_at >= start]
			if flt.end_time is not None:
				end = ensure_utc(flt.end_time)
				items = [a for a in items if a.created_at <= end]
		# sorted устойчива: при равном времени новее та, что добавлена позже
		items = sorted(reversed(items), key=lambda a: a.created_at, reverse=True)
		if flt is not None:
			if flt.offset:
				items = items[max(0, flt.offset):]
			# limit 0 или отрицательный означает "без ограничения"
			if flt.limit and flt.limit > 0:
				items = items[:flt.limit]
		return items
