from __future__ import annotations

import logging
import operator
from typing import Any, Callable, Dict

from .models import Alert, SuppressionPredicate

logger = logging.getLogger(__name__)


_operators: Dict[str, Callable[[float, float], bool]] = {
	"gt": operator.gt,
	"lt": operator.lt,
	"eq": operator.eq,
	"gte": operator.ge,
	"lte": operator.le,
}


def evaluate_condition(condition: str, value: Any, threshold: Any) -> bool:
	"""Сравнить значение с порогом по тегу оператора (gt|lt|eq|gte|lte).
	Неизвестный оператор или нечисловые аргументы дают False, исключений нет."""
	op = _operators.get(condition)
	if op is None:
		return False
	try:
		return bool(op(float(value), float(threshold)))
	except (TypeError, ValueError):
		return False


def matches_suppression(predicate: SuppressionPredicate, alert: Alert) -> bool:
	# строковый предикат понимает только маркер "test"
	if isinstance(predicate, str):
		return "test" in predicate and alert.tags.get("test") == "true"
	if not callable(predicate):
		return False
	try:
		return bool(predicate(alert))
	except Exception:
		logger.warning("suppression predicate failed for alert %s", alert.id, exc_info=True)
		return False
