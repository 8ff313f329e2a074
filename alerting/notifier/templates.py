from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Iterable, Optional

from ..models import Alert, AlertTemplate

SEVERITY_COLORS = {
	"critical": "#ff0000",
	"high": "#ff6600",
	"medium": "#ffaa00",
	"low": "#00aa00",
}
UNKNOWN_COLOR = "#666666"

BASE_VARIABLES = ["title", "severity", "source", "description", "timestamp", "tags"]

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def severity_color(severity: str) -> str:
	return SEVERITY_COLORS.get(severity, UNKNOWN_COLOR)


def human_time(ts: datetime) -> str:
	return ts.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def format_tags(tags: Dict[str, str]) -> str:
	return ", ".join(f"{k}:{v}" for k, v in tags.items())


def template_variables(alert: Alert) -> Dict[str, str]:
	"""Значения плейсхолдеров: базовые поля алерта и ключи metadata."""
	values = {
		"title": alert.title,
		"severity": alert.severity,
		"source": alert.source,
		"description": alert.description,
		"timestamp": human_time(alert.created_at),
		"tags": format_tags(alert.tags),
	}
	for key, value in alert.metadata.items():
		values.setdefault(key, str(value))
	return values


def render(template: str, alert: Alert) -> str:
	"""Подставить {{name}} для известных переменных; прочие плейсхолдеры остаются как есть."""
	values = template_variables(alert)
	# один проход: подставленный текст повторно не разбирается
	return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def select_template(templates: Iterable[AlertTemplate], channel_type: str) -> Optional[AlertTemplate]:
	for tpl in templates:
		if tpl.enabled and tpl.type == channel_type:
			return tpl
	return None
