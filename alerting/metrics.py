from __future__ import annotations

from prometheus_client import Counter, Gauge, CONTENT_TYPE_LATEST, generate_latest

# Глобальный реестр метрик (используется по умолчанию)

alerts_created_total = Counter(
	"alerting_alerts_created_total",
	"Количество созданных алертов",
	labelnames=("severity",),
)

transitions_total = Counter(
	"alerting_status_transitions_total",
	"Переходы статуса алертов",
	labelnames=("status",),
)

escalations_total = Counter(
	"alerting_escalations_total",
	"Срабатывания эскалации по уровням",
	labelnames=("level",),
)

notifications_total = Counter(
	"alerting_notifications_total",
	"Отправки уведомлений по типу канала",
	labelnames=("channel_type", "outcome"),
)

pending_timers = Gauge(
	"alerting_pending_timers",
	"Ожидающие таймеры эскалации и подавления",
	labelnames=("kind",),
)


def record_alert_created(severity: str) -> None:
	alerts_created_total.labels(severity=severity).inc()


def record_transition(status: str) -> None:
	transitions_total.labels(status=status).inc()


def record_escalation(level: int) -> None:
	escalations_total.labels(level=str(level)).inc()


def record_notification(channel_type: str, ok: bool) -> None:
	notifications_total.labels(channel_type=channel_type, outcome=("success" if ok else "failure")).inc()


def set_pending_timers(kind: str, n: int) -> None:
	pending_timers.labels(kind=kind).set(max(0, int(n)))


def render_metrics() -> tuple[bytes, str]:
	"""Вернуть полезную нагрузку метрик и тип контента для FastAPI-роута."""
	return generate_latest(), CONTENT_TYPE_LATEST
