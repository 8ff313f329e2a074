"""Движок жизненного цикла алертов: правила, подавление, эскалация, уведомления."""

from .models import (
	Alert,
	AlertChannel,
	AlertFilter,
	AlertRule,
	AlertStats,
	AlertTemplate,
	EscalationLevel,
	EscalationPolicy,
	MetricSample,
	SuppressionRule,
)
from .service import AlertingService, from_env

__all__ = [
	"Alert",
	"AlertChannel",
	"AlertFilter",
	"AlertRule",
	"AlertStats",
	"AlertTemplate",
	"AlertingService",
	"EscalationLevel",
	"EscalationPolicy",
	"MetricSample",
	"SuppressionRule",
	"from_env",
]
