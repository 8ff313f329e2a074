from __future__ import annotations

import os
from typing import Dict

from .base import Notifier
from .discord import DiscordNotifier
from .log import LogNotifier
from .slack import SlackNotifier
from .webhook import WebhookNotifier


def build_notifiers(*, connect_timeout_s: float = 3.0, read_timeout_s: float = 5.0) -> Dict[str, Notifier]:
	"""Транспорт для каждого типа канала; email, sms и push пишут только в лог."""
	timeouts = {"connect_timeout_s": connect_timeout_s, "read_timeout_s": read_timeout_s}
	return {
		"slack": SlackNotifier(**timeouts),
		"discord": DiscordNotifier(**timeouts),
		"webhook": WebhookNotifier(**timeouts),
		"email": LogNotifier("email"),
		"sms": LogNotifier("sms"),
		"push": LogNotifier("push"),
	}


def build_notifiers_from_env() -> Dict[str, Notifier]:
	"""Построить транспорты с таймаутами из переменных окружения NOTIFY_*_TIMEOUT_S."""
	try:
		connect = float(os.getenv("NOTIFY_CONNECT_TIMEOUT_S", "3"))
		read = float(os.getenv("NOTIFY_READ_TIMEOUT_S", "5"))
	except ValueError:
		connect, read = 3.0, 5.0
	return build_notifiers(connect_timeout_s=connect, read_timeout_s=read)
