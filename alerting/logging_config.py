from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

# поля, которые модули передают через extra=
CONTEXT_FIELDS = ("alert_id", "channel_id")

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def _context(record: logging.LogRecord) -> Dict[str, Any]:
	ctx = {}
	for name in CONTEXT_FIELDS:
		value = getattr(record, name, None)
		if value is not None:
			ctx[name] = value
	return ctx


class JsonFormatter(logging.Formatter):
	"""Одна JSON-строка на запись, контекст алерта выносится в отдельные ключи."""

	def format(self, record: logging.LogRecord) -> str:
		payload: Dict[str, Any] = {
			"time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
			"level": record.levelname,
			"logger": record.name,
			"msg": record.getMessage(),
		}
		payload.update(_context(record))
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, ensure_ascii=False)


class ContextTextFormatter(logging.Formatter):
	"""Текстовый формат с хвостом вида [alert_id=... channel_id=...]."""

	def __init__(self) -> None:
		super().__init__(_TEXT_FORMAT)

	def format(self, record: logging.LogRecord) -> str:
		line = super().format(record)
		ctx = _context(record)
		if not ctx:
			return line
		tail = " ".join(f"{k}={v}" for k, v in ctx.items())
		return f"{line} [{tail}]"


def _env_flag(name: str, default: str = "false") -> bool:
	return os.getenv(name, default).lower() in ("1", "true", "yes")


def setup_logging(level: Optional[str] = None, use_json: Optional[bool] = None) -> None:
	"""Настроить корневой логгер. Без аргументов берёт LOG_LEVEL и LOG_JSON."""
	if level is None:
		level = os.getenv("LOG_LEVEL", "INFO")
	if use_json is None:
		use_json = _env_flag("LOG_JSON")
	root = logging.getLogger()
	root.setLevel(level.upper())
	for h in list(root.handlers):
		root.removeHandler(h)
		h.close()
	handler = logging.StreamHandler()
	handler.setFormatter(JsonFormatter() if use_json else ContextTextFormatter())
	root.addHandler(handler)
	# aiohttp слишком разговорчив на INFO
	logging.getLogger("aiohttp").setLevel(logging.WARNING)
