"""Ручная проверка канала: отправить тестовый алерт через настроенный канал.

Пример: SLACK_WEBHOOK_URL=https://hooks.slack.com/... python scripts/send_test_alert.py slack-default
"""
import asyncio
import sys

from alerting.logging_config import setup_logging
from alerting.service import from_env


async def main(channel_id: str) -> int:
	setup_logging()
	service = from_env()
	try:
		ok = await service.test_channel(channel_id)
	finally:
		await service.close()
	print(f"channel={channel_id} ok={ok}")
	return 0 if ok else 1


if __name__ == "__main__":
	sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "console")))
