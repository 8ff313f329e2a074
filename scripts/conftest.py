import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Tuple

import pytest

# корень репозитория в sys.path, чтобы импортировать alerting без установки
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from alerting.models import Alert, AlertChannel, AlertTemplate  # noqa: E402
from alerting.notifier.base import Notifier  # noqa: E402
from alerting.service import AlertingService  # noqa: E402


class FakeClock:
    """Управляемые часы для таймеров и cooldown."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> datetime:
        self.now = self.now + timedelta(minutes=minutes)
        return self.now


class RecordingNotifier(Notifier):
    """Запоминает отправки; каналы из fail_ids падают с исключением."""

    def __init__(self, fail_ids=()):
        self.sent: List[Tuple[str, str, str]] = []
        self.fail_ids = set(fail_ids)

    async def send(self, channel: AlertChannel, message: str, alert: Alert) -> bool:
        if channel.id in self.fail_ids:
            raise RuntimeError(f"boom on {channel.id}")
        self.sent.append((channel.id, alert.id, message))
        return True

    def channels_for(self, alert_id: str) -> List[str]:
        return [cid for cid, aid, _ in self.sent if aid == alert_id]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(clock, notifier) -> AlertingService:
    notifiers = {t: notifier for t in ("slack", "discord", "webhook", "email", "sms", "push")}
    svc = AlertingService(notifiers=notifiers, clock=clock)
    for cid in ("ops", "oncall", "manager"):
        svc.add_channel(AlertChannel(id=cid, name=cid, type="webhook", config={"url": f"http://hooks.local/{cid}"}))
    svc.add_template(AlertTemplate(id="wh", type="webhook", template="[{{severity}}] {{title}}"))
    return svc
