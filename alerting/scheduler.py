import asyncio
import heapq
import itertools
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .metrics import set_pending_timers

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TimerCallback = Callable[[], Awaitable[None]]

ESCALATION = "escalation"
SUPPRESSION = "suppression"


def system_clock() -> datetime:
	return datetime.now(timezone.utc)


@dataclass(order=True)
class _Timer:
	due: datetime
	seq: int
	kind: str = field(compare=False)
	key: str = field(compare=False)
	callback: TimerCallback = field(compare=False)
	cancelled: bool = field(default=False, compare=False)


class TimerScheduler:
	"""Отложенные действия по ключу (kind, alert_id) на одной куче.
	На каждый ключ не больше одного ожидающего таймера: повторное
	планирование отменяет предыдущий."""

	def __init__(self, *, clock: Optional[Clock] = None, tick_seconds: float = 1.0) -> None:
		self._clock = clock or system_clock
		self._tick_seconds = max(0.05, tick_seconds)
		self._heap: List[_Timer] = []
		self._pending: Dict[Tuple[str, str], _Timer] = {}
		self._seq = itertools.count()
		# отменённые записи, ещё лежащие в куче
		self._tombstones = 0
		self._stop_event = asyncio.Event()

	def now(self) -> datetime:
		return self._clock()

	def schedule(self, kind: str, key: str, delay_minutes: float, callback: TimerCallback) -> datetime:
		"""Запланировать callback через delay_minutes; вернуть время срабатывания."""
		self.cancel(kind, key)
		due = self._clock() + timedelta(minutes=max(0.0, float(delay_minutes)))
		timer = _Timer(due=due, seq=next(self._seq), kind=kind, key=key, callback=callback)
		heapq.heappush(self._heap, timer)
		self._pending[(kind, key)] = timer
		self._report()
		logger.debug("timer scheduled: kind=%s key=%s due=%s", kind, key, due.isoformat())
		return due

	def cancel(self, kind: str, key: str) -> bool:
		timer = self._pending.pop((kind, key), None)
		if timer is None:
			return False
		# из кучи не удаляем, запись отбрасывается при извлечении
		timer.cancelled = True
		self._tombstones += 1
		if self._tombstones * 2 > len(self._heap):
			self._compact()
		self._report()
		return True

	def cancel_key(self, key: str) -> int:
		"""Отменить таймеры всех видов для одного ключа."""
		return sum(1 for kind in (ESCALATION, SUPPRESSION) if self.cancel(kind, key))

	def cancel_all(self) -> int:
		n = len(self._pending)
		for timer in self._pending.values():
			timer.cancelled = True
		self._pending.clear()
		self._heap.clear()
		self._tombstones = 0
		self._report()
		return n

	def _compact(self) -> None:
		self._heap = [t for t in self._heap if not t.cancelled]
		heapq.heapify(self._heap)
		self._tombstones = 0

	def _report(self) -> None:
		for kind in (ESCALATION, SUPPRESSION):
			set_pending_timers(kind, self.pending_count(kind))

	def pending(self, kind: str, key: str) -> Optional[datetime]:
		timer = self._pending.get((kind, key))
		return timer.due if timer is not None else None

	def pending_count(self, kind: Optional[str] = None) -> int:
		if kind is None:
			return len(self._pending)
		return sum(1 for k, _ in self._pending if k == kind)

	async def run_due(self, now: Optional[datetime] = None) -> int:
		"""Выполнить все таймеры со сроком <= now по порядку срабатывания.
		Таймеры, запланированные колбэками и уже просроченные, выполняются в этом же проходе."""
		fired = 0
		while self._heap:
			ts = now if now is not None else self._clock()
			top = self._heap[0]
			if top.cancelled:
				heapq.heappop(self._heap)
				self._tombstones = max(0, self._tombstones - 1)
				continue
			if top.due > ts:
				break
			heapq.heappop(self._heap)
			if self._pending.get((top.kind, top.key)) is top:
				del self._pending[(top.kind, top.key)]
				self._report()
			fired += 1
			try:
				await top.callback()
			except Exception:
				# колбэк не должен ронять цикл таймеров
				logger.exception("timer callback failed: kind=%s key=%s", top.kind, top.key)
		return fired

	async def run(self) -> None:
		logger.info("Timer loop started: tick=%ss", self._tick_seconds)
		while not self._stop_event.is_set():
			try:
				await self.run_due()
			except Exception as e:
				logger.exception("timer tick failed: %s", e)
			finally:
				try:
					await asyncio.wait_for(self._stop_event.wait(), timeout=self._tick_seconds)
				except asyncio.TimeoutError:
					pass
		logger.info("Timer loop stopped")

	def stop(self) -> None:
		self._stop_event.set()


def from_env(clock: Optional[Clock] = None) -> "TimerScheduler":
	try:
		tick = float(os.getenv("TIMER_TICK_SEC", "1"))
	except ValueError:
		tick = 1.0
	return TimerScheduler(clock=clock, tick_seconds=tick)
