from __future__ import annotations

import os
import time
from typing import Callable, Dict, Optional
from fastapi import Request, HTTPException, status


class TokenBucket:
	def __init__(self, rate_per_minute: int, burst: int, *, clock: Callable[[], float] = time.monotonic) -> None:
		self.capacity = max(1, int(burst))
		self.tokens = float(self.capacity)
		self.rate = max(1.0, float(rate_per_minute)) / 60.0
		self._clock = clock
		self.timestamp = clock()

	def allow(self) -> bool:
		"""Алгоритм токен-бакета: возвращает True, если запрос можно пропустить сейчас."""
		now = self._clock()
		self.tokens = min(self.capacity, self.tokens + (now - self.timestamp) * self.rate)
		self.timestamp = now
		if self.tokens >= 1.0:
			self.tokens -= 1.0
			return True
		return False


class RateLimiter:
	"""Лимитер по IP клиента для читающих эндпоинтов (алерты, статистика, правила)."""

	def __init__(self, per_minute: int = 60, burst: int = 20, *, enabled: bool = False) -> None:
		self.per_minute = per_minute
		self.burst = burst
		self.enabled = enabled
		self._buckets: Dict[str, TokenBucket] = {}

	def check(self, client: Optional[str]) -> bool:
		if not self.enabled:
			return True
		key = client or "unknown"
		bucket = self._buckets.get(key)
		if bucket is None:
			bucket = TokenBucket(self.per_minute, self.burst)
			self._buckets[key] = bucket
		return bucket.allow()


def limiter_from_env() -> RateLimiter:
	enabled = os.getenv("RATE_LIMIT_ENABLE", "false").lower() in ("1", "true", "yes")
	try:
		per_minute = int(os.getenv("RATE_LIMIT_PER_MIN", "60"))
		burst = int(os.getenv("RATE_LIMIT_BURST", "20"))
	except ValueError:
		per_minute, burst = 60, 20
	return RateLimiter(per_minute, burst, enabled=enabled)


async def rate_limit(request: Request) -> None:
	"""Зависимость FastAPI; лимитер берётся из app.state, если он там есть."""
	limiter: Optional[RateLimiter] = getattr(request.app.state, "limiter", None)
	if limiter is None:
		return
	if not limiter.check(request.client.host if request.client else None):
		raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limit exceeded")
