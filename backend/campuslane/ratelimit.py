"""Fixed-window, in-memory rate limiting keyed by client IP.

Limits are per process. Each limiter instance is usable directly as a
FastAPI dependency; the general limiter is also applied as middleware.
"""
from __future__ import annotations
import logging
import math
import threading
import time
from typing import Dict, Optional, Tuple
from fastapi import Request
from .errors import RateLimitError
from .settings import settings


logger = logging.getLogger("campuslane.ratelimit")


def client_ip(request: Request) -> str:
	forwarded = request.headers.get("x-forwarded-for")
	if forwarded:
		return forwarded.split(",")[0].strip()
	return request.client.host if request.client else "unknown"


class RateLimiter:
	def __init__(self, name: str, limit: int, window_seconds: int, message: str) -> None:
		self.name = name
		self.limit = limit
		self.window_seconds = window_seconds
		self.message = message
		self._buckets: Dict[str, Tuple[float, int]] = {}
		self._lock = threading.Lock()
		self._hits = 0

	def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
		"""Count one request for key. Returns seconds to wait when over the limit, else None."""
		now = time.time() if now is None else now
		with self._lock:
			self._hits += 1
			if self._hits % 500 == 0:
				self._cleanup(now)
			start, count = self._buckets.get(key, (now, 0))
			if now - start >= self.window_seconds:
				start, count = now, 0
			if count >= self.limit:
				self._buckets[key] = (start, count)
				return max(1, math.ceil(start + self.window_seconds - now))
			self._buckets[key] = (start, count + 1)
			return None

	def reset(self) -> None:
		with self._lock:
			self._buckets.clear()

	def _cleanup(self, now: float) -> None:
		stale = [k for k, (start, _) in self._buckets.items() if now - start >= self.window_seconds]
		for k in stale:
			self._buckets.pop(k, None)

	def check(self, request: Request) -> None:
		if not settings.rate_limit_enabled:
			return
		ip = client_ip(request)
		retry_after = self.hit(ip)
		if retry_after is not None:
			logger.warning("rate limit %s exceeded for %s", self.name, ip)
			raise RateLimitError(self.message, retry_after)

	async def __call__(self, request: Request) -> None:
		self.check(request)


auth_limiter = RateLimiter(
	"auth", 10, 15 * 60, "Too many authentication attempts, please try again later"
)
upload_limiter = RateLimiter(
	"upload", 50, 60 * 60, "Too many upload requests, please try again later"
)
general_limiter = RateLimiter(
	"general", 1000, 15 * 60, "Too many requests from this IP, please try again later"
)
