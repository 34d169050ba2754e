"""
Rate limiting middleware.

Token bucket per client origin. Requests over the limit get a 429 with the
standard error body and a Retry-After header.
"""

import time
import asyncio
from typing import Dict, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..api.errors import error_response
from ..api.security import get_client_origin


class TokenBucket:
    """Token bucket refilled continuously at `refill_rate` tokens per second."""

    def __init__(self, capacity: int, refill_rate: float):
        self.capacity = capacity
        self.tokens = float(capacity)
        self.refill_rate = refill_rate
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def consume(self, tokens: int = 1) -> bool:
        async with self._lock:
            now = time.monotonic()
            self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.refill_rate)
            self.last_refill = now
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False

    def seconds_until_available(self, tokens: int = 1) -> int:
        missing = max(0.0, tokens - self.tokens)
        if self.refill_rate <= 0:
            return 60
        return max(1, int(missing / self.refill_rate + 0.999))


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, requests_per_minute: int = 60, burst_size: int = 10,
                 exempt_paths: Iterable[str] = ("/", "/health")):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.exempt_paths = set(exempt_paths)
        self.buckets: Dict[str, TokenBucket] = {}
        self.cleanup_interval = 300
        self.last_cleanup = time.monotonic()

    def _cleanup_old_buckets(self) -> None:
        now = time.monotonic()
        if now - self.last_cleanup < self.cleanup_interval:
            return
        cutoff = now - 3600
        for key in [k for k, b in self.buckets.items() if b.last_refill < cutoff]:
            del self.buckets[key]
        self.last_cleanup = now

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        client = get_client_origin(request) or "unknown"
        bucket = self.buckets.get(client)
        if bucket is None:
            bucket = self.buckets[client] = TokenBucket(self.burst_size, self.requests_per_minute / 60.0)

        if not await bucket.consume():
            retry_after = bucket.seconds_until_available()
            return error_response(
                429, "RATE_LIMITED", "Rate limit exceeded. Please try again later.",
                {"retry_after": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

        self._cleanup_old_buckets()
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(int(bucket.tokens))
        return response
