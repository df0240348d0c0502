"""Rate limiting middleware using a Redis sliding window.

Authenticated API calls are limited per bearer token. The public approval
link is limited per client IP with a tighter budget, since its only
credential is the capability token in the URL.
"""

import hashlib
import logging
import time
from typing import Callable

import redis.asyncio as redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from brain_calendar.config import Settings

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/health/ready", "/metrics")
APPROVAL_PATH = "/approve"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding window rate limiter."""

    def __init__(self, app, settings: Settings) -> None:
        super().__init__(app)
        self._max_requests = settings.rate_limit_per_minute
        self._max_approval_requests = settings.approval_rate_limit_per_minute
        self._window_seconds = 60
        self._redis: redis.Redis | None = None
        self._redis_url = settings.redis_url

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    def _identify(self, request: Request) -> tuple[str, int] | None:
        """Return (bucket key, limit) for the request, or None to skip limiting."""
        client = request.client.host if request.client else None
        if request.url.path == APPROVAL_PATH:
            return (f"approve:ip:{client}", self._max_approval_requests) if client else None

        auth = request.headers.get("authorization", "")
        if auth.startswith("Bearer "):
            # Hash the token so it never lands in Redis
            digest = hashlib.sha256(auth[7:].encode()).hexdigest()[:16]
            return f"user:{digest}", self._max_requests
        if client:
            return f"ip:{client}", self._max_requests
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        identity = self._identify(request)
        if identity is None:
            return await call_next(request)
        bucket, limit = identity

        try:
            r = await self._get_redis()
            key = f"ratelimit:{bucket}"
            now = time.time()

            pipe = r.pipeline()
            pipe.zremrangebyscore(key, 0, now - self._window_seconds)
            pipe.zcard(key)
            pipe.zadd(key, {str(now): now})
            pipe.expire(key, self._window_seconds)
            results = await pipe.execute()
            request_count = results[1]
        except Exception as e:
            # If Redis is down, allow the request (fail open)
            logger.warning("Rate limit Redis error: %s", e)
            return await call_next(request)

        if request_count >= limit:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={
                    "Retry-After": str(self._window_seconds),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - request_count - 1))
        return response
