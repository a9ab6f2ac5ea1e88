"""Per-client rate limiting middleware using Redis sliding window."""

import logging
import time
from typing import Callable

import redis.asyncio as redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from fleetpush.config import Settings

logger = logging.getLogger(__name__)

_EXEMPT_PATHS = ("/health", "/health/ready", "/metrics")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding window rate limiter per client IP.

    The Traccar webhook is exempt: a single Traccar server forwards events for
    every device from one address.
    """

    def __init__(self, app, settings: Settings) -> None:
        super().__init__(app)
        self._max_requests = settings.rate_limit_per_minute
        self._window_seconds = 60
        self._redis: redis.Redis | None = None
        self._redis_url = settings.redis_url
        self._webhook_path = f"{settings.api_prefix}/traccar-event"

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    def _is_exempt(self, path: str) -> bool:
        return path in _EXEMPT_PATHS or path == self._webhook_path

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self._is_exempt(request.url.path) or request.client is None:
            return await call_next(request)

        identifier = f"ip:{request.client.host}"

        try:
            r = await self._get_redis()
            key = f"ratelimit:{identifier}"
            now = time.time()
            window_start = now - self._window_seconds

            pipe = r.pipeline()
            # Remove expired entries
            pipe.zremrangebyscore(key, 0, window_start)
            # Count requests in window
            pipe.zcard(key)
            # Add current request
            pipe.zadd(key, {str(now): now})
            # Set TTL on the key
            pipe.expire(key, self._window_seconds)
            results = await pipe.execute()
        except Exception as e:
            # If Redis is down, allow the request (fail open)
            logger.warning("Rate limit Redis error: %s", e)
            return await call_next(request)

        request_count = results[1]

        if request_count >= self._max_requests:
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": "Rate limit exceeded. Try again later."},
                headers={
                    "Retry-After": str(self._window_seconds),
                    "X-RateLimit-Limit": str(self._max_requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self._max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self._max_requests - request_count - 1))
        return response
