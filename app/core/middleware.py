"""HTTP middleware and per-route rate limiting."""

import logging
import time
import uuid

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

import redis.asyncio as redis

from app.config import settings
from app.core.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
UNLIMITED_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


def client_ip(request: Request) -> str:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


class SlidingWindow:
    """Redis sorted-set sliding window counter."""

    def __init__(self, limit: int, redis_url: str | None = None) -> None:
        self.limit = limit
        self.redis_url = redis_url or settings.redis_url
        self._redis: redis.Redis | None = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        return self._redis

    async def hit(self, key: str) -> int:
        """Record one hit for ``key`` and return the hits already in the window.

        Raises:
            redis.RedisError: if Redis is unreachable
        """
        now = time.time()
        async with self._client().pipeline(transaction=True) as pipe:
            await pipe.zremrangebyscore(key, 0, now - WINDOW_SECONDS)
            await pipe.zcard(key)
            await pipe.zadd(key, {uuid.uuid4().hex: now})
            await pipe.expire(key, WINDOW_SECONDS)
            results = await pipe.execute()
        return results[1]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Global per-IP request limit.

    Fails open: if Redis is unavailable the request is served.
    """

    def __init__(self, app, requests_per_minute: int = 100, redis_url: str | None = None):
        super().__init__(app)
        self.window = SlidingWindow(requests_per_minute, redis_url)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in UNLIMITED_PATHS or settings.debug:
            return await call_next(request)

        limit = self.window.limit
        reset = str(int(time.time()) + WINDOW_SECONDS)
        try:
            count = await self.window.hit(f"rate_limit:{client_ip(request)}")
        except redis.RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return await call_next(request)

        if count >= limit:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later.", "retry_after": WINDOW_SECONDS},
                headers={
                    "Retry-After": str(WINDOW_SECONDS),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": reset,
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count - 1))
        response.headers["X-RateLimit-Reset"] = reset
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs its outcome and duration."""

    slow_request_seconds = 1.0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id

        response = await call_next(request)

        duration = time.perf_counter() - start
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        message = f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} in {duration:.3f}s"
        if duration > self.slow_request_seconds:
            logger.warning(f"SLOW REQUEST {message}")
        elif response.status_code >= 500:
            logger.error(message)
        else:
            logger.info(message)

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""

    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers.update(self.headers)
        if not settings.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RateLimiter:
    """Per-route limit, used as a FastAPI dependency.

    Keys on the bearer token when present so visitors behind one NAT do not
    share a budget. Disabled in development.
    """

    def __init__(self, requests_per_minute: int = 10, key_prefix: str = "api"):
        self.key_prefix = key_prefix
        self.window = SlidingWindow(requests_per_minute)

    def _identity(self, request: Request) -> str:
        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            return "t:" + uuid.uuid5(uuid.NAMESPACE_OID, auth[7:]).hex
        return "ip:" + client_ip(request)

    async def __call__(self, request: Request) -> None:
        """Raises RateLimitExceeded when the caller is over budget."""
        if settings.environment == "development":
            return

        try:
            count = await self.window.hit(f"rate:{self.key_prefix}:{self._identity(request)}")
        except redis.RedisError as e:
            logger.warning(f"Rate limiter '{self.key_prefix}' unavailable, allowing request: {e}")
            return

        if count >= self.window.limit:
            logger.warning(f"Rate limit '{self.key_prefix}' exceeded by {client_ip(request)}")
            raise RateLimitExceeded()


# Booking creation and payment endpoints
booking_limiter = RateLimiter(requests_per_minute=10, key_prefix="booking")
payment_limiter = RateLimiter(requests_per_minute=20, key_prefix="payment")
