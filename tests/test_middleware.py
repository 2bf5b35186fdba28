from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from starlette.requests import Request

from app.core import middleware
from app.core.exceptions import RateLimitExceeded
from app.core.middleware import RateLimiter, client_ip


def _make_request(headers=None, client=("10.0.0.1", 1234)):
    headers = headers or {}
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/v1/bookings/verify-payment",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


def test_client_ip_prefers_forwarded_header():
    assert client_ip(_make_request({"X-Forwarded-For": "203.0.113.9, 10.0.0.2"})) == "203.0.113.9"
    assert client_ip(_make_request({"X-Real-IP": "198.51.100.4"})) == "198.51.100.4"
    assert client_ip(_make_request()) == "10.0.0.1"


@pytest.mark.asyncio
async def test_limiter_disabled_in_development(monkeypatch):
    monkeypatch.setattr(middleware.settings, "environment", "development")
    limiter = RateLimiter(requests_per_minute=1, key_prefix="test")
    limiter.window.hit = AsyncMock(return_value=99)

    await limiter(_make_request())

    limiter.window.hit.assert_not_called()


@pytest.mark.asyncio
async def test_limiter_raises_over_budget(monkeypatch):
    monkeypatch.setattr(middleware.settings, "environment", "production")
    limiter = RateLimiter(requests_per_minute=2, key_prefix="test")
    limiter.window.hit = AsyncMock(side_effect=[0, 1, 2])
    request = _make_request({"Authorization": "Bearer abc"})

    await limiter(request)
    await limiter(request)
    with pytest.raises(RateLimitExceeded):
        await limiter(request)

    key = limiter.window.hit.call_args.args[0]
    assert key.startswith("rate:test:t:")


@pytest.mark.asyncio
async def test_limiter_fails_open_without_redis(monkeypatch):
    monkeypatch.setattr(middleware.settings, "environment", "production")
    limiter = RateLimiter(requests_per_minute=1, key_prefix="test")
    limiter.window.hit = AsyncMock(side_effect=redis.ConnectionError("down"))

    await limiter(_make_request())


@pytest.mark.asyncio
async def test_security_headers_present(client):
    response = await client.get("/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "X-Request-ID" in response.headers
