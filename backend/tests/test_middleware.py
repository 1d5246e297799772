"""
Pilsa Backend — Middleware Tests
=================================

What we test:
    ✅ Sliding window: limit, expiry, Retry-After, per-key isolation
    ✅ Write budget is separate from the overall budget (429 + Retry-After)
    ✅ Request id: client value reused when well-formed, generated otherwise
    ✅ Access log level by status
"""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from pilsa.middleware.logging import level_for_status
from pilsa.middleware.rate_limit import SlidingWindowLimiter
from pilsa.middleware.request_id import resolve_request_id


class TestSlidingWindowLimiter:
    def test_allows_up_to_limit(self):
        limiter = SlidingWindowLimiter(limit=3, window=60)
        assert [limiter.hit("1.2.3.4", now=100.0 + i) for i in range(3)] == [None, None, None]
        assert limiter.hit("1.2.3.4", now=103.0) == 58

    def test_window_slides(self):
        limiter = SlidingWindowLimiter(limit=1, window=10)
        assert limiter.hit("ip", now=0.0) is None
        assert limiter.hit("ip", now=5.0) is not None
        assert limiter.hit("ip", now=10.0) is None

    def test_refused_hits_are_not_recorded(self):
        limiter = SlidingWindowLimiter(limit=1, window=10)
        limiter.hit("ip", now=0.0)
        for t in (1.0, 2.0, 3.0):
            limiter.hit("ip", now=t)
        assert limiter.hit("ip", now=10.5) is None

    def test_keys_are_independent(self):
        limiter = SlidingWindowLimiter(limit=1, window=60)
        assert limiter.hit("a", now=0.0) is None
        assert limiter.hit("b", now=0.0) is None


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_write_budget_returns_429(self, client):
        with patch("pilsa.middleware.rate_limit.settings.rate_limit_write_requests", 1), \
             patch("pilsa.routes.providers.user_service.disconnect_all", AsyncMock()):
            first = await client.post("/api/user/providers/disconnect-all")
            second = await client.post("/api/user/providers/disconnect-all")
            read = await client.get("/api/bible/search", params={"q": "빛"})

        assert first.status_code == 200
        assert second.status_code == 429
        assert int(second.headers["Retry-After"]) >= 1
        body = second.json()
        assert body["error"] == "rate_limit_exceeded"
        assert body["request_id"] == second.headers["X-Request-ID"]
        assert read.status_code == 200


class TestRequestId:
    @pytest.mark.parametrize("value", ["abc123", "web-1.2_x", "a" * 64])
    def test_well_formed_client_id_is_reused(self, value):
        assert resolve_request_id(value) == value

    @pytest.mark.parametrize("value", [None, "", "has space", "a" * 65, "<script>"])
    def test_otherwise_generated(self, value):
        rid = resolve_request_id(value)
        assert rid != value
        assert len(rid) == 8

    @pytest.mark.asyncio
    async def test_generated_id_is_echoed(self, client):
        response = await client.get("/api/bible/search", params={"q": ""})
        assert len(response.headers["X-Request-ID"]) == 8


class TestAccessLogLevel:
    @pytest.mark.parametrize(
        "status, level",
        [(200, logging.INFO), (304, logging.INFO), (404, logging.WARNING), (429, logging.WARNING), (503, logging.ERROR)],
    )
    def test_level_for_status(self, status, level):
        assert level_for_status(status) == level
