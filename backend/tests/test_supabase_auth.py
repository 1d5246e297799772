"""
Pilsa Backend — Supabase Auth Service Tests
============================================

The auth server is simulated with httpx.MockTransport; no network calls.

What we test:
    ✅ Valid token → AuthUser with provider and metadata
    ✅ 401/403 → AuthenticationError, no retry, breaker stays closed
    ✅ 5xx and transport errors are retried, then surface as AuthServiceError
    ✅ Circuit breaker opens after repeated outages and fails fast
    ✅ Bearer header parsing and the get_current_user dependency
"""

import time

import httpx
import pytest

from pilsa.dependencies import extract_bearer_token, get_current_user
from pilsa.exceptions import AuthenticationError, AuthServiceError, CircuitBreakerOpenError
from pilsa.services.supabase_auth import CircuitBreaker, SupabaseAuthService

USER_PAYLOAD = {
    "id": "6f1c9a52-6a0e-4a8e-9d64-0b5f4f1f2a11",
    "email": "reader@example.com",
    "app_metadata": {"provider": "kakao"},
    "user_metadata": {"nickname": "필사러", "picture": "https://img.example.com/p.png"},
}


def make_service(handler, **kwargs) -> SupabaseAuthService:
    return SupabaseAuthService(
        base_url="https://auth.test",
        api_key="service-key",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestCircuitBreaker:
    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.can_execute() is True

    def test_opens_at_threshold(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitBreaker.CLOSED
        cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN

    def test_open_circuit_rejects_with_remaining_time(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert 1 <= exc_info.value.recovery_time <= 60

    def test_half_open_after_timeout_then_closes_on_success(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        assert cb.can_execute() is True
        assert cb.state == CircuitBreaker.HALF_OPEN
        cb.record_success()
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.failure_count == 0

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=0)
        cb.state = CircuitBreaker.HALF_OPEN
        cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN


class TestVerifyToken:
    @pytest.mark.asyncio
    async def test_valid_token_returns_auth_user(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["apikey"] = request.headers.get("apikey")
            seen["authorization"] = request.headers.get("authorization")
            return httpx.Response(200, json=USER_PAYLOAD)

        service = make_service(handler)
        user = await service.verify_token("access-token")

        assert seen == {
            "path": "/auth/v1/user",
            "apikey": "service-key",
            "authorization": "Bearer access-token",
        }
        assert user.id == USER_PAYLOAD["id"]
        assert user.provider == "kakao"
        assert user.display_name == "필사러"
        assert user.avatar_url == "https://img.example.com/p.png"
        await service.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403])
    async def test_rejected_token_is_not_retried(self, status):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status, json={"msg": "invalid JWT"})

        service = make_service(handler)
        with pytest.raises(AuthenticationError) as exc_info:
            await service.verify_token("expired")

        assert exc_info.value.message == "Unauthorized: Invalid token"
        assert len(calls) == 1
        assert service.circuit_breaker.state == CircuitBreaker.CLOSED
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_payload_without_id_is_rejected(self):
        service = make_service(lambda request: httpx.Response(200, json={"email": "x@example.com"}))
        with pytest.raises(AuthenticationError):
            await service.verify_token("token")

    @pytest.mark.asyncio
    async def test_server_error_is_retried_then_succeeds(self):
        responses = [httpx.Response(503), httpx.Response(200, json=USER_PAYLOAD)]

        service = make_service(lambda request: responses.pop(0))
        user = await service.verify_token("token")

        assert user.email == "reader@example.com"
        assert responses == []

    @pytest.mark.asyncio
    async def test_persistent_outage_raises_auth_service_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = make_service(handler)
        with pytest.raises(AuthServiceError) as exc_info:
            await service.verify_token("token")

        assert exc_info.value.retry_after == service.circuit_breaker.recovery_timeout
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast_without_calling_server(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=USER_PAYLOAD)

        service = make_service(handler)
        for _ in range(service.circuit_breaker.failure_threshold):
            service.circuit_breaker.record_failure()

        with pytest.raises(CircuitBreakerOpenError):
            await service.verify_token("token")
        assert calls == []

    @pytest.mark.asyncio
    async def test_unconfigured_service_refuses(self):
        service = SupabaseAuthService(base_url="", api_key="")
        assert service.configured is False
        with pytest.raises(AuthServiceError):
            await service.verify_token("token")
        assert await service.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check(self):
        ok = make_service(lambda request: httpx.Response(200, json={"name": "GoTrue"}))
        down = make_service(lambda request: httpx.Response(502))
        assert await ok.health_check() is True
        assert await down.health_check() is False


class TestBearerToken:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc.def", "abc.def"),
            ("bearer   abc", "abc"),
            ("Basic dXNlcjpwYXNz", None),
            ("Bearer ", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected

    @pytest.mark.asyncio
    async def test_missing_token_is_rejected_before_provider_call(self):
        class ExplodingProvider:
            async def verify_token(self, token):
                raise AssertionError("provider must not be called")

        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user(authorization=None, provider=ExplodingProvider())
        assert exc_info.value.message == "Unauthorized: No token provided"

    @pytest.mark.asyncio
    async def test_token_is_passed_to_provider(self):
        service = make_service(lambda request: httpx.Response(200, json=USER_PAYLOAD))
        user = await get_current_user(authorization="Bearer tok", provider=service)
        assert user.id == USER_PAYLOAD["id"]
