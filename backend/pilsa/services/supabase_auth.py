"""
Pilsa Backend — Supabase Auth Service
======================================

What:  AuthProvider that verifies access tokens against the Supabase Auth
       (GoTrue) server: GET {SUPABASE_URL}/auth/v1/user.
How:   httpx.AsyncClient call wrapped in tenacity retries (transport errors,
       429 and 5xx only) behind a circuit breaker.
Who:   `get_current_user` dependency on every authenticated request; the
       health route.

Outcome mapping:
    200 with a user id      → AuthUser
    400 / 401 / 403         → AuthenticationError (401 to the client, no retry)
    429 / 5xx / transport   → retried; exhausted → AuthServiceError (503)
    circuit OPEN            → CircuitBreakerOpenError (503, no network call)

A rejected token counts as a circuit-breaker success: the auth server
answered, it just said no.
"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from pilsa.config import settings
from pilsa.exceptions import (
    AuthenticationError,
    AuthServiceError,
    CircuitBreakerOpenError,
)
from pilsa.services.auth_base import AuthProvider, AuthUser

logger = logging.getLogger(__name__)


class UpstreamUnavailable(Exception):
    """Auth server answered with a status worth retrying (429 or 5xx)."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Auth server responded with HTTP {status_code}")


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding calls to the auth server.

    State Machine:
        CLOSED    → failure_count reaches threshold → OPEN
        OPEN      → every call raises CircuitBreakerOpenError
                  → after recovery_timeout seconds → HALF_OPEN
        HALF_OPEN → next call goes through
                  → success → CLOSED, failure → OPEN (timer restarts)

    Single-process only: counters live in memory, so each uvicorn worker
    keeps its own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True if a call may proceed.

        Raises:
            CircuitBreakerOpenError while OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info("Auth circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed)
                self.state = self.HALF_OPEN
                return True
            remaining = max(int(self.recovery_timeout - elapsed), 1)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Auth circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Auth circuit breaker returning to OPEN (trial call failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Auth circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Supabase Auth Service
# ══════════════════════════════════════════════════════════════════════════

class SupabaseAuthService(AuthProvider):
    """
    Verifies Supabase access tokens over HTTP.

    One httpx.AsyncClient is created lazily and reused for the life of the
    process (connection pooling); `aclose()` is called from the app lifespan.
    `transport` lets tests plug in an httpx.MockTransport.
    """

    USER_PATH = "/auth/v1/user"
    HEALTH_PATH = "/auth/v1/health"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        url = settings.supabase_url if base_url is None else base_url
        self.base_url = url.rstrip("/")
        self.api_key = settings.supabase_service_role_key if api_key is None else api_key
        self.timeout = timeout or settings.auth_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "SupabaseAuthService initialized (configured=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds))",
            self.configured,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"apikey": self.api_key},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def verify_token(self, token: str) -> AuthUser:
        """
        Resolve an access token to its Supabase user.

        Flow:
            1. Refuse immediately if Supabase is not configured
            2. Check the circuit breaker
            3. GET /auth/v1/user with retries
            4. Record the outcome in the circuit breaker
        """
        if not self.configured:
            raise AuthServiceError(
                message="Authentication is not configured on the server.",
                context={"missing": "SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY"},
            )

        call_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        try:
            payload = await self._fetch_user_with_retry(token, call_id)
        except AuthenticationError:
            self.circuit_breaker.record_success()
            raise
        except (httpx.HTTPError, UpstreamUnavailable) as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Auth server unreachable after retries: %s", call_id, str(e))
            raise AuthServiceError(
                message="Could not verify your session right now. Please try again shortly.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={
                    "call_id": call_id,
                    "attempts": settings.retry_max_attempts,
                    "error_type": type(e).__name__,
                },
            )

        self.circuit_breaker.record_success()
        return self._to_auth_user(payload)

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, UpstreamUnavailable)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _fetch_user_with_retry(self, token: str, call_id: str) -> Dict[str, Any]:
        """
        One GET /auth/v1/user attempt. Tenacity re-invokes it for retryable
        failures only; the circuit-breaker check stays outside the retry loop.
        """
        start_time = time.perf_counter()
        response = await self._get_client().get(
            self.USER_PATH,
            headers={"Authorization": f"Bearer {token}"},
        )
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status == 429 or status >= 500:
            logger.warning("[%s] Auth server HTTP %d after %.0fms", call_id, status, duration_ms)
            raise UpstreamUnavailable(status)

        if status >= 400:
            logger.info("[%s] Token rejected by auth server (HTTP %d)", call_id, status)
            raise AuthenticationError("Unauthorized: Invalid token", context={"status": status})

        try:
            payload = response.json()
        except ValueError:
            raise AuthenticationError("Unauthorized: Invalid token", context={"status": status})

        if not isinstance(payload, dict) or not payload.get("id"):
            raise AuthenticationError("Unauthorized: Invalid token", context={"status": status})

        logger.debug("[%s] Token verified in %.0fms", call_id, duration_ms)
        return payload

    @staticmethod
    def _to_auth_user(payload: Dict[str, Any]) -> AuthUser:
        app_metadata = payload.get("app_metadata") or {}
        return AuthUser(
            id=str(payload["id"]),
            email=payload.get("email"),
            provider=app_metadata.get("provider"),
            user_metadata=payload.get("user_metadata") or {},
        )

    async def health_check(self) -> bool:
        """GET /auth/v1/health; any non-200 or transport error → False."""
        if not self.configured:
            return False
        try:
            response = await self._get_client().get(self.HEALTH_PATH)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("Auth server health check failed: %s", str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
# Shared so the circuit breaker state spans all requests
auth_service = SupabaseAuthService()
