"""
Pilsa Backend — Rate Limiting Middleware
=========================================

What:  Per-IP sliding-window rate limits with a separate, smaller budget for
       writes (POST/PUT/PATCH/DELETE), so a client hammering the transcription
       endpoint cannot also lock itself out of reading.
How:   Each limiter keeps the timestamps of recent hits per key in memory.
       A hit is refused when the key already has `limit` hits inside the last
       `window` seconds; Retry-After is the time until the oldest one expires.

Single-process only: each uvicorn worker keeps its own counters.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pilsa.config import settings
from pilsa.exceptions import RateLimitExceededError
from pilsa.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Prune idle keys every N recorded hits
_CLEANUP_EVERY = 1000


class SlidingWindowLimiter:
    """In-memory sliding window keyed by an arbitrary string (client IP here)."""

    def __init__(self, limit: int, window: int):
        self.limit = limit
        self.window = window
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._recorded = 0

    def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
        """
        Records a hit for `key`.

        Returns:
            None when allowed, otherwise the seconds to wait (hit not recorded).
        """
        now = time.time() if now is None else now
        window_start = now - self.window
        hits = self._hits[key]
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.limit:
            return int(hits[0] + self.window - now) + 1

        hits.append(now)
        self._recorded += 1
        if self._recorded % _CLEANUP_EVERY == 0:
            self._prune(window_start)
        return None

    def _prune(self, window_start: float) -> None:
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in idle:
            del self._hits[key]
        if idle:
            logger.debug("Rate limiter pruned %d idle clients", len(idle))


class RateLimitMiddleware(BaseHTTPMiddleware):
    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self.all_requests = SlidingWindowLimiter(settings.rate_limit_requests, settings.rate_limit_window)
        self.write_requests = SlidingWindowLimiter(
            settings.rate_limit_write_requests,
            settings.rate_limit_window,
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        ip = request.client.host if request.client else "unknown"

        retry_after = None
        if request.method in WRITE_METHODS:
            retry_after = self.write_requests.hit(ip)
        if retry_after is None:
            retry_after = self.all_requests.hit(ip)

        if retry_after is not None:
            logger.warning(
                "Rate limit exceeded for IP %s on %s %s (retry in %ds)",
                ip,
                request.method,
                request.url.path,
                retry_after,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
