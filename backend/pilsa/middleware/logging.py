"""
Pilsa Backend — Access Log Middleware
======================================

What:  One log line per request on the `pilsa.access` logger:
       method, path, status, duration, request id, client IP.
How:   Level follows the status (5xx ERROR, 4xx WARNING, else INFO).
       Unhandled exceptions are logged as 500 and re-raised for the
       global handler.

Never logged: request bodies (verse text, profile data) and the
Authorization header.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from pilsa.middleware.request_id import request_id_var

logger = logging.getLogger("pilsa.access")

# Probed every few seconds by the container runtime
QUIET_PATHS = {"/health"}


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            rid = request_id_var.get("")
            ip = client_ip(request)
            logger.log(
                level_for_status(status),
                "%s %s %d %.1fms [%s] from %s",
                request.method,
                path,
                status,
                duration_ms,
                rid,
                ip,
                extra={
                    "request_id": rid,
                    "method": request.method,
                    "path": path,
                    "status": status,
                    "duration_ms": round(duration_ms, 2),
                    "client_ip": ip,
                },
            )
