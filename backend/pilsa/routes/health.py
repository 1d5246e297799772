"""
Pilsa Backend — Health Check Route
===================================

What:  Health endpoint for container probes and uptime monitoring.
How:   SELECT 1 against the database; circuit-breaker state plus a
       /auth/v1/health probe for Supabase Auth.

Status levels:
    - healthy:   database and auth server reachable
    - degraded:  database fine, auth server unavailable, unconfigured or
                 circuit open (public Bible routes still work)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from pilsa import __version__
from pilsa.database import engine
from pilsa.schemas.common import HealthResponse
from pilsa.services.supabase_auth import CircuitBreaker, auth_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    auth_status = "available"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if not auth_service.configured:
        auth_status = "unconfigured"
    elif auth_service.circuit_breaker.state == CircuitBreaker.OPEN:
        auth_status = "circuit_open"
    elif not await auth_service.health_check():
        auth_status = "unavailable"

    if auth_status != "available" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        auth=auth_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
