"""
Pilsa Backend — FastAPI Application Factory
============================================

What:  Builds the FastAPI application: logging, lifespan, middleware,
       exception handlers and routers.
Who:   uvicorn (`uvicorn pilsa.main:app`); tests call create_app() directly.

Application Layout:
    ┌──────────────────────────────────────────────────────────────┐
    │ Middleware: CORS → GZip → RequestID → AccessLog → RateLimit  │
    │                                                              │
    │ Routers (/api unless noted):                                 │
    │   /health            profile         providers               │
    │   transcriptions     churches        bible (public)          │
    │                                                              │
    │ Exception handlers: PilsaError subclasses → 400…503          │
    │                     anything else → 500, details only logged │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, report missing Supabase settings (the
              server still starts so /health and the Bible routes work)
    Shutdown: close the auth HTTP client, dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from pilsa import __version__
from pilsa.config import settings
from pilsa.database import dispose_engine
from pilsa.exceptions import (
    AuthenticationError,
    AuthServiceError,
    CircuitBreakerOpenError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    PilsaError,
    RateLimitExceededError,
    ValidationError,
)
from pilsa.middleware.logging import RequestLoggingMiddleware
from pilsa.middleware.rate_limit import RateLimitMiddleware
from pilsa.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware, request_id_var
from pilsa.routes import bible, churches, health, profile, providers, transcriptions
from pilsa.services.supabase_auth import auth_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Root logger to stdout at LOG_LEVEL; chatty third-party loggers capped at WARNING."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("Pilsa Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Authenticated routes answer 503 until this is fixed
        logger.error("Configuration error: %s", str(e))

    logger.info(
        "Limits: %d church memberships/user, %d req (%d writes) per %ds per IP",
        settings.max_church_memberships,
        settings.rate_limit_requests,
        settings.rate_limit_write_requests,
        settings.rate_limit_window,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    logger.info("Pilsa Backend shutting down...")
    await auth_service.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

# exception → (status, error code, include context in the body)
# Looked up along the exception's MRO, so subclasses inherit their parent's entry.
ERROR_MAP: Dict[Type[PilsaError], Tuple[int, str, bool]] = {
    ValidationError: (400, "validation_error", True),
    AuthenticationError: (401, "unauthorized", False),
    NotFoundError: (404, "not_found", False),
    ConflictError: (409, "conflict", True),
    RateLimitExceededError: (429, "rate_limit_exceeded", True),
    DatabaseError: (500, "server_error", False),
    AuthServiceError: (503, "auth_service_unavailable", False),
    CircuitBreakerOpenError: (503, "service_unavailable", True),
}


def _retry_after(exc: PilsaError) -> Optional[int]:
    for attr in ("retry_after", "recovery_time"):
        value = getattr(exc, attr, None)
        if value:
            return int(value)
    return None


def error_response(exc: PilsaError) -> JSONResponse:
    """Renders a PilsaError as {error, message, details?, request_id}."""
    status, code, with_details = 500, "server_error", False
    for cls in type(exc).__mro__:
        if cls in ERROR_MAP:
            status, code, with_details = ERROR_MAP[cls]
            break

    rid = request_id_var.get("")
    if status >= 500:
        logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
    else:
        logger.info("[%s] %s: %s", rid, type(exc).__name__, exc.message)

    # Internal errors get a generic message; 503s keep theirs (they tell the client to retry)
    message = exc.message if status != 500 else "An internal error occurred. Please try again later."

    content = {"error": code, "message": message, "request_id": rid}
    if with_details and exc.context:
        content["details"] = exc.context

    headers = {}
    retry_after = _retry_after(exc)
    if retry_after and status in (429, 503):
        headers["Retry-After"] = str(retry_after)

    return JSONResponse(status_code=status, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PilsaError)
    async def handle_pilsa_error(request: Request, exc: PilsaError):
        return error_response(exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        # Runs outside RequestIDMiddleware, where the ContextVar is already reset
        rid = request_id_var.get("") or getattr(request.state, "request_id", "")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
            headers={REQUEST_ID_HEADER: rid} if rid else None,
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Pilsa API",
        description=(
            "Backend for a Bible transcription app: credits per transcribed verse, "
            "daily stats, church memberships and Bible text."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_origins_list != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(profile.router)
    app.include_router(providers.router)
    app.include_router(transcriptions.router)
    app.include_router(churches.router)
    app.include_router(bible.router)

    return app


app = create_app()
