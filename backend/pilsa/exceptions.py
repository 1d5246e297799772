"""
Pilsa Backend — Custom Exception Hierarchy
===========================================

What:  Application-specific exceptions for the error scenarios the API knows about.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers registered in main.py map them to HTTP status
       codes and a structured JSON body.
Who:   Raised by services and dependencies; caught by the global handlers.

Exception Hierarchy:
    PilsaError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── DatabaseError            → 500 Internal Server Error
    ├── AuthServiceError         → 503 Service Unavailable
    └── CircuitBreakerOpenError  → 503 Service Unavailable
"""

from typing import Any, Dict, Optional


class PilsaError(Exception):
    """
    Base exception for all Pilsa application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for 4xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PilsaError):
    """
    Raised when client input fails a business rule.

    Schema-level problems (wrong types, missing fields) are rejected by
    FastAPI with 422 before reaching a service; this covers the rest, e.g.
    a registration request that names no church at all.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(PilsaError):
    """Raised when the bearer token is missing or rejected by the auth server."""

    def __init__(
        self,
        message: str = "Unauthorized: Invalid token",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(PilsaError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; services convert that into this
    exception so routes stay free of status-code logic. Pass `message` to use
    a fixed wording instead of the generated one.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class ConflictError(PilsaError):
    """
    Raised when a write would violate a uniqueness or cardinality rule.

    When: registering to a church twice, or past the membership limit.
    """

    def __init__(
        self,
        message: str = "The request conflicts with the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(PilsaError):
    """Raised when a client exceeds the per-IP request rate limit."""

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class DatabaseError(PilsaError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic. The context
    (constraint names, error types) is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthServiceError(PilsaError):
    """
    Raised when the Supabase Auth server cannot be reached after all retries.

    The client's token may well be valid; it should retry after `retry_after`
    seconds rather than sign the user out.
    """

    def __init__(
        self,
        message: str = "Authentication service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(PilsaError):
    """
    Raised while the auth circuit breaker is OPEN.

    CLOSED → (N consecutive failures) → OPEN → (recovery timeout) → HALF_OPEN
    → one trial call → CLOSED on success, OPEN again on failure.
    """

    def __init__(
        self,
        recovery_time: int = 30,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Authentication service is temporarily unavailable due to repeated failures. "
            f"Please retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time
