"""
Pilsa Backend — Shared Schemas
===============================

What:  Base model for camelCase wire formats, plus the error and health
       response models shared by every router.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base for schemas exchanged with the web client.

    Fields are declared in snake_case and serialized with camelCase aliases.
    populate_by_name lets services construct them with Python names.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class StatusResponse(BaseModel):
    """Acknowledgement body for mutations without a payload, e.g. {"status": "deleted"}."""

    status: str = Field(description="Outcome keyword")


# ══════════════════════════════════════════════════════════════════════════
# Error Response Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "error": "conflict",
            "message": "Already registered to this church",
            "details": {"church_id": "..."},
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    auth: str = Field(description="Auth server status: available, unavailable, circuit_open, unconfigured")
    uptime_seconds: float = Field(description="Seconds since service started")
