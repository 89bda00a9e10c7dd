"""Common API schemas shared across endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response.

    Args:
        error: Error type identifier (e.g., "validation_error", "rate_limit_exceeded")
        message: Human-readable error description
        details: Optional additional error context (e.g., retry_after, attempted_models)
        request_id: Optional request ID for tracing
    """

    error: str
    message: str
    details: Optional[dict] = None
    request_id: Optional[str] = None


class ServiceStatus(BaseModel):
    """Service health status information.

    Args:
        status: Service status ("connected", "unavailable", "degraded", "configured")
        error: Optional error message if service is unhealthy
    """

    status: str
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response with service status.

    Args:
        status: Overall health status ("ok", "degraded")
        version: Application version
        services: Dictionary of service statuses (e.g., {"redis": ServiceStatus})
    """

    status: str
    version: str = "0.1.0"
    services: dict[str, ServiceStatus] = Field(default_factory=dict)
