"""
Common API response models for standardized responses.

Every endpoint answers with the same envelope: ``{success, data, timestamp}``
on success and ``{success, error: {code, message, details}, timestamp}`` on
failure.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Generic, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """
    Standardized API response wrapper.

    This provides a consistent response format across all endpoints.
    """

    success: bool = Field(..., description="Whether the request was successful")
    data: Optional[T] = Field(None, description="Response data")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Response timestamp",
    )


class HealthResponse(BaseModel):
    """Health check payload."""

    status: str = Field(
        ...,
        description="Overall health status",
        examples=["healthy", "degraded", "unhealthy"],
    )
    service: str = Field(..., description="Service name", examples=["DevPulse API"])
    version: str = Field(..., description="Service version", examples=["0.1.0"])
    components: Optional[Dict[str, str]] = Field(
        None,
        description="Component health status",
        examples=[{"database": "healthy", "redis": "healthy"}],
    )
    metrics: Optional[Dict[str, Any]] = Field(None, description="Health metrics")


def success(data: Any = None) -> Dict[str, Any]:
    """Envelope ``data`` for a 200 response."""
    return APIResponse[Any](success=True, data=data).model_dump(mode="json")


def created(data: Any = None) -> JSONResponse:
    """Envelope ``data`` as a 201 response."""
    return JSONResponse(status_code=201, content=success(data))
