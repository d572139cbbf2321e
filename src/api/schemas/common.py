"""Common schema models shared across API endpoints."""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field


class HealthStatusEnum(str, Enum):
    """Health status values for service components."""
    healthy = "healthy"
    unhealthy = "unhealthy"
    degraded = "degraded"


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = Field(default=False, examples=[False])
    error: str = Field(..., examples=["message_limit_exceeded"])
    message: Optional[str] = Field(default=None, examples=["Monthly message limit reached. Used: 10 / 10"])
    details: Optional[List[Dict[str, Any]]] = None
    request_id: Optional[str] = Field(default=None, examples=["a1b2c3d4"])


class HealthStatus(BaseModel):
    """Service health status."""
    status: HealthStatusEnum = Field(default=HealthStatusEnum.healthy, examples=["healthy"])
    version: str = Field(default="1.0.0", examples=["1.0.0"])
    timestamp: datetime
    components: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


__all__ = [
    "HealthStatusEnum",
    "ErrorResponse",
    "HealthStatus",
]
