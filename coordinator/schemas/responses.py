from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HealthCheckResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service status
        version: Application version
        service: Service name
    """

    status: str = Field(
        default="healthy",
        description="Service health status",
        examples=["healthy", "degraded"],
    )
    version: str = Field(..., description="Application version", examples=["0.1.0"])
    service: str = Field(..., description="Service name", examples=["Deal Coordination Service"])
    database: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Exception class name")
    message: str
    detail: Optional[str] = None
