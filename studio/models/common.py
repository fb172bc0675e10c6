"""
Shared response models.

These Pydantic models document the envelopes every router returns:
- ErrorResponse for all failures
- HealthResponse for probes
- SuccessResponse for deletes and other acknowledgements
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    code: Optional[str] = None
    details: Optional[str] = None


class HealthResponse(BaseModel):
    """Response model for the /health endpoints."""
    status: str = Field(default="healthy")
    version: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
