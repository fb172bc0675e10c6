"""
Models module - Pydantic request and response schemas.
"""
from studio.models.common import ErrorResponse, HealthResponse, SuccessResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "SuccessResponse",
]
