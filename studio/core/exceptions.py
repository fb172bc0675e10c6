"""
Custom Exceptions - Application-specific error classes.

This module defines a hierarchy of exceptions for clean error handling:
- Each exception has a status code and error code
- Used by the API layer for consistent `{"error": ...}` responses
- No stack traces leaked in production
"""
from typing import Any, Dict, Optional


class StudioException(Exception):
    """
    Base exception for all Solution Studio errors.

    Subclass this for specific error types. `extra` carries additional
    top-level keys for the response body (e.g. the id of a conflicting row).
    """
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.extra = extra or {}

    def to_dict(self) -> dict:
        """Convert to error response dict."""
        body = {
            "error": self.message,
            "code": self.error_code,
        }
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        return body


class AuthenticationError(StudioException):
    """Raised when a request carries no valid session."""
    status_code = 401
    error_code = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenError(StudioException):
    """Raised when the caller lacks the role an operation needs."""
    status_code = 403
    error_code = "forbidden"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFoundError(StudioException):
    """Raised when a requested row does not exist."""
    status_code = 404
    error_code = "not_found"


class ConflictError(StudioException):
    """Raised when a write collides with an existing row."""
    status_code = 409
    error_code = "conflict"


class ValidationError(StudioException):
    """Raised when input validation fails."""
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details=f"field={field}" if field else None)
        self.field = field


class CredentialError(StudioException):
    """Raised when BYOS credentials cannot be parsed or fail validation."""
    status_code = 400
    error_code = "invalid_credentials"


class RateLimitExceeded(StudioException):
    """Raised when a client exceeds the rate limit."""
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, retry_after: int = 60):
        super().__init__(
            message=f"Rate limit exceeded. Please wait {retry_after} seconds.",
            details=f"retry_after={retry_after}"
        )
        self.retry_after = retry_after


class ConfigurationError(StudioException):
    """Raised when a feature is used without its server-side configuration."""
    status_code = 500
    error_code = "not_configured"


class DatabaseError(StudioException):
    """Raised when database operations fail."""
    status_code = 503
    error_code = "database_error"

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message)


class LLMError(StudioException):
    """Raised when a Gemini call fails."""
    status_code = 502
    error_code = "llm_error"

    def __init__(self, message: str = "LLM service unavailable", details: Optional[str] = None):
        super().__init__(message, details=details)
