"""
API module - FastAPI routes and HTTP handling.

This module handles:
- Request validation and parsing
- Authentication and role dependencies
- Error handling
- Route definitions
"""
from studio.api.main import app

__all__ = ["app"]
