"""
JKKN Solution Studio package root.

This package contains all application source code organized by responsibility:
- api/       : FastAPI routes and HTTP handling
- core/      : Configuration, logging, security and cross-cutting utilities
- services/  : Business logic, one service per area
- flywheel/  : Methodology registry, step scoring and prompt templates
- llm/       : Gemini provider and coach/prompt-generation prompts
- database/  : SQLAlchemy models and session management
- models/    : Pydantic models for request/response schemas
"""

__version__ = "1.0.0"
