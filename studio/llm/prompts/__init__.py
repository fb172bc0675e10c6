"""
Prompts module - Gemini prompt templates.

Prompts are stored as separate Python files for:
- Version control of prompt changes
- Clear documentation of prompt purpose
"""
from studio.llm.prompts.coach import (
    COACH_FALLBACK_MESSAGE,
    build_coach_context,
    get_coach_system_prompt,
)
from studio.llm.prompts.generation import (
    build_validation_context,
    get_generation_system_prompt,
    get_generation_user_prompt,
)

__all__ = [
    "COACH_FALLBACK_MESSAGE",
    "build_coach_context",
    "get_coach_system_prompt",
    "build_validation_context",
    "get_generation_system_prompt",
    "get_generation_user_prompt",
]
