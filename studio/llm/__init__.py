"""
LLM module - Gemini integration.

This module handles all Gemini interactions:
- Credential parsing and OAuth token refresh
- REST and SDK calls on the caller's own subscription
- Prompt construction for the coach and prompt generation
"""
from studio.llm.client import (
    AVAILABLE_MODELS,
    GeminiCredentials,
    GeminiProvider,
    ProviderResponse,
    parse_gemini_credentials,
)

__all__ = [
    "AVAILABLE_MODELS",
    "GeminiCredentials",
    "GeminiProvider",
    "ProviderResponse",
    "parse_gemini_credentials",
]
