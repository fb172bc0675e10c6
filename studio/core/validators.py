"""
Input Validators - Sanitization and validation utilities.

This module provides small, dependency-free checks used by the routes:
- Message sanitization for coach conversations
- Slug validation
- Email normalization
- Slug generation for clusters
"""
import re
from typing import Optional, Tuple

from studio.core.logging_config import get_logger

logger = get_logger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

MAX_MESSAGE_LENGTH = 8000


def sanitize_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Sanitize a user message.

    - Removes null bytes
    - Strips leading/trailing whitespace
    - Collapses runs of blank lines
    - Limits length

    Args:
        message: Raw user message
        max_length: Maximum allowed length

    Returns:
        Sanitized message
    """
    if not message:
        return ""

    cleaned = message.replace("\x00", "").strip()

    # Coach messages are multi-paragraph, so keep single newlines
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)

    if len(cleaned) > max_length:
        logger.debug(f"Message truncated from {len(cleaned)} to {max_length} characters")
        cleaned = cleaned[:max_length]

    return cleaned


def validate_slug(slug: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Check a slug is lowercase words joined by single hyphens."""
    if not slug:
        return False, "Slug is required"
    if not SLUG_PATTERN.match(slug):
        return False, "Slug must contain only lowercase letters, numbers and hyphens"
    return True, None


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def slugify(text: str) -> str:
    """
    Turn a display name into a URL slug.

    Example:
        >>> slugify("Healthcare + AI Problems")
        'healthcare-ai-problems'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower())
    return slug.strip("-")
