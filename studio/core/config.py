"""
Studio settings, read once from the process environment.

A `.env` at the project root is loaded first (python-dotenv), so local
runs need no exported variables. Secrets such as SESSION_SECRET, the
Google OAuth client and the credential encryption key live only there
or in the deploy environment.
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


# Before any os.environ read below
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


@dataclass(frozen=True)
class Settings:
    """
    Immutable snapshot of the studio configuration.

    Attributes:
        app_name: Application identifier for logging
        app_env: Environment name (development, test, production)
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        app_url: Public base URL, used to build OAuth redirect URIs
        database_url: SQLAlchemy connection string
        session_secret: HMAC key for session and impersonation tokens
        session_ttl_hours: Lifetime of a sign-in session
        google_client_id: OAuth client for Google sign-in and Gemini consent
        google_client_secret: Secret matching google_client_id
        credentials_encryption_key: Key material for stored BYOS credentials
        allowed_email_domain: Only this domain may sign in with Google
        gemini_default_model: Model used when a caller does not pick one
        llm_temperature: Gemini sampling temperature
        llm_max_tokens: Maximum Gemini response length
    """
    # Application settings
    app_name: str
    app_env: str
    log_level: str
    app_url: str

    # Database settings
    database_url: str

    # Auth settings
    session_secret: str
    session_ttl_hours: int
    google_client_id: Optional[str]
    google_client_secret: Optional[str]
    allowed_email_domain: str

    # BYOS settings
    credentials_encryption_key: Optional[str]
    gemini_default_model: str
    llm_temperature: float
    llm_max_tokens: int

    # Safety settings
    rate_limit_per_minute: int
    enable_audit_logging: bool

    # Events
    default_public_event_slug: str

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env.lower() == "development"

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    def is_test(self) -> bool:
        return self.app_env.lower() == "test"


def _get_env(key: str, default: Optional[str] = None) -> str:
    """
    Get environment variable with optional default.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is not set and no default provided
    """
    value = os.environ.get(key, default)
    if value is None:
        raise ValueError(
            f"Required environment variable '{key}' is not set. "
            f"Please check your .env file."
        )
    return value


def _get_optional_env(key: str) -> Optional[str]:
    """Get an environment variable, treating empty strings as unset."""
    value = os.environ.get(key)
    return value or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Build the settings on first call and return the same object afterwards.

    Tests set os.environ before importing the app for this reason.

    Raises:
        ValueError: If required environment variables are missing
    """
    database_url = _get_env("DATABASE_URL", "sqlite:///./studio.db")

    # Hosted Postgres providers still hand out the legacy scheme
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    app_env = _get_env("APP_ENV", "development")

    session_secret = _get_optional_env("SESSION_SECRET")
    if session_secret is None:
        if app_env.lower() == "production":
            raise ValueError("SESSION_SECRET must be set in production")
        session_secret = "dev-session-secret-change-me-before-deploying"

    return Settings(
        # Application
        app_name=_get_env("APP_NAME", "SolutionStudio"),
        app_env=app_env,
        log_level=_get_env("LOG_LEVEL", "DEBUG"),
        app_url=_get_env("APP_URL", "http://localhost:8000").rstrip("/"),

        # Database
        database_url=database_url,

        # Auth
        session_secret=session_secret,
        session_ttl_hours=int(_get_env("SESSION_TTL_HOURS", "168")),
        google_client_id=_get_optional_env("GOOGLE_CLIENT_ID"),
        google_client_secret=_get_optional_env("GOOGLE_CLIENT_SECRET"),
        allowed_email_domain=_get_env("ALLOWED_EMAIL_DOMAIN", "jkkn.ac.in").lower(),

        # BYOS
        credentials_encryption_key=_get_optional_env("CREDENTIALS_ENCRYPTION_KEY"),
        gemini_default_model=_get_env("GEMINI_DEFAULT_MODEL", DEFAULT_GEMINI_MODEL),
        llm_temperature=float(_get_env("LLM_TEMPERATURE", "0.7")),
        llm_max_tokens=int(_get_env("LLM_MAX_TOKENS", "8192")),

        # Safety
        rate_limit_per_minute=int(_get_env("RATE_LIMIT_PER_MINUTE", "30")),
        enable_audit_logging=_get_env("ENABLE_AUDIT_LOGGING", "true").lower() == "true",

        # Events
        default_public_event_slug=_get_env("DEFAULT_PUBLIC_EVENT_SLUG", "appathon-2"),
    )
