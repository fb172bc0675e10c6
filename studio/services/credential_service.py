"""
Credential Service - Bring-your-own-subscription (BYOS) storage.

Learners connect their own Gemini account, either by pasting an API key
or OAuth credentials JSON, or through the Gemini consent flow. Whatever
they provide is validated with a live call, encrypted with the
configured Fernet key and stored one row per (user, provider).

Why store credentials server-side:
1. The coach runs on the learner's quota, never on a shared key
2. OAuth access tokens can be refreshed without the learner
3. Nothing secret ever goes back to the browser
"""
import base64
import json
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import requests

from studio.core.config import get_settings
from studio.core.exceptions import ConfigurationError, CredentialError, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.core.security import get_credential_cipher, is_encryption_configured
from studio.database.connection import get_database
from studio.database.models import ProviderCredential
from studio.llm.client import (
    GOOGLE_TOKEN_URI,
    GeminiCredentials,
    GeminiProvider,
    parse_gemini_credentials,
)
from studio.services.auth_service import GOOGLE_AUTH_URL, HTTP_TIMEOUT_SECONDS, CurrentUser

PROVIDERS = ("claude", "gemini")
CREDENTIAL_TYPES = ("token", "oauth_json")

GEMINI_SCOPE = "https://www.googleapis.com/auth/generative-language.peruserquota"
OAUTH_STATE_MAX_AGE_MS = 5 * 60 * 1000


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_expiry(expiry: Optional[str]) -> Optional[datetime]:
    if not expiry:
        return None
    try:
        parsed = datetime.fromisoformat(expiry.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed


def encode_oauth_state(user_id: str, timestamp_ms: Optional[int] = None) -> str:
    payload = {"userId": user_id, "timestamp": timestamp_ms or int(time.time() * 1000)}
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_oauth_state(state: str) -> Dict[str, Any]:
    """Raises ValueError when the state is not base64 JSON."""
    decoded = json.loads(base64.b64decode(state.encode("ascii"), validate=True).decode("utf-8"))
    if not isinstance(decoded, dict):
        raise ValueError("state is not an object")
    return decoded


class CredentialService(LoggerMixin):
    """
    Stores, lists and removes BYOS credentials and hands out providers.

    Example:
        >>> service = CredentialService()
        >>> service.store(user, "gemini", "token", "AIza...")["isValid"]
        True
        >>> provider = service.get_provider_for_user(user.id)
        >>> provider.query("Hello").content
    """

    def __init__(self):
        self.settings = get_settings()

    @property
    def gemini_redirect_uri(self) -> str:
        return f"{self.settings.app_url.rstrip('/')}/api/auth/gemini/callback"

    # ============================================================
    # CRUD
    # ============================================================

    def list(self, user: CurrentUser) -> Dict[str, List[Dict[str, Any]]]:
        with get_database().get_session() as session:
            rows = (
                session.query(ProviderCredential)
                .filter(ProviderCredential.user_id == user.id)
                .order_by(ProviderCredential.created_at)
                .all()
            )
            return {
                "providers": [
                    {
                        "id": row.id,
                        "provider": row.provider,
                        "credentialType": row.credential_type,
                        "isValid": row.is_valid,
                        "lastValidated": _iso(row.last_validated_at),
                        "expiresAt": _iso(row.expires_at),
                        "createdAt": _iso(row.created_at),
                    }
                    for row in rows
                ]
            }

    def store(
        self,
        user: CurrentUser,
        provider: Optional[str],
        credential_type: Optional[str],
        credentials: Optional[str]
    ) -> Dict[str, Any]:
        """
        Validate and upsert one provider's credentials.

        Raises:
            ConfigurationError: No encryption key configured
            ValidationError: Bad provider, type or empty credentials
            CredentialError: Gemini rejected the credentials
        """
        if not is_encryption_configured():
            raise ConfigurationError("Encryption not configured. Contact administrator.")
        if provider not in PROVIDERS:
            raise ValidationError('Invalid provider. Must be "claude" or "gemini"', field="provider")
        if credential_type not in CREDENTIAL_TYPES:
            raise ValidationError(
                'Invalid credentialType. Must be "token" or "oauth_json"', field="credentialType"
            )
        if not credentials or not credentials.strip():
            raise ValidationError("Credentials are required", field="credentials")

        is_valid = False
        expires_at = None

        if provider == "gemini":
            if credential_type == "oauth_json":
                try:
                    parsed = parse_gemini_credentials(credentials)
                except CredentialError as e:
                    raise CredentialError(f"Invalid credentials: {e.message}") from e
                expires_at = _parse_expiry(parsed.expiry)
                gemini = GeminiProvider(parsed)
            else:
                gemini = GeminiProvider(credentials.strip())

            is_valid = gemini.validate_credentials()
            if not is_valid:
                raise CredentialError("Invalid Gemini credentials. Please check and try again.")

        self._upsert(user.id, provider, credential_type, credentials, is_valid, expires_at)
        self.logger.info(f"{provider} credentials stored for user {user.id}")
        return {
            "success": True,
            "provider": provider,
            "isValid": is_valid,
            "message": f"{provider} credentials stored successfully",
        }

    def _upsert(
        self,
        user_id: str,
        provider: str,
        credential_type: str,
        plaintext: str,
        is_valid: bool,
        expires_at: Optional[datetime]
    ) -> None:
        encrypted = get_credential_cipher().encrypt(plaintext)
        now = datetime.utcnow()

        with get_database().get_session() as session:
            row = (
                session.query(ProviderCredential)
                .filter(ProviderCredential.user_id == user_id, ProviderCredential.provider == provider)
                .first()
            )
            if row is None:
                row = ProviderCredential(user_id=user_id, provider=provider)
                session.add(row)
            row.credentials_encrypted = encrypted
            row.credential_type = credential_type
            row.is_valid = is_valid
            row.last_validated_at = now
            row.expires_at = expires_at
            row.updated_at = now

    def delete(self, user: CurrentUser, provider: Optional[str]) -> Dict[str, Any]:
        if provider not in PROVIDERS:
            raise ValidationError('Invalid provider. Must be "claude" or "gemini"', field="provider")

        with get_database().get_session() as session:
            session.query(ProviderCredential).filter(
                ProviderCredential.user_id == user.id,
                ProviderCredential.provider == provider,
            ).delete(synchronize_session=False)

        self.logger.info(f"{provider} credentials removed for user {user.id}")
        return {"success": True, "message": f"{provider} credentials removed"}

    # ============================================================
    # Provider access
    # ============================================================

    def get_provider_for_user(self, user_id: str) -> Optional[GeminiProvider]:
        """
        Build a Gemini provider from the user's stored credentials.

        Returns:
            None when the user has no usable Gemini credentials
        """
        with get_database().get_session() as session:
            row = (
                session.query(ProviderCredential)
                .filter(
                    ProviderCredential.user_id == user_id,
                    ProviderCredential.provider == "gemini",
                    ProviderCredential.is_valid.is_(True),
                )
                .first()
            )
            if row is None:
                return None
            encrypted, credential_type = row.credentials_encrypted, row.credential_type

        if not is_encryption_configured():
            self.logger.warning("Stored credentials present but no encryption key configured")
            return None
        plaintext = get_credential_cipher().decrypt(encrypted)

        if credential_type != "oauth_json":
            return GeminiProvider(plaintext)

        def persist(refreshed: GeminiCredentials) -> None:
            self._upsert(
                user_id, "gemini", "oauth_json", refreshed.to_json(), True, _parse_expiry(refreshed.expiry)
            )

        return GeminiProvider(parse_gemini_credentials(plaintext), on_token_refresh=persist)

    # ============================================================
    # Gemini OAuth consent flow
    # ============================================================

    def build_gemini_auth_url(self, user: CurrentUser) -> str:
        if not self.settings.google_client_id:
            raise ConfigurationError("Google OAuth not configured")

        params = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.gemini_redirect_uri,
            "response_type": "code",
            "scope": GEMINI_SCOPE,
            "access_type": "offline",
            "prompt": "consent",
            "state": encode_oauth_state(user.id),
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def complete_gemini_oauth(
        self,
        user: Optional[CurrentUser],
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None
    ) -> str:
        """
        Finish the consent flow and return the settings page to redirect to.

        Failures never raise; they become a `gemini_error` code on the
        returned path.
        """
        if error:
            self.logger.warning(f"Gemini OAuth error from Google: {error}")
            return f"/settings?gemini_error={quote(error)}"
        if not code or not state:
            return "/settings?gemini_error=missing_params"

        try:
            state_data = decode_oauth_state(state)
        except ValueError:
            return "/settings?gemini_error=invalid_state"

        timestamp = state_data.get("timestamp")
        if not isinstance(timestamp, (int, float)) or time.time() * 1000 - timestamp > OAUTH_STATE_MAX_AGE_MS:
            return "/settings?gemini_error=expired"

        if user is None or user.id != state_data.get("userId"):
            return "/settings?gemini_error=auth_mismatch"

        settings = self.settings
        if not settings.google_client_id or not settings.google_client_secret:
            return "/settings?gemini_error=not_configured"

        try:
            tokens = self._exchange_code(code)
        except CredentialError:
            return "/settings?gemini_error=token_exchange_failed"

        expires_in = tokens.get("expires_in")
        credentials = GeminiCredentials(
            access_token=tokens.get("access_token") or "",
            refresh_token=tokens.get("refresh_token"),
            token_uri=GOOGLE_TOKEN_URI,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            expiry=(
                (datetime.utcnow() + timedelta(seconds=int(expires_in))).isoformat() + "Z"
                if expires_in else None
            ),
        )

        if not credentials.access_token or not GeminiProvider(credentials).validate_credentials():
            return "/settings?gemini_error=invalid_credentials"

        try:
            self._upsert(
                user.id, "gemini", "oauth_json", credentials.to_json(), True, _parse_expiry(credentials.expiry)
            )
        except ConfigurationError:
            self.logger.error("Gemini credentials could not be stored: encryption not configured")
            return "/settings?gemini_error=storage_failed"

        self.logger.info(f"Gemini connected via OAuth for user {user.id}")
        return "/settings?gemini_success=true"

    def _exchange_code(self, code: str) -> Dict[str, Any]:
        payload = {
            "code": code,
            "client_id": self.settings.google_client_id,
            "client_secret": self.settings.google_client_secret,
            "redirect_uri": self.gemini_redirect_uri,
            "grant_type": "authorization_code",
        }
        try:
            response = requests.post(GOOGLE_TOKEN_URI, data=payload, timeout=HTTP_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            self.logger.error(f"Gemini token exchange failed: {e}")
            raise CredentialError("Token exchange failed") from e

        if not response.ok:
            self.logger.warning(f"Gemini token exchange rejected: {response.status_code}")
            raise CredentialError("Token exchange failed", details=response.text[:500])
        return response.json()


# Global service instance
_credential_service: Optional[CredentialService] = None


def get_credential_service() -> CredentialService:
    """Get or create the global credential service."""
    global _credential_service
    if _credential_service is None:
        _credential_service = CredentialService()
    return _credential_service
