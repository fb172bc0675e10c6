"""
Security primitives - signed tokens, password hashing and credential sealing.

This module provides:
- TokenSigner: HS256 JWTs for sign-in sessions, OAuth state and the
  impersonation cookie
- Password hashing for accounts created by a superadmin
- CredentialCipher: Fernet encryption for stored BYOS credentials

Why JWT for the impersonation cookie:
1. Tamper-evident - an edited cookie fails signature verification
2. Self-expiring - the 4-hour limit lives in the `exp` claim
3. Stateless - no lookup needed to decide who the effective user is
"""
import base64
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from cryptography.fernet import Fernet, InvalidToken
from passlib.context import CryptContext

from studio.core.config import get_settings
from studio.core.exceptions import ConfigurationError
from studio.core.logging_config import get_logger

logger = get_logger(__name__)

SESSION_COOKIE = "studio_session"
IMPERSONATION_COOKIE = "flywheel_impersonation"
IMPERSONATION_MAX_HOURS = 4

# pbkdf2 keeps hashing pure-python; no native bcrypt backend needed
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class TokenExpired(Exception):
    """Raised when a token verified correctly but its `exp` has passed."""


class TokenInvalid(Exception):
    """Raised when a token is malformed, tampered with or of the wrong type."""


class TokenSigner:
    """
    Signs and verifies typed JWTs.

    Each token carries a `type` claim so a session token can never be
    replayed as an impersonation cookie or OAuth state.

    Example:
        >>> signer = TokenSigner("x" * 32)
        >>> token = signer.sign({"sub": "user-1"}, token_type="session", expires_in=timedelta(hours=1))
        >>> signer.verify(token, token_type="session")["sub"]
        'user-1'
    """

    def __init__(self, secret: Optional[str] = None, algorithm: str = "HS256"):
        self.secret = secret or get_settings().session_secret
        self.algorithm = algorithm

    def sign(
        self,
        claims: Dict[str, Any],
        token_type: str,
        expires_in: Optional[timedelta] = None,
        issued_at: Optional[datetime] = None
    ) -> str:
        """Sign `claims` as a token of `token_type`."""
        payload = dict(claims)
        now = issued_at or datetime.now(timezone.utc)
        payload["type"] = token_type
        payload["iat"] = now
        if expires_in is not None:
            payload["exp"] = now + expires_in
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str, token_type: str, allow_expired: bool = False) -> Dict[str, Any]:
        """
        Verify a token and return its claims.

        Args:
            token: Encoded JWT
            token_type: Expected `type` claim
            allow_expired: Accept a correctly signed token past its `exp`

        Raises:
            TokenExpired: Signature is valid but the token has expired
            TokenInvalid: Anything else (bad signature, wrong type, garbage)
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": not allow_expired},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired(str(e)) from e
        except jwt.PyJWTError as e:
            raise TokenInvalid(str(e)) from e

        if payload.get("type") != token_type:
            raise TokenInvalid(f"Expected {token_type} token, got {payload.get('type')}")
        return payload


# ============================================================
# Session tokens
# ============================================================

def create_session_token(user_id: str, email: str) -> str:
    """Issue a sign-in session token for a user."""
    settings = get_settings()
    return TokenSigner().sign(
        {"sub": user_id, "email": email},
        token_type="session",
        expires_in=timedelta(hours=settings.session_ttl_hours),
    )


def decode_session_token(token: str) -> Optional[str]:
    """Return the user id of a valid session token, or None."""
    try:
        return TokenSigner().verify(token, token_type="session").get("sub")
    except (TokenExpired, TokenInvalid) as e:
        logger.debug(f"Rejected session token: {e}")
        return None


# ============================================================
# Passwords
# ============================================================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


# ============================================================
# Credential encryption
# ============================================================

class CredentialCipher:
    """
    Fernet wrapper for provider credentials at rest.

    Any configured key string is stretched with SHA-256 into the 32-byte
    urlsafe key Fernet requires, so operators can use a plain passphrase.
    """

    def __init__(self, key_material: str):
        digest = hashlib.sha256(key_material.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise ConfigurationError(
                "Stored credentials could not be decrypted",
                details="encryption key changed since the credentials were saved"
            ) from e


def is_encryption_configured() -> bool:
    return bool(get_settings().credentials_encryption_key)


def get_credential_cipher() -> CredentialCipher:
    """Build the cipher, failing with 500 when no key is configured."""
    key = get_settings().credentials_encryption_key
    if not key:
        raise ConfigurationError("Encryption not configured")
    return CredentialCipher(key)


# ============================================================
# Email domain restriction
# ============================================================

def is_allowed_email(email: Optional[str]) -> bool:
    """True when the email belongs to the configured institution domain."""
    if not email:
        return False
    domain = get_settings().allowed_email_domain
    return email.strip().lower().endswith(f"@{domain}")


def get_domain_error_message() -> str:
    return f"Only @{get_settings().allowed_email_domain} email addresses are allowed"
