"""
Auth Service - Sign-in, sessions and the request's user.

Two ways in:
1. Google OAuth (authorization code flow) for institution accounts
2. Email and password for accounts a superadmin created

Both end with a signed session token. Request handling only ever sees a
`CurrentUser` snapshot, never a live ORM row, so nothing leaks across
sessions.
"""
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests

from studio.core.config import get_settings
from studio.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ForbiddenError,
    ValidationError,
)
from studio.core.logging_config import LoggerMixin
from studio.core.security import (
    TokenExpired,
    TokenInvalid,
    TokenSigner,
    create_session_token,
    get_domain_error_message,
    is_allowed_email,
    verify_password,
)
from studio.core.validators import normalize_email
from studio.database.connection import get_database
from studio.database.models import User

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

SIGN_IN_SCOPES = "openid email profile"
STATE_TTL = timedelta(minutes=10)
HTTP_TIMEOUT_SECONDS = 15

USER_ROLES = ("learner", "facilitator", "admin", "event_admin", "institution_admin", "superadmin")


@dataclass(frozen=True)
class CurrentUser:
    """Detached view of the authenticated user for one request."""
    id: str
    email: str
    name: Optional[str]
    role: str
    institution_id: Optional[str] = None
    active_event_id: Optional[str] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == "superadmin"

    @property
    def is_institution_admin(self) -> bool:
        return self.role == "institution_admin"

    def brief(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_model(cls, user: User) -> "CurrentUser":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            institution_id=user.institution_id,
            active_event_id=user.active_event_id,
        )


@dataclass
class SignInResult:
    user: CurrentUser
    token: str
    redirect_to: str


def _safe_next(next_path: Optional[str]) -> str:
    # Only same-site relative paths; anything else lands on the dashboard
    if next_path and next_path.startswith("/") and not next_path.startswith("//"):
        return next_path
    return "/dashboard"


class AuthService(LoggerMixin):
    """
    Resolves session users and runs both sign-in flows.

    Example:
        >>> service = AuthService()
        >>> url = service.build_login_url("/cycle/new")
        >>> result = service.complete_google_sign_in(code, state)
        >>> result.redirect_to
        '/select-institution'
    """

    def __init__(self):
        self.settings = get_settings()
        self.signer = TokenSigner()

    @property
    def redirect_uri(self) -> str:
        return f"{self.settings.app_url.rstrip('/')}/api/auth/callback"

    def get_user(self, user_id: Optional[str]) -> Optional[CurrentUser]:
        if not user_id:
            return None
        with get_database().get_session() as session:
            user = session.get(User, user_id)
            return CurrentUser.from_model(user) if user else None

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Full user row plus the institution, for /api/auth/me."""
        with get_database().get_session() as session:
            user = session.get(User, user_id)
            if user is None:
                return None
            profile = user.to_dict()
            profile["institution"] = (
                {
                    "id": user.institution.id,
                    "name": user.institution.name,
                    "short_name": user.institution.short_name,
                }
                if user.institution else None
            )
            return profile

    # ============================================================
    # Google OAuth
    # ============================================================

    def build_login_url(self, next_path: Optional[str] = None) -> str:
        if not self.settings.google_client_id:
            raise ConfigurationError("Google OAuth not configured")

        state = self.signer.sign({"next": _safe_next(next_path)}, token_type="oauth_state", expires_in=STATE_TTL)
        params = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": SIGN_IN_SCOPES,
            "state": state,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def complete_google_sign_in(self, code: Optional[str], state: Optional[str]) -> SignInResult:
        """
        Finish the authorization code flow.

        Raises:
            ForbiddenError: Email outside the allowed domain
            AuthenticationError: Anything else that stops sign-in
        """
        if not code or not state:
            raise AuthenticationError("Missing code or state")

        try:
            next_path = self.signer.verify(state, token_type="oauth_state").get("next")
        except (TokenExpired, TokenInvalid) as e:
            raise AuthenticationError(f"Invalid OAuth state: {e}") from e

        profile = self._fetch_google_profile(code)
        email = normalize_email(profile.get("email"))
        if not is_allowed_email(email):
            self.logger.warning(f"Sign-in refused for domain of {email}")
            raise ForbiddenError(get_domain_error_message())

        with get_database().get_session() as session:
            user = session.query(User).filter(User.email == email).first()
            if user is None:
                user = User(email=email, role="learner")
                session.add(user)
                self.logger.info(f"New user signed up: {email}")
            user.name = profile.get("name") or user.name
            user.avatar_url = profile.get("picture") or user.avatar_url
            session.flush()
            current = CurrentUser.from_model(user)

        if current.institution_id is None and not current.is_superadmin:
            redirect_to = "/select-institution"
        else:
            redirect_to = _safe_next(next_path)

        return SignInResult(
            user=current,
            token=create_session_token(current.id, current.email),
            redirect_to=redirect_to,
        )

    def _fetch_google_profile(self, code: str) -> Dict[str, Any]:
        try:
            token_response = requests.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.settings.google_client_id,
                    "client_secret": self.settings.google_client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            if not token_response.ok:
                raise AuthenticationError(f"Token exchange failed: {token_response.status_code}")

            access_token = token_response.json().get("access_token")
            profile_response = requests.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            self.logger.error(f"Google sign-in request failed: {e}")
            raise AuthenticationError("Google sign-in failed") from e

        if not profile_response.ok:
            raise AuthenticationError(f"Userinfo request failed: {profile_response.status_code}")
        return profile_response.json()

    # ============================================================
    # Password accounts
    # ============================================================

    def password_login(self, email: Optional[str], password: Optional[str]) -> SignInResult:
        if not email or not password:
            raise ValidationError("Email and password are required")

        with get_database().get_session() as session:
            user = session.query(User).filter(User.email == normalize_email(email)).first()
            if user is None or not verify_password(password, user.password_hash):
                self.logger.warning(f"Failed password login for {normalize_email(email)}")
                raise AuthenticationError("Invalid email or password")
            current = CurrentUser.from_model(user)

        return SignInResult(
            user=current,
            token=create_session_token(current.id, current.email),
            redirect_to="/dashboard",
        )


# Global service instance
_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get or create the global auth service."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
