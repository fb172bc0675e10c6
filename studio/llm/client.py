"""
Gemini client for bring-your-own-subscription (BYOS) calls.

Every Gemini call in the studio runs on the caller's own Google account,
never on a server-wide key. Two credential shapes are supported:

1. oauth_json - access/refresh tokens from the Gemini consent flow.
   Calls go to the REST `:generateContent` endpoint with a Bearer token;
   an expired access token is refreshed first.
2. token - a plain Gemini API key. Calls go through the
   `google.generativeai` SDK.

Why a separate client class:
1. Encapsulation - credential handling hidden from the coach and services
2. Testability - `requests.post` and the SDK are easy to patch
3. One result shape - callers get a ProviderResponse either way
"""
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

import google.generativeai as genai
import requests

from studio.core.config import get_settings
from studio.core.exceptions import CredentialError, LLMError
from studio.core.logging_config import LoggerMixin

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

AVAILABLE_MODELS = [
    "gemini-2.5-pro",
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-1.5-pro",
    "gemini-1.5-flash",
]

VALIDATION_PROMPT = 'Say "OK" and nothing else.'

REQUEST_TIMEOUT_SECONDS = 60


@dataclass
class GeminiCredentials:
    """OAuth credentials as stored (encrypted) in provider_credentials."""
    access_token: str
    refresh_token: Optional[str] = None
    token_uri: str = GOOGLE_TOKEN_URI
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    expiry: Optional[str] = None
    scopes: List[str] = field(default_factory=list)

    def is_expired(self, skew_seconds: int = 60) -> bool:
        if not self.expiry:
            return False
        try:
            expires = datetime.fromisoformat(self.expiry.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            return False
        return datetime.utcnow() + timedelta(seconds=skew_seconds) >= expires

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class ProviderResponse:
    content: str
    model: str
    tokens_used: Optional[int] = None
    finish_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_gemini_credentials(json_content: str) -> GeminiCredentials:
    """
    Parse a stored or pasted OAuth credentials document.

    Raises:
        CredentialError: "Invalid JSON format" or "Invalid credentials format"
    """
    try:
        parsed = json.loads(json_content)
    except (TypeError, ValueError) as e:
        raise CredentialError("Invalid JSON format") from e

    if not isinstance(parsed, dict) or not parsed.get("access_token"):
        raise CredentialError("Invalid credentials format")

    return GeminiCredentials(
        access_token=parsed["access_token"],
        refresh_token=parsed.get("refresh_token"),
        token_uri=parsed.get("token_uri") or GOOGLE_TOKEN_URI,
        client_id=parsed.get("client_id"),
        client_secret=parsed.get("client_secret"),
        expiry=parsed.get("expiry"),
        scopes=parsed.get("scopes") or [],
    )


def _to_contents(prompt: str, history: Optional[List[Dict[str, str]]]) -> List[Dict[str, Any]]:
    """Map chat history to Gemini `contents`; non-user roles become `model`."""
    contents = []
    for msg in history or []:
        role = "user" if msg.get("role") == "user" else "model"
        contents.append({"role": role, "parts": [{"text": msg.get("content", "")}]})
    contents.append({"role": "user", "parts": [{"text": prompt}]})
    return contents


class GeminiProvider(LoggerMixin):
    """
    Gemini access on behalf of one user.

    Example:
        >>> provider = GeminiProvider(parse_gemini_credentials(stored_json))
        >>> provider.query("Hello", system_prompt="Be brief").content
    """
    name = "gemini"

    def __init__(
        self,
        credentials: Union[GeminiCredentials, str],
        on_token_refresh: Optional[Callable[[GeminiCredentials], None]] = None
    ):
        self.credentials = credentials
        self.on_token_refresh = on_token_refresh
        self.settings = get_settings()

    @property
    def uses_oauth(self) -> bool:
        return isinstance(self.credentials, GeminiCredentials)

    def get_available_models(self) -> List[str]:
        return list(AVAILABLE_MODELS)

    def query(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_k: Optional[int] = None,
        top_p: Optional[float] = None,
        response_mime_type: Optional[str] = None
    ) -> ProviderResponse:
        """
        Send one prompt (plus optional history) and return the first candidate.

        Raises:
            LLMError: On any transport or API failure
        """
        model = model or self.settings.gemini_default_model
        generation_config: Dict[str, Any] = {
            "maxOutputTokens": max_tokens or self.settings.llm_max_tokens,
            "temperature": self.settings.llm_temperature if temperature is None else temperature,
        }
        if top_k is not None:
            generation_config["topK"] = top_k
        if top_p is not None:
            generation_config["topP"] = top_p
        if response_mime_type:
            generation_config["responseMimeType"] = response_mime_type

        if self.uses_oauth:
            return self._query_rest(prompt, system_prompt, history, model, generation_config)
        return self._query_sdk(prompt, system_prompt, history, model, generation_config)

    def _query_rest(
        self,
        prompt: str,
        system_prompt: Optional[str],
        history: Optional[List[Dict[str, str]]],
        model: str,
        generation_config: Dict[str, Any]
    ) -> ProviderResponse:
        if self.credentials.is_expired() and self.credentials.refresh_token:
            self.refresh_access_token()

        body: Dict[str, Any] = {
            "contents": _to_contents(prompt, history),
            "generationConfig": generation_config,
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        url = f"{GEMINI_API_BASE}/models/{model}:generateContent"
        try:
            response = requests.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {self.credentials.access_token}"},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            self.logger.error(f"Gemini request failed: {e}")
            raise LLMError("Gemini API unreachable", details=str(e)) from e

        if not response.ok:
            self.logger.warning(f"Gemini API error {response.status_code} for model {model}")
            raise LLMError(f"Gemini API error: {response.status_code}", details=response.text[:500])

        data = response.json()
        candidates = data.get("candidates") or []
        if not candidates:
            raise LLMError("No response from Gemini")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or [{}]
        return ProviderResponse(
            content=parts[0].get("text", ""),
            model=model,
            tokens_used=(data.get("usageMetadata") or {}).get("totalTokenCount"),
            finish_reason=candidate.get("finishReason"),
        )

    def _query_sdk(
        self,
        prompt: str,
        system_prompt: Optional[str],
        history: Optional[List[Dict[str, str]]],
        model: str,
        generation_config: Dict[str, Any]
    ) -> ProviderResponse:
        try:
            # configure() is process-global SDK state; the handlers calling this never
            # await between here and send_message, so concurrent keys cannot interleave
            genai.configure(api_key=self.credentials)
            model_instance = genai.GenerativeModel(
                model_name=model,
                system_instruction=system_prompt,
            )

            # SDK wants plain-string parts for history
            chat_history = [
                {"role": c["role"], "parts": [c["parts"][0]["text"]]}
                for c in _to_contents(prompt, history)[:-1]
            ]
            config = genai.types.GenerationConfig(
                max_output_tokens=generation_config["maxOutputTokens"],
                temperature=generation_config["temperature"],
                top_k=generation_config.get("topK"),
                top_p=generation_config.get("topP"),
                response_mime_type=generation_config.get("responseMimeType"),
            )

            chat = model_instance.start_chat(history=chat_history)
            response = chat.send_message(prompt, generation_config=config)
            text = response.text
        except Exception as e:
            self.logger.warning(f"Gemini SDK call failed for model {model}: {e}")
            raise LLMError("Gemini API error", details=str(e)) from e

        usage = getattr(response, "usage_metadata", None)
        candidates = getattr(response, "candidates", None) or []
        finish_reason = getattr(candidates[0], "finish_reason", None) if candidates else None
        return ProviderResponse(
            content=text or "",
            model=model,
            tokens_used=getattr(usage, "total_token_count", None),
            finish_reason=getattr(finish_reason, "name", None) or (str(finish_reason) if finish_reason else None),
        )

    def refresh_access_token(self) -> GeminiCredentials:
        """
        Exchange the refresh token for a new access token.

        Raises:
            LLMError: When Google rejects the refresh
        """
        creds = self.credentials
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": creds.refresh_token,
            "client_id": creds.client_id or self.settings.google_client_id,
            "client_secret": creds.client_secret or self.settings.google_client_secret,
        }
        try:
            response = requests.post(creds.token_uri, data=payload, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise LLMError("Token refresh failed", details=str(e)) from e

        if not response.ok:
            self.logger.warning(f"Gemini token refresh rejected: {response.status_code}")
            raise LLMError("Token refresh failed", details=response.text[:500])

        tokens = response.json()
        access_token = tokens.get("access_token")
        if not access_token:
            self.logger.warning("Gemini token refresh returned no access_token")
            raise LLMError("Token refresh failed", details="Response carried no access_token")
        creds.access_token = access_token
        if tokens.get("expires_in"):
            creds.expiry = (datetime.utcnow() + timedelta(seconds=int(tokens["expires_in"]))).isoformat()
        if tokens.get("refresh_token"):
            creds.refresh_token = tokens["refresh_token"]

        self.logger.info("Gemini access token refreshed")
        if self.on_token_refresh is not None:
            self.on_token_refresh(creds)
        return creds

    def validate_credentials(self) -> bool:
        """Cheap live call; False instead of raising on failure."""
        try:
            self.query(VALIDATION_PROMPT, max_tokens=10)
            return True
        except LLMError as e:
            self.logger.warning(f"Gemini credential validation failed: {e.message}")
            return False
