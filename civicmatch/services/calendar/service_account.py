"""
Google service account authentication for the Calendar API.

Signs a JWT with the service account key (RS256) and exchanges it for an
access token using the OAuth 2.0 jwt-bearer grant. Tokens are cached until
shortly before they expire.
"""

import asyncio
import base64
import binascii
import json
import time
from dataclasses import dataclass

import httpx
import jwt

from civicmatch.config import Settings, settings
from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar",
]

REQUEST_TIMEOUT = 15
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
ASSERTION_LIFETIME_SECONDS = 3600
EXPIRY_MARGIN_SECONDS = 60


class GoogleAuthError(Exception):
    """Service account credentials are missing, malformed or rejected."""

    def __init__(self, message: str, status_code: int | None = None, recoverable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable


def normalize_private_key(raw: str) -> str:
    """
    Turn an env-provided key into PEM.

    Keys are commonly stored with literal "\\n" sequences or base64 encoded
    as a whole; both forms are accepted.
    """
    key = raw.strip().strip('"').replace("\\n", "\n")
    if "-----BEGIN" in key:
        return key
    try:
        decoded = base64.b64decode(key, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise GoogleAuthError("Private key is neither PEM nor base64 encoded PEM") from e
    if "-----BEGIN" not in decoded:
        raise GoogleAuthError("Decoded private key is not PEM")
    return decoded.replace("\\n", "\n")


@dataclass(slots=True, frozen=True)
class ServiceAccountCredentials:
    client_email: str
    private_key: str
    token_uri: str = GOOGLE_TOKEN_URL

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "ServiceAccountCredentials":
        """Read credentials from the JSON blob or the email/key pair."""
        if config.GOOGLE_SERVICE_ACCOUNT_JSON:
            try:
                info = json.loads(config.GOOGLE_SERVICE_ACCOUNT_JSON)
            except json.JSONDecodeError as e:
                raise GoogleAuthError("GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON") from e
            email, key = info.get("client_email"), info.get("private_key")
            if not email or not key:
                raise GoogleAuthError("Service account JSON lacks client_email or private_key")
            return cls(
                client_email=email,
                private_key=normalize_private_key(key),
                token_uri=info.get("token_uri") or GOOGLE_TOKEN_URL,
            )

        if config.GOOGLE_SERVICE_ACCOUNT_EMAIL and config.GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY:
            return cls(
                client_email=config.GOOGLE_SERVICE_ACCOUNT_EMAIL,
                private_key=normalize_private_key(config.GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY),
            )

        raise GoogleAuthError("Google service account credentials not configured")


class ServiceAccountTokenProvider:
    """Issues and caches Calendar API access tokens for a service account."""

    def __init__(self, credentials: ServiceAccountCredentials, scopes: list[str] | None = None):
        self.credentials = credentials
        self.scopes = scopes or CALENDAR_SCOPES
        self._access_token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _build_assertion(self, now: int) -> str:
        claims = {
            "iss": self.credentials.client_email,
            "scope": " ".join(self.scopes),
            "aud": self.credentials.token_uri,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
        }
        try:
            return jwt.encode(claims, self.credentials.private_key, algorithm="RS256")
        except (ValueError, jwt.PyJWTError) as e:
            raise GoogleAuthError(f"Failed to sign service account assertion: {e}") from e

    async def get_access_token(self) -> str:
        async with self._lock:
            if self._access_token and time.time() < self._expires_at - EXPIRY_MARGIN_SECONDS:
                return self._access_token

            now = int(time.time())
            response = await self._post_with_retry(
                {"grant_type": JWT_BEARER_GRANT, "assertion": self._build_assertion(now)}
            )
            if not response.is_success:
                logger.error(
                    "Service account token exchange failed",
                    status_code=response.status_code,
                    client_email=self.credentials.client_email,
                )
                raise GoogleAuthError(
                    f"Token exchange failed (HTTP {response.status_code})",
                    status_code=response.status_code,
                    recoverable=response.status_code in RETRY_STATUS_CODES,
                )

            data = response.json()
            self._access_token = data["access_token"]
            self._expires_at = now + int(data.get("expires_in", ASSERTION_LIFETIME_SECONDS))
            logger.debug("Service account access token issued", expires_in=data.get("expires_in"))
            return self._access_token

    async def _post_with_retry(self, data: dict) -> httpx.Response:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            for attempt in range(1, MAX_RETRIES + 1):
                try:
                    response = await client.post(
                        self.credentials.token_uri, data=data, headers=headers
                    )
                    if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                        wait_time = BACKOFF_FACTOR**attempt
                        logger.warning(
                            "Google token endpoint transient status",
                            status_code=response.status_code,
                            attempt=attempt,
                            wait_time=wait_time,
                        )
                        await asyncio.sleep(wait_time)
                        continue
                    return response

                except httpx.RequestError as e:
                    if attempt == MAX_RETRIES:
                        raise GoogleAuthError(
                            f"Token request failed: {e}", recoverable=True
                        ) from e
                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "Google token request error, retrying",
                        attempt=attempt,
                        wait_time=wait_time,
                        error=str(e),
                    )
                    await asyncio.sleep(wait_time)

        raise GoogleAuthError("Token request retry loop exhausted", recoverable=True)
