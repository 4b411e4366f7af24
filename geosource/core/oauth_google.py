"""Google OAuth provider client."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx

from geosource.core.config import Settings, get_settings
from geosource.core.db import utcnow
from geosource.core.errors import ConfigurationError, ProviderError

AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
DEFAULT_EXPIRES_IN = 3600

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenGrant:
    """Tokens returned by the provider's token endpoint."""

    access_token: str | None
    refresh_token: str | None
    expires_at: datetime
    error: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any], *, now: datetime | None = None) -> "TokenGrant":
        try:
            expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN
        return cls(
            access_token=data.get("access_token") or None,
            refresh_token=data.get("refresh_token") or None,
            expires_at=(now or utcnow()) + timedelta(seconds=expires_in),
            error=data.get("error"),
        )


class GoogleOAuthClient:
    """Handle OAuth URL generation and token endpoint calls."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    def require_configured(self) -> None:
        if not self.settings.google_oauth_configured:
            raise ConfigurationError("Google OAuth credentials are not fully configured")

    def build_authorize_url(self, *, state: str) -> str:
        """Return the Google OAuth authorization URL."""

        self.require_configured()
        params: dict[str, Any] = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.google_redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.settings.google_scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens."""

        self.require_configured()
        payload = {
            "code": code,
            "client_id": self.settings.google_client_id,
            "client_secret": self.settings.google_client_secret,
            "redirect_uri": self.settings.google_redirect_uri,
            "grant_type": "authorization_code",
        }
        return TokenGrant.from_response(await self._request_token(payload))

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Run the refresh grant for a stored refresh token."""

        self.require_configured()
        payload = {
            "refresh_token": refresh_token,
            "client_id": self.settings.google_client_id,
            "client_secret": self.settings.google_client_secret,
            "grant_type": "refresh_token",
        }
        return TokenGrant.from_response(await self._request_token(payload))

    async def fetch_user_email(self, access_token: str) -> str | None:
        """Return the email address of the account that granted access."""

        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.provider_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.get(USERINFO_URL, headers=headers)
        except httpx.HTTPError as exc:
            raise ProviderError("Unable to reach Google userinfo endpoint") from exc

        if response.status_code >= 400:
            raise ProviderError(
                "Google userinfo request failed",
                status_code=response.status_code,
                body=response.text,
            )
        return response.json().get("email")

    async def _request_token(self, payload: dict[str, str]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.provider_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(TOKEN_URL, data=payload)
        except httpx.HTTPError as exc:
            logger.error("Failed to communicate with Google OAuth token endpoint", exc_info=exc)
            raise ProviderError("Unable to reach Google OAuth endpoint") from exc

        if response.status_code >= 400:
            logger.error(
                "Google OAuth token request failed",
                extra={"status_code": response.status_code, "grant_type": payload.get("grant_type")},
            )
            raise ProviderError(
                "Google OAuth token request failed",
                status_code=response.status_code,
                body=response.text,
            )
        return response.json()


def get_google_oauth_client() -> GoogleOAuthClient:
    return GoogleOAuthClient(get_settings())
