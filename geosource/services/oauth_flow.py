"""Authorization-code flow for connecting a tenant's spreadsheet account.

The flow moves a tenant through three states::

    no_config --start+callback--> active_unconfigured --save_config--> active_configured

Token expiry is handled by :meth:`OAuthCoordinator.refresh` without changing
that state. A refresh the provider rejects means the tenant has to run
``start``/``callback`` again.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import urlencode

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from geosource.core.config import Settings, get_settings
from geosource.core.crypto import CredentialCipher
from geosource.core.db import as_utc, utcnow
from geosource.core.errors import (
    ConfigurationError,
    DecryptionError,
    ProviderError,
    RefreshError,
    TokenExchangeError,
    ValidationError,
)
from geosource.core.oauth_google import GoogleOAuthClient
from geosource.models import SourceKind
from geosource.schemas import SourceStatus
from geosource.services.oauth_state import OAuthStateStore
from geosource.services.source_configs import (
    get_active_config,
    replace_active_config,
    require_active_config,
    update_active_config,
)

STATE_NO_CONFIG = "no_config"
STATE_ACTIVE_UNCONFIGURED = "active_unconfigured"
STATE_ACTIVE_CONFIGURED = "active_configured"

_EMAIL = TypeAdapter(EmailStr)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallbackResult:
    tenant_id: str
    email: str
    redirect_url: str


class OAuthCoordinator:
    """Drive the start → callback → refresh lifecycle for one request."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Settings | None = None,
        oauth_client: GoogleOAuthClient | None = None,
        cipher: CredentialCipher | None = None,
    ):
        self._session = session
        self._settings = settings or get_settings()
        self._oauth = oauth_client or GoogleOAuthClient(self._settings)
        self._cipher = cipher
        self._states = OAuthStateStore(
            session, ttl=timedelta(minutes=self._settings.oauth_state_ttl_minutes)
        )

    @property
    def cipher(self) -> CredentialCipher:
        if self._cipher is None:
            self._cipher = CredentialCipher(self._settings.encryption_key)
        return self._cipher

    def _require_configured(self) -> None:
        self._oauth.require_configured()
        if not self._settings.encryption_key:
            raise ConfigurationError("Encryption key is not configured")

    async def start(self, tenant_id: str | None, admin_email: str | None) -> str:
        """Create a state record and return the provider authorization URL."""

        if not tenant_id or not admin_email:
            raise ValidationError("tenantId and adminEmail are required")
        try:
            admin_email = str(_EMAIL.validate_python(admin_email))
        except PydanticValidationError as exc:
            raise ValidationError("adminEmail is not a valid email address") from exc
        self._require_configured()

        await self._states.purge_expired()
        token = await self._states.create(
            tenant_id, admin_email, self._settings.google_redirect_uri
        )
        logger.info("OAuth flow started", extra={"tenant_id": tenant_id, "operation": "start"})
        return self._oauth.build_authorize_url(state=token)

    async def callback(self, code: str | None, state: str | None) -> CallbackResult:
        """Validate ``state``, exchange ``code`` and store the encrypted tokens."""

        if not code:
            raise ValidationError("Missing authorization code")
        record = await self._states.consume(state or "")
        self._require_configured()

        try:
            grant = await self._oauth.exchange_code(code)
        except ProviderError as exc:
            logger.warning(
                "Authorization code exchange rejected",
                extra={
                    "tenant_id": record.tenant_id,
                    "operation": "callback",
                    "error_class": type(exc).__name__,
                    "status_code": exc.provider_status,
                },
            )
            raise TokenExchangeError(
                "The provider rejected the authorization code. Please reconnect your account."
            ) from exc

        if not grant.access_token:
            logger.warning(
                "Token response missing access_token",
                extra={"tenant_id": record.tenant_id, "operation": "callback"},
            )
            raise TokenExchangeError("The provider did not return an access token")

        email = await self._resolve_email(grant.access_token, record.admin_email, record.tenant_id)
        values = {
            "source_kind": SourceKind.SPREADSHEET,
            "spreadsheet_id": "",
            "sheet_name": "",
            "access_token_encrypted": self.cipher.encrypt(grant.access_token),
            "refresh_token_encrypted": (
                self.cipher.encrypt(grant.refresh_token) if grant.refresh_token else None
            ),
            "token_expires_at": grant.expires_at,
            "oauth_user_email": email,
            "field_mappings": None,
        }
        await replace_active_config(self._session, record.tenant_id, values)
        logger.info(
            "Spreadsheet account connected",
            extra={"tenant_id": record.tenant_id, "operation": "callback"},
        )

        query = urlencode({"oauth": "success", "email": email, "tenant": record.tenant_id})
        separator = "&" if "?" in self._settings.oauth_continuation_url else "?"
        return CallbackResult(
            tenant_id=record.tenant_id,
            email=email,
            redirect_url=f"{self._settings.oauth_continuation_url}{separator}{query}",
        )

    async def abandon(self, state: str | None, provider_error: str) -> None:
        """Drop the state of a flow the user declined at the consent screen."""

        discarded = await self._states.discard(state) if state else False
        logger.info(
            "OAuth consent not granted",
            extra={"operation": "callback", "provider_error": provider_error, "state_found": discarded},
        )

    async def refresh(self, tenant_id: str) -> datetime:
        """Obtain a new access token for the tenant's active configuration.

        Nothing is written unless the provider returns an access token and the
        configuration is still the active one.
        """

        if not tenant_id:
            raise ValidationError("tenantId is required")
        config = await require_active_config(self._session, tenant_id)
        if config.source_kind is not SourceKind.SPREADSHEET:
            raise ValidationError("Only spreadsheet sources use OAuth refresh")
        if not config.refresh_token_encrypted:
            raise RefreshError("No refresh token is stored for this account")
        self._oauth.require_configured()

        config_id = config.id
        try:
            refresh_token = self.cipher.decrypt(config.refresh_token_encrypted)
        except DecryptionError as exc:
            logger.error(
                "Stored refresh token could not be decrypted",
                extra={"tenant_id": tenant_id, "operation": "refresh", "error_class": type(exc).__name__},
            )
            raise
        try:
            grant = await self._oauth.refresh_access_token(refresh_token)
        except ProviderError as exc:
            logger.warning(
                "Token refresh rejected",
                extra={
                    "tenant_id": tenant_id,
                    "operation": "refresh",
                    "error_class": type(exc).__name__,
                    "status_code": exc.provider_status,
                },
            )
            if exc.provider_status is not None and 400 <= exc.provider_status < 500:
                raise RefreshError("The refresh token was rejected by the provider") from exc
            raise

        if not grant.access_token:
            logger.warning(
                "Refresh response missing access_token",
                extra={"tenant_id": tenant_id, "operation": "refresh", "error": grant.error},
            )
            raise RefreshError("The provider did not return an access token")

        values = {
            "access_token_encrypted": self.cipher.encrypt(grant.access_token),
            "token_expires_at": grant.expires_at,
        }
        if grant.refresh_token:
            values["refresh_token_encrypted"] = self.cipher.encrypt(grant.refresh_token)

        if not await update_active_config(self._session, config_id, values):
            logger.warning(
                "Configuration superseded during refresh",
                extra={"tenant_id": tenant_id, "operation": "refresh"},
            )
            raise RefreshError("The account was reconnected while refreshing")

        logger.info("Access token refreshed", extra={"tenant_id": tenant_id, "operation": "refresh"})
        return grant.expires_at

    async def describe_status(self, tenant_id: str) -> SourceStatus:
        """Report where the tenant is in the connection lifecycle."""

        config = await get_active_config(self._session, tenant_id)
        if config is None:
            return SourceStatus(tenant_id=tenant_id, state=STATE_NO_CONFIG)

        expires_at = as_utc(config.token_expires_at)
        needs_refresh = (
            config.source_kind is SourceKind.SPREADSHEET
            and expires_at is not None
            and utcnow() >= expires_at
        )
        return SourceStatus(
            tenant_id=tenant_id,
            state=STATE_ACTIVE_CONFIGURED if config.is_configured else STATE_ACTIVE_UNCONFIGURED,
            source_kind=config.source_kind.value,
            spreadsheet_id=config.spreadsheet_id or None,
            sheet_name=config.sheet_name or None,
            oauth_user_email=config.oauth_user_email,
            token_expires_at=expires_at,
            needs_refresh=needs_refresh,
        )

    async def _resolve_email(self, access_token: str, fallback: str, tenant_id: str) -> str:
        try:
            email = await self._oauth.fetch_user_email(access_token)
        except ProviderError as exc:
            logger.warning(
                "Could not fetch connected account email",
                extra={"tenant_id": tenant_id, "operation": "callback", "error_class": type(exc).__name__},
            )
            return fallback
        return email or fallback
