"""Resolve a tenant to the adapter for its active data source."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from geosource.adapters.base import DataAdapter
from geosource.adapters.cache import SheetRowCache
from geosource.adapters.sheets import SpreadsheetAdapter
from geosource.adapters.table_api import TableApiAdapter
from geosource.core.config import Settings, get_settings
from geosource.core.crypto import CredentialCipher
from geosource.core.db import as_utc, utcnow
from geosource.core.errors import DecryptionError, NotFoundError, ValidationError
from geosource.core.google_sheets import GoogleSheetsClient
from geosource.core.oauth_google import GoogleOAuthClient
from geosource.models import SourceConfig, SourceKind
from geosource.schemas import FieldMappings
from geosource.services.oauth_flow import OAuthCoordinator
from geosource.services.source_configs import require_active_config

logger = logging.getLogger(__name__)


class AdapterFactory:
    """Build adapters from the active :class:`SourceConfig` of a tenant.

    Spreadsheet access tokens past their expiry are refreshed before the
    adapter is returned. Concurrent callers for the same tenant in this
    process wait on one refresh instead of each running their own.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        oauth_client: GoogleOAuthClient | None = None,
        cipher: CredentialCipher | None = None,
        cache: SheetRowCache | None = None,
        sheets_client_factory: Callable[[str], GoogleSheetsClient] | None = None,
    ):
        self._settings = settings or get_settings()
        self._oauth = oauth_client or GoogleOAuthClient(self._settings)
        self._cipher = cipher
        self.cache = cache or SheetRowCache(self._settings.sheets_cache_seconds)
        self._sheets_client_factory = sheets_client_factory or (
            lambda token: GoogleSheetsClient(token, self._settings)
        )
        self._refresh_locks: dict[str, asyncio.Lock] = {}
        self._refresh_waiters: dict[str, int] = {}

    @property
    def cipher(self) -> CredentialCipher:
        if self._cipher is None:
            self._cipher = CredentialCipher(self._settings.encryption_key)
        return self._cipher

    async def get_adapter(self, session: AsyncSession, tenant_id: str) -> DataAdapter:
        """Return the adapter for the tenant's active source."""

        if not tenant_id:
            raise ValidationError("tenantId is required")
        config = await require_active_config(session, tenant_id)

        match config.source_kind:
            case SourceKind.TABLE_API:
                return self._table_api_adapter(config)
            case SourceKind.SPREADSHEET:
                config, access_token = await self._fresh_access_token(session, config)
                return SpreadsheetAdapter(
                    tenant_id=tenant_id,
                    spreadsheet_id=config.spreadsheet_id,
                    sheet_name=config.sheet_name,
                    field_mappings=FieldMappings.model_validate(config.field_mappings or {}),
                    client=self._sheets_client_factory(access_token),
                    cache=self.cache,
                )
        raise ValidationError(f"Unsupported data source type: {config.source_kind}")  # pragma: no cover

    async def get_sheets_client(self, session: AsyncSession, tenant_id: str) -> GoogleSheetsClient:
        """Return a Sheets client authorised with an unexpired access token."""

        if not tenant_id:
            raise ValidationError("tenantId is required")
        config = await require_active_config(session, tenant_id)
        if config.source_kind is not SourceKind.SPREADSHEET:
            raise ValidationError("The tenant is not connected to a spreadsheet account")
        _, access_token = await self._fresh_access_token(session, config)
        return self._sheets_client_factory(access_token)

    def _table_api_adapter(self, config: SourceConfig) -> TableApiAdapter:
        if not config.base_url or not config.base_id or not config.access_token_encrypted:
            raise NotFoundError("Table API configuration is incomplete")
        return TableApiAdapter(
            tenant_id=config.tenant_id,
            base_url=config.base_url,
            base_id=config.base_id,
            space_id=config.space_id,
            access_token=self._decrypt(config, config.access_token_encrypted, "get_adapter"),
            field_mappings=FieldMappings.model_validate(config.field_mappings or {}),
            settings=self._settings,
        )

    @staticmethod
    def _is_expired(config: SourceConfig) -> bool:
        expires_at = as_utc(config.token_expires_at)
        return expires_at is not None and utcnow() >= expires_at

    async def _fresh_access_token(
        self, session: AsyncSession, config: SourceConfig
    ) -> tuple[SourceConfig, str]:
        tenant_id = config.tenant_id
        if self._is_expired(config):
            async with self._refresh_lock(tenant_id):
                await session.refresh(config)
                if not config.is_active:
                    config = await require_active_config(session, tenant_id)
                if self._is_expired(config):
                    logger.info(
                        "Refreshing expired access token",
                        extra={"tenant_id": tenant_id, "operation": "get_adapter"},
                    )
                    coordinator = OAuthCoordinator(
                        session, settings=self._settings, oauth_client=self._oauth, cipher=self.cipher
                    )
                    await coordinator.refresh(tenant_id)
                    await session.refresh(config)

        if not config.access_token_encrypted:
            raise NotFoundError("No access token is stored for this tenant")
        return config, self._decrypt(config, config.access_token_encrypted, "get_adapter")

    def _decrypt(self, config: SourceConfig, blob: str, operation: str) -> str:
        try:
            return self.cipher.decrypt(blob)
        except DecryptionError as exc:
            logger.error(
                "Stored credential could not be decrypted",
                extra={
                    "tenant_id": config.tenant_id,
                    "operation": operation,
                    "error_class": type(exc).__name__,
                },
            )
            raise

    @asynccontextmanager
    async def _refresh_lock(self, tenant_id: str) -> AsyncIterator[None]:
        # The lock is dropped once no caller holds or awaits it.
        lock = self._refresh_locks.setdefault(tenant_id, asyncio.Lock())
        self._refresh_waiters[tenant_id] = self._refresh_waiters.get(tenant_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refresh_waiters[tenant_id] -= 1
            if not self._refresh_waiters[tenant_id]:
                del self._refresh_waiters[tenant_id]
                del self._refresh_locks[tenant_id]


@lru_cache()
def get_adapter_factory() -> AdapterFactory:
    """Return the process-wide factory that owns the spreadsheet row cache."""
    return AdapterFactory(get_settings())
