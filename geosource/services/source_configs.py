"""Persistence helpers for the per-tenant active source configuration."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from geosource.core.crypto import CredentialCipher
from geosource.core.errors import NotFoundError, ProviderError
from geosource.models import SourceConfig, SourceKind
from geosource.schemas import TableApiConfigCreate

REPLACE_ATTEMPTS = 2

logger = logging.getLogger(__name__)


async def get_active_config(session: AsyncSession, tenant_id: str) -> SourceConfig | None:
    """Return the active configuration for ``tenant_id`` if one exists."""

    result = await session.execute(
        select(SourceConfig)
        .where(SourceConfig.tenant_id == tenant_id)
        .where(SourceConfig.is_active.is_(True))
        .order_by(SourceConfig.id.desc())
        .limit(1)
    )
    return result.scalars().first()


async def require_active_config(session: AsyncSession, tenant_id: str) -> SourceConfig:
    config = await get_active_config(session, tenant_id)
    if config is None:
        raise NotFoundError(f"No active data source configuration for tenant {tenant_id}")
    return config


async def replace_active_config(
    session: AsyncSession, tenant_id: str, values: dict[str, Any]
) -> SourceConfig:
    """Deactivate the tenant's active row and insert a new one in one transaction.

    A concurrent writer that commits first trips the partial unique index; the
    loser rolls back and repeats the deactivate-then-insert against the winner.
    """

    attempt = 1
    while True:
        await session.execute(
            update(SourceConfig)
            .where(SourceConfig.tenant_id == tenant_id)
            .where(SourceConfig.is_active.is_(True))
            .values(is_active=False)
        )
        config = SourceConfig(tenant_id=tenant_id, is_active=True, **values)
        session.add(config)
        try:
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            logger.warning(
                "Concurrent source configuration write",
                extra={"tenant_id": tenant_id, "attempt": attempt},
            )
            if attempt >= REPLACE_ATTEMPTS:
                raise ProviderError("Could not store data source configuration") from exc
            attempt += 1
            continue
        await session.refresh(config)
        return config


async def update_active_config(
    session: AsyncSession, config_id: int, values: dict[str, Any]
) -> bool:
    """Update ``config_id`` only while it is still the active row.

    Returns ``False`` when the row was deactivated by a newer configuration,
    in which case nothing is written.
    """

    result = await session.execute(
        update(SourceConfig)
        .where(SourceConfig.id == config_id)
        .where(SourceConfig.is_active.is_(True))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        return False
    await session.commit()
    return True


async def configure_table_api(
    session: AsyncSession,
    cipher: CredentialCipher,
    payload: TableApiConfigCreate,
) -> SourceConfig:
    """Make the table API the tenant's active source, replacing any prior row."""

    values = {
        "source_kind": SourceKind.TABLE_API,
        "base_url": str(payload.base_url).rstrip("/"),
        "space_id": payload.space_id,
        "base_id": payload.base_id,
        "access_token_encrypted": cipher.encrypt(payload.access_token),
        "field_mappings": (
            payload.field_mappings.model_dump(exclude_none=True) if payload.field_mappings else None
        ),
    }
    config = await replace_active_config(session, payload.tenant_id, values)
    logger.info(
        "Table API source configured",
        extra={"tenant_id": payload.tenant_id, "operation": "configure_table_api"},
    )
    return config
