"""Data source registration and status endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from geosource.adapters import AdapterFactory, TableApiAdapter, get_adapter_factory
from geosource.api.v1.common import data_response
from geosource.api.v1.oauth import get_oauth_coordinator
from geosource.core.db import get_session
from geosource.schemas import FieldDetectionRequest, SourceStatus, TableApiConfigCreate
from geosource.services.oauth_flow import OAuthCoordinator
from geosource.services.sheets_setup import detect_source_fields
from geosource.services.source_configs import configure_table_api

router = APIRouter(prefix="/sources", tags=["sources"])


@router.post("/table-api", status_code=status.HTTP_201_CREATED)
async def create_table_api_source(
    payload: TableApiConfigCreate,
    session: AsyncSession = Depends(get_session),
    factory: AdapterFactory = Depends(get_adapter_factory),
) -> dict[str, dict[str, Any]]:
    """Make a table-API base the tenant's active data source.

    The base must answer before anything is stored.
    """

    adapter = TableApiAdapter(
        tenant_id=payload.tenant_id,
        base_url=str(payload.base_url),
        base_id=payload.base_id,
        space_id=payload.space_id,
        access_token=payload.access_token,
    )
    await adapter.test_connection()

    config = await configure_table_api(session, factory.cipher, payload)
    factory.cache.invalidate(payload.tenant_id)
    return data_response(
        {"id": config.id, "tenantId": config.tenant_id, "sourceKind": config.source_kind.value}
    )


@router.post("/{tenant_id}/detect-fields")
async def detect_fields(
    tenant_id: str,
    payload: FieldDetectionRequest,
    session: AsyncSession = Depends(get_session),
    factory: AdapterFactory = Depends(get_adapter_factory),
) -> dict[str, Any]:
    proposal = await detect_source_fields(session, factory, tenant_id, payload.table_id)
    return {"mappings": proposal.model_dump()}


@router.get("/{tenant_id}/status")
async def source_status(
    tenant_id: str,
    coordinator: OAuthCoordinator = Depends(get_oauth_coordinator),
) -> dict[str, SourceStatus]:
    return data_response(await coordinator.describe_status(tenant_id))
