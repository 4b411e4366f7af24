"""Spreadsheet selection and field-mapping endpoints used during onboarding."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from geosource.adapters import AdapterFactory, get_adapter_factory
from geosource.core.db import get_session
from geosource.schemas import FieldMappingProposal, SaveConfigRequest, SheetSelection
from geosource.services.sheets_setup import SpreadsheetSetupService

router = APIRouter(prefix="/sheets", tags=["sheets"])


def get_setup_service(
    session: AsyncSession = Depends(get_session),
    factory: AdapterFactory = Depends(get_adapter_factory),
) -> SpreadsheetSetupService:
    return SpreadsheetSetupService(session, factory)


@router.get("/{tenant_id}/spreadsheets")
async def list_spreadsheets(
    tenant_id: str,
    service: SpreadsheetSetupService = Depends(get_setup_service),
) -> dict[str, list[dict[str, Any]]]:
    return {"spreadsheets": await service.list_spreadsheets(tenant_id)}


@router.get("/{tenant_id}/sheets")
async def list_sheets(
    tenant_id: str,
    spreadsheet_id: str | None = Query(default=None, alias="spreadsheetId"),
    service: SpreadsheetSetupService = Depends(get_setup_service),
) -> dict[str, Any]:
    return await service.list_sheets(tenant_id, spreadsheet_id)


@router.get("/{tenant_id}/preview")
async def preview_rows(
    tenant_id: str,
    spreadsheet_id: str | None = Query(default=None, alias="spreadsheetId"),
    sheet_name: str | None = Query(default=None, alias="sheetName"),
    service: SpreadsheetSetupService = Depends(get_setup_service),
) -> dict[str, Any]:
    """Return the header and the first rows of a sheet."""

    return await service.preview_rows(tenant_id, spreadsheet_id, sheet_name)


@router.post("/{tenant_id}/detect-fields")
async def detect_fields(
    tenant_id: str,
    payload: SheetSelection,
    service: SpreadsheetSetupService = Depends(get_setup_service),
) -> dict[str, Any]:
    """Propose a field mapping for the selected sheet."""

    proposal: FieldMappingProposal = await service.detect_fields(
        tenant_id, payload.spreadsheet_id, payload.sheet_name
    )
    return {"mappings": proposal.model_dump()}


@router.post("/{tenant_id}/save-config")
async def save_config(
    tenant_id: str,
    payload: SaveConfigRequest,
    service: SpreadsheetSetupService = Depends(get_setup_service),
) -> dict[str, bool]:
    await service.save_config(
        tenant_id, payload.spreadsheet_id, payload.sheet_name, payload.field_mappings
    )
    return {"success": True}
