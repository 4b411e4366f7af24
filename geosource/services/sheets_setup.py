"""Onboarding operations for choosing a source table and mapping its columns."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from geosource.adapters.factory import AdapterFactory
from geosource.core.errors import NotFoundError, ValidationError
from geosource.core.google_sheets import a1_range
from geosource.models import SourceKind
from geosource.schemas import FieldMappingProposal, FieldMappings, Pagination
from geosource.services.field_detector import detect_fields
from geosource.services.source_configs import require_active_config, update_active_config

PREVIEW_RANGE = "A1:Z10"
PREVIEW_ROWS = 5
DETECTION_RANGE = "A1:Z100"
SOURCE_SAMPLE_SIZE = 10

logger = logging.getLogger(__name__)


def _require(**values: str | None) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValidationError(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")


class SpreadsheetSetupService:
    """Let an administrator pick a spreadsheet and confirm its field mapping."""

    def __init__(self, session: AsyncSession, factory: AdapterFactory):
        self._session = session
        self._factory = factory

    async def list_spreadsheets(self, tenant_id: str) -> list[dict[str, Any]]:
        client = await self._factory.get_sheets_client(self._session, tenant_id)
        return await client.list_spreadsheets()

    async def list_sheets(self, tenant_id: str, spreadsheet_id: str | None) -> dict[str, Any]:
        _require(spreadsheetId=spreadsheet_id)
        client = await self._factory.get_sheets_client(self._session, tenant_id)
        spreadsheet = await client.get_spreadsheet(spreadsheet_id)
        sheets = []
        for sheet in spreadsheet.get("sheets", []):
            properties = sheet.get("properties", {})
            grid = properties.get("gridProperties", {})
            sheets.append(
                {
                    "sheetId": properties.get("sheetId"),
                    "title": properties.get("title"),
                    "rowCount": grid.get("rowCount"),
                    "columnCount": grid.get("columnCount"),
                    "index": properties.get("index"),
                }
            )
        return {
            "spreadsheetName": spreadsheet.get("properties", {}).get("title"),
            "sheets": sheets,
        }

    async def preview_rows(
        self, tenant_id: str, spreadsheet_id: str | None, sheet_name: str | None
    ) -> dict[str, Any]:
        _require(spreadsheetId=spreadsheet_id, sheetName=sheet_name)
        client = await self._factory.get_sheets_client(self._session, tenant_id)
        values = await client.get_values(spreadsheet_id, a1_range(sheet_name, PREVIEW_RANGE))
        return {
            "headers": values[0] if values else [],
            "rows": values[1 : PREVIEW_ROWS + 1],
            "totalRows": max(len(values) - 1, 0),
        }

    async def detect_fields(
        self, tenant_id: str, spreadsheet_id: str | None, sheet_name: str | None
    ) -> FieldMappingProposal:
        _require(spreadsheetId=spreadsheet_id, sheetName=sheet_name)
        client = await self._factory.get_sheets_client(self._session, tenant_id)
        values = await client.get_values(spreadsheet_id, a1_range(sheet_name, DETECTION_RANGE))
        if len(values) < 2:
            raise ValidationError("Sheet must have at least a header row and one data row")
        return detect_fields(values[0], values[1:])

    async def save_config(
        self,
        tenant_id: str,
        spreadsheet_id: str | None,
        sheet_name: str | None,
        field_mappings: FieldMappings | None,
    ) -> None:
        """Persist the confirmed sheet selection and field mapping."""

        _require(tenantId=tenant_id, spreadsheetId=spreadsheet_id, sheetName=sheet_name)
        if field_mappings is None:
            raise ValidationError("fieldMappings is required")

        config = await require_active_config(self._session, tenant_id)
        if config.source_kind is not SourceKind.SPREADSHEET:
            raise ValidationError("The tenant is not connected to a spreadsheet account")

        values = {
            "spreadsheet_id": spreadsheet_id,
            "sheet_name": sheet_name,
            "field_mappings": field_mappings.model_dump(exclude_none=True),
        }
        if not await update_active_config(self._session, config.id, values):
            raise NotFoundError("The spreadsheet connection changed. Please authenticate again.")
        await self._session.refresh(config)
        self._factory.cache.invalidate(tenant_id)
        logger.info(
            "Spreadsheet configuration saved",
            extra={"tenant_id": tenant_id, "operation": "save_config", "sheet_name": sheet_name},
        )


async def detect_source_fields(
    session: AsyncSession, factory: AdapterFactory, tenant_id: str, table: str | None
) -> FieldMappingProposal:
    """Propose a field mapping for a table of whichever source the tenant uses.

    Headers come from the adapter schema and values from its first records.
    """

    adapter = await factory.get_adapter(session, tenant_id)
    headers = [column.name for column in await adapter.get_schema(table)]
    if not headers:
        raise ValidationError("The table has no columns")

    page = await adapter.list_records(table, Pagination(limit=SOURCE_SAMPLE_SIZE))
    rows = [[record.fields.get(header, "") for header in headers] for record in page.records]
    logger.info(
        "Field detection sampled",
        extra={
            "tenant_id": tenant_id,
            "operation": "detect_source_fields",
            "source_kind": adapter.source_kind.value,
            "sample_rows": len(rows),
        },
    )
    return detect_fields(headers, rows)
