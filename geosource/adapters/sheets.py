"""Spreadsheet backend: each sheet of the selected spreadsheet is a table."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping, Sequence

from geosource.adapters.base import apply_geometry, extract_geometry
from geosource.adapters.cache import CachedSheet, SheetRowCache
from geosource.core.errors import NotFoundError, ValidationError
from geosource.core.google_sheets import GoogleSheetsClient, a1_range, column_letter
from geosource.models import SourceKind
from geosource.schemas import (
    ColumnSchema,
    FieldMappings,
    Pagination,
    RecordPage,
    SourceRecord,
    TableInfo,
)

SCHEMA_SAMPLE_ROWS = 10

logger = logging.getLogger(__name__)


def infer_column_type(samples: Sequence[Any]) -> str:
    values = [value for value in samples if value not in (None, "")]
    if not values:
        return "text"
    try:
        for value in values:
            float(value)
        return "number"
    except (TypeError, ValueError):
        pass
    try:
        for value in values:
            date.fromisoformat(str(value)[:10])
        return "date"
    except ValueError:
        return "text"


class SpreadsheetAdapter:
    """Record access over the sheets of one Google spreadsheet."""

    source_kind = SourceKind.SPREADSHEET

    def __init__(
        self,
        *,
        tenant_id: str,
        spreadsheet_id: str,
        sheet_name: str,
        field_mappings: FieldMappings,
        client: GoogleSheetsClient,
        cache: SheetRowCache,
    ):
        self.tenant_id = tenant_id
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.field_mappings = field_mappings
        self._client = client
        self._cache = cache

    def _table(self, table: str | None) -> str:
        if not self.spreadsheet_id:
            raise ValidationError("No spreadsheet has been selected for this tenant")
        name = table or self.sheet_name
        if not name:
            raise ValidationError("A sheet name is required")
        return name

    async def list_tables(self) -> list[TableInfo]:
        if not self.spreadsheet_id:
            return []
        spreadsheet = await self._client.get_spreadsheet(self.spreadsheet_id)
        tables = []
        for sheet in spreadsheet.get("sheets", []):
            properties = sheet.get("properties", {})
            grid = properties.get("gridProperties", {})
            tables.append(
                TableInfo(
                    id=str(properties.get("sheetId", "")),
                    name=properties.get("title", ""),
                    row_count=grid.get("rowCount"),
                    column_count=grid.get("columnCount"),
                )
            )
        return tables

    async def test_connection(self) -> None:
        """Raise unless the selected spreadsheet can be read with the current token."""

        if not self.spreadsheet_id:
            raise ValidationError("No spreadsheet has been selected for this tenant")
        await self._client.get_spreadsheet(self.spreadsheet_id)

    async def get_schema(self, table: str | None = None) -> list[ColumnSchema]:
        sheet = await self._read(self._table(table))
        sample = sheet.rows[:SCHEMA_SAMPLE_ROWS]
        return [
            ColumnSchema(
                name=header,
                type=infer_column_type([row[index] if index < len(row) else None for row in sample]),
                index=index,
            )
            for index, header in enumerate(sheet.headers)
        ]

    async def list_records(
        self, table: str | None = None, pagination: Pagination | None = None
    ) -> RecordPage:
        pagination = pagination or Pagination()
        sheet = await self._read(self._table(table))
        end = min(pagination.offset + pagination.limit, len(sheet.rows))
        records = [
            self._to_record(sheet.headers, sheet.rows[index], index)
            for index in range(pagination.offset, end)
        ]
        return RecordPage(
            records=records,
            total=len(sheet.rows),
            limit=pagination.limit,
            offset=pagination.offset,
            has_more=end < len(sheet.rows),
        )

    async def get_record(self, table: str | None, record_id: str) -> SourceRecord | None:
        sheet = await self._read(self._table(table))
        index = self._find_row(sheet, record_id)
        if index is None:
            return None
        return self._to_record(sheet.headers, sheet.rows[index], index)

    async def create_record(
        self,
        table: str | None,
        fields: Mapping[str, Any],
        geometry: dict[str, Any] | None = None,
    ) -> SourceRecord:
        name = self._table(table)
        sheet = await self._read(name)
        if not sheet.headers:
            raise ValidationError(f"Sheet {name} has no header row")
        row = self._to_row(sheet.headers, fields, geometry)
        range_ = a1_range(name, f"A:{column_letter(len(sheet.headers))}")
        try:
            await self._client.append_row(self.spreadsheet_id, range_, row)
        finally:
            self._cache.invalidate(self.tenant_id, name)
        logger.info("Spreadsheet row appended", extra={"tenant_id": self.tenant_id, "table": name})
        return self._to_record(sheet.headers, row, len(sheet.rows))

    async def update_record(
        self,
        table: str | None,
        record_id: str,
        fields: Mapping[str, Any],
        geometry: dict[str, Any] | None = None,
    ) -> SourceRecord:
        name = self._table(table)
        sheet = await self._read(name)
        index = self._find_row(sheet, record_id)
        if index is None:
            raise NotFoundError(f"Record {record_id} not found")

        row = self._to_row(sheet.headers, fields, geometry, existing=sheet.rows[index])
        sheet_row = index + 2
        range_ = a1_range(name, f"A{sheet_row}:{column_letter(len(sheet.headers))}{sheet_row}")
        try:
            await self._client.update_row(self.spreadsheet_id, range_, row)
        finally:
            self._cache.invalidate(self.tenant_id, name)
        return self._to_record(sheet.headers, row, index)

    async def delete_record(self, table: str | None, record_id: str) -> None:
        name = self._table(table)
        sheet = await self._read(name)
        index = self._find_row(sheet, record_id)
        if index is None:
            raise NotFoundError(f"Record {record_id} not found")

        sheet_id = await self._sheet_id(name)
        try:
            # Grid indexes are zero-based and row 0 holds the header.
            await self._client.delete_row(self.spreadsheet_id, sheet_id, index + 1)
        finally:
            self._cache.invalidate(self.tenant_id, name)

    async def _read(self, table: str) -> CachedSheet:
        cached = self._cache.get(self.tenant_id, table)
        if cached is not None:
            return cached
        values = await self._client.get_values(self.spreadsheet_id, a1_range(table))
        headers = [str(header) for header in values[0]] if values else []
        return self._cache.set(self.tenant_id, table, headers, [list(row) for row in values[1:]])

    async def _sheet_id(self, table: str) -> int:
        spreadsheet = await self._client.get_spreadsheet(self.spreadsheet_id)
        for sheet in spreadsheet.get("sheets", []):
            properties = sheet.get("properties", {})
            if properties.get("title") == table:
                return int(properties.get("sheetId", 0))
        raise NotFoundError(f"Sheet {table} not found")

    def _identity_column(self, headers: Sequence[str]) -> str | None:
        if self.field_mappings.identity in headers:
            return self.field_mappings.identity
        return headers[0] if headers else None

    def _find_row(self, sheet: CachedSheet, record_id: str) -> int | None:
        identity = self._identity_column(sheet.headers)
        column = sheet.headers.index(identity) if identity is not None else None
        for index, row in enumerate(sheet.rows):
            value = row[column] if column is not None and column < len(row) else ""
            if value not in (None, "") and str(value) == str(record_id):
                return index
            if value in (None, "") and record_id == f"row-{index + 1}":
                return index
        return None

    def _to_record(self, headers: Sequence[str], row: Sequence[Any], index: int) -> SourceRecord:
        values = {header: (row[position] if position < len(row) else "") for position, header in enumerate(headers)}
        geometry, geometry_column = extract_geometry(values, self.field_mappings)
        identity = self._identity_column(headers)
        record_id = values.get(identity) if identity is not None else None
        fields = {key: value for key, value in values.items() if key != geometry_column}
        return SourceRecord(
            id=str(record_id) if record_id not in (None, "") else f"row-{index + 1}",
            fields=fields,
            geometry=geometry,
        )

    def _to_row(
        self,
        headers: Sequence[str],
        fields: Mapping[str, Any],
        geometry: dict[str, Any] | None,
        *,
        existing: Sequence[Any] | None = None,
    ) -> list[Any]:
        row = list(existing or [])
        row.extend([""] * (len(headers) - len(row)))
        values = apply_geometry(dict(fields), geometry, self.field_mappings)
        for key, value in values.items():
            if key in headers:
                row[headers.index(key)] = "" if value is None else str(value)
        return row[: len(headers)]
