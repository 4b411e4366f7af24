"""Table-API backend reached over its REST interface.

Reads are never cached: the service has no rate limit that would call for it
and callers expect live state.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from geosource.adapters.base import apply_geometry, extract_geometry
from geosource.core.config import Settings, get_settings
from geosource.core.errors import NotFoundError, ProviderError, ValidationError
from geosource.models import SourceKind
from geosource.schemas import (
    ColumnSchema,
    FieldMappings,
    Pagination,
    RecordPage,
    SourceRecord,
    TableInfo,
)

DEFAULT_GEOMETRY_FIELD = "geometry"

logger = logging.getLogger(__name__)


class TableApiAdapter:
    """Record access over a base of the table-API service."""

    source_kind = SourceKind.TABLE_API

    def __init__(
        self,
        *,
        tenant_id: str,
        base_url: str,
        base_id: str,
        access_token: str,
        space_id: str | None = None,
        field_mappings: FieldMappings | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.tenant_id = tenant_id
        self.base_url = base_url.rstrip("/")
        self.base_id = base_id
        self.space_id = space_id
        self.field_mappings = field_mappings or FieldMappings()
        self._access_token = access_token
        self._settings = settings or get_settings()
        self._transport = transport

    @staticmethod
    def _table(table: str | None) -> str:
        if not table:
            raise ValidationError("A table id is required for the table API")
        return table

    async def list_tables(self) -> list[TableInfo]:
        data = await self._request("GET", f"/api/base/{self.base_id}/table")
        tables = data.get("tables", []) if isinstance(data, dict) else data or []
        return [TableInfo(id=str(table["id"]), name=table.get("name", "")) for table in tables]

    async def test_connection(self) -> None:
        """Raise :class:`ProviderError` unless the base or its space answers."""

        endpoints = [f"/api/base/{self.base_id}/table", f"/api/base/{self.base_id}"]
        if self.space_id:
            endpoints += [f"/api/space/{self.space_id}/base", f"/api/space/{self.space_id}"]

        last_error: ProviderError | None = None
        for endpoint in endpoints:
            try:
                await self._request("GET", endpoint)
            except ProviderError as exc:
                last_error = exc
                continue
            logger.info(
                "Table API connection verified",
                extra={"tenant_id": self.tenant_id, "endpoint": endpoint},
            )
            return
        raise ProviderError(
            "Could not reach the table API base",
            status_code=last_error.provider_status if last_error else None,
        ) from last_error

    async def get_schema(self, table: str | None = None) -> list[ColumnSchema]:
        data = await self._request("GET", f"/api/table/{self._table(table)}/field")
        fields = data.get("fields", []) if isinstance(data, dict) else data or []
        return [
            ColumnSchema(name=field["name"], type=str(field.get("type", "text")), index=index)
            for index, field in enumerate(fields)
        ]

    async def list_records(
        self, table: str | None = None, pagination: Pagination | None = None
    ) -> RecordPage:
        pagination = pagination or Pagination()
        data = await self._request(
            "GET",
            f"/api/table/{self._table(table)}/record",
            params={"limit": pagination.limit, "offset": pagination.offset},
        )
        raw_records = data.get("records", []) if isinstance(data, dict) else []
        total = data.get("total") if isinstance(data, dict) else None
        records = [self._to_record(record) for record in raw_records]
        if total is not None:
            has_more = pagination.offset + len(records) < int(total)
        else:
            has_more = len(records) == pagination.limit
        return RecordPage(
            records=records,
            total=total,
            limit=pagination.limit,
            offset=pagination.offset,
            has_more=has_more,
        )

    async def get_record(self, table: str | None, record_id: str) -> SourceRecord | None:
        try:
            data = await self._request("GET", f"/api/table/{self._table(table)}/record/{record_id}")
        except ProviderError as exc:
            if exc.provider_status == 404:
                return None
            raise
        return self._to_record(data)

    async def create_record(
        self,
        table: str | None,
        fields: Mapping[str, Any],
        geometry: dict[str, Any] | None = None,
    ) -> SourceRecord:
        body = {"records": [{"fields": self._to_fields(fields, geometry)}]}
        data = await self._request("POST", f"/api/table/{self._table(table)}/record", json=body)
        created = data.get("records", []) if isinstance(data, dict) else []
        if not created:
            raise ProviderError("Table API did not return the created record")
        logger.info("Table API record created", extra={"tenant_id": self.tenant_id, "table": table})
        return self._to_record(created[0])

    async def update_record(
        self,
        table: str | None,
        record_id: str,
        fields: Mapping[str, Any],
        geometry: dict[str, Any] | None = None,
    ) -> SourceRecord:
        body = {"record": {"fields": self._to_fields(fields, geometry)}}
        try:
            data = await self._request(
                "PATCH", f"/api/table/{self._table(table)}/record/{record_id}", json=body
            )
        except ProviderError as exc:
            if exc.provider_status == 404:
                raise NotFoundError(f"Record {record_id} not found") from exc
            raise
        return self._to_record(data)

    async def delete_record(self, table: str | None, record_id: str) -> None:
        try:
            await self._request("DELETE", f"/api/table/{self._table(table)}/record/{record_id}")
        except ProviderError as exc:
            if exc.provider_status == 404:
                raise NotFoundError(f"Record {record_id} not found") from exc
            raise

    def _to_record(self, data: dict[str, Any]) -> SourceRecord:
        fields = dict(data.get("fields") or {})
        geometry, geometry_field = extract_geometry(fields, self.field_mappings, auto_detect=True)
        if geometry_field is not None:
            fields.pop(geometry_field, None)
        return SourceRecord(id=str(data.get("id", "")), fields=fields, geometry=geometry)

    def _to_fields(self, fields: Mapping[str, Any], geometry: dict[str, Any] | None) -> dict[str, Any]:
        return apply_geometry(
            dict(fields), geometry, self.field_mappings, default_column=DEFAULT_GEOMETRY_FIELD
        )

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.provider_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.request(
                    method, f"{self.base_url}{endpoint}", headers=headers, params=params, json=json
                )
        except httpx.TimeoutException as exc:
            logger.error("Table API request timed out", extra={"tenant_id": self.tenant_id, "method": method})
            raise ProviderError("Table API request timed out") from exc
        except httpx.HTTPError as exc:  # pragma: no cover - network failure
            logger.error("Table API request failed", exc_info=exc)
            raise ProviderError("Failed to communicate with the table API") from exc

        if response.status_code >= 400:
            logger.error(
                "Table API error",
                extra={"tenant_id": self.tenant_id, "status_code": response.status_code, "method": method},
            )
            raise ProviderError(
                "Table API error", status_code=response.status_code, body=response.text
            )
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()
