"""Request and response payloads for the connection endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from geosource.schemas.source import FieldMappings

TenantId = Annotated[str, Field(min_length=1, max_length=64)]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RefreshRequest(CamelModel):
    tenant_id: TenantId = Field(alias="tenantId")


class SheetSelection(CamelModel):
    spreadsheet_id: Annotated[str, Field(min_length=1)] = Field(alias="spreadsheetId")
    sheet_name: Annotated[str, Field(min_length=1)] = Field(alias="sheetName")


class SaveConfigRequest(SheetSelection):
    field_mappings: FieldMappings = Field(alias="fieldMappings")


class FieldDetectionRequest(CamelModel):
    """Table to sample; spreadsheets fall back to the configured sheet."""

    table_id: str | None = Field(default=None, alias="tableId")


class TableApiConfigCreate(CamelModel):
    tenant_id: TenantId = Field(alias="tenantId")
    base_url: HttpUrl = Field(alias="baseUrl")
    space_id: str | None = Field(default=None, alias="spaceId")
    base_id: Annotated[str, Field(min_length=1)] = Field(alias="baseId")
    access_token: Annotated[str, Field(min_length=1)] = Field(alias="accessToken")
    field_mappings: FieldMappings | None = Field(default=None, alias="fieldMappings")


class SourceStatus(BaseModel):
    tenant_id: str
    state: str
    source_kind: str | None = None
    spreadsheet_id: str | None = None
    sheet_name: str | None = None
    oauth_user_email: str | None = None
    token_expires_at: datetime | None = None
    needs_refresh: bool = False
