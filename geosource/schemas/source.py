"""Pydantic schemas for normalised records and field mappings."""
from __future__ import annotations

from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ColumnName = Annotated[str, Field(min_length=1, max_length=255)]


class FieldMappings(BaseModel):
    """Correspondence between tabular columns and semantic roles."""

    model_config = ConfigDict(populate_by_name=True)

    identity: ColumnName | None = Field(
        default=None, validation_alias=AliasChoices("identity", "id_column")
    )
    name: ColumnName | None = Field(
        default=None, validation_alias=AliasChoices("name", "name_column")
    )
    geometry: ColumnName | None = Field(
        default=None, validation_alias=AliasChoices("geometry", "geometry_column")
    )
    latitude: ColumnName | None = Field(
        default=None, validation_alias=AliasChoices("latitude", "latitude_column")
    )
    longitude: ColumnName | None = Field(
        default=None, validation_alias=AliasChoices("longitude", "longitude_column")
    )

    @property
    def has_point_columns(self) -> bool:
        return bool(self.latitude and self.longitude)


class FieldMappingProposal(FieldMappings):
    """Best-effort mapping suggested by the field detector."""

    all_columns: list[str] = Field(default_factory=list)


class SourceRecord(BaseModel):
    """A record normalised across both backends."""

    id: str
    fields: dict[str, Any] = Field(default_factory=dict)
    geometry: dict[str, Any] | None = None


class Pagination(BaseModel):
    limit: Annotated[int, Field(ge=1, le=1000)] = 100
    offset: Annotated[int, Field(ge=0)] = 0


class RecordPage(BaseModel):
    records: list[SourceRecord]
    total: int | None = None
    limit: int
    offset: int
    has_more: bool = False


class TableInfo(BaseModel):
    id: str
    name: str
    row_count: int | None = None
    column_count: int | None = None


class ColumnSchema(BaseModel):
    name: str
    type: str
    index: int | None = None
