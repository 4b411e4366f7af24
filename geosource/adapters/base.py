"""Capability interface shared by the table-API and spreadsheet backends."""
from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from geosource.models import SourceKind
from geosource.schemas import (
    ColumnSchema,
    FieldMappings,
    Pagination,
    RecordPage,
    SourceRecord,
    TableInfo,
)
from geosource.services.geometry import (
    looks_like_wkt,
    normalize_geometry,
    parse_lat_lng,
    point_coordinates,
    to_wkt,
)

GEOMETRY_FIELD_NAMES = ("geometry", "geom", "shape", "wkt", "the_geom")


@runtime_checkable
class DataAdapter(Protocol):
    """Uniform record access over one tenant's backend."""

    source_kind: SourceKind

    async def test_connection(self) -> None: ...

    async def list_tables(self) -> list[TableInfo]: ...

    async def get_schema(self, table: str | None = None) -> list[ColumnSchema]: ...

    async def list_records(
        self, table: str | None = None, pagination: Pagination | None = None
    ) -> RecordPage: ...

    async def get_record(self, table: str | None, record_id: str) -> SourceRecord | None: ...

    async def create_record(
        self,
        table: str | None,
        fields: Mapping[str, Any],
        geometry: dict[str, Any] | None = None,
    ) -> SourceRecord: ...

    async def update_record(
        self,
        table: str | None,
        record_id: str,
        fields: Mapping[str, Any],
        geometry: dict[str, Any] | None = None,
    ) -> SourceRecord: ...

    async def delete_record(self, table: str | None, record_id: str) -> None: ...


def find_geometry_field(fields: Mapping[str, Any]) -> str | None:
    """Guess the geometry attribute of an unmapped record."""

    for name in GEOMETRY_FIELD_NAMES:
        if name in fields:
            return name
    for key, value in fields.items():
        if looks_like_wkt(value):
            return key
    return None


def extract_geometry(
    fields: Mapping[str, Any],
    mappings: FieldMappings,
    *,
    auto_detect: bool = False,
) -> tuple[dict[str, Any] | None, str | None]:
    """Return the record geometry and the attribute it was read from.

    A mapped geometry column takes precedence over a latitude/longitude pair.
    Records with neither carry no geometry.
    """

    geometry_column = mappings.geometry
    if geometry_column is None and not mappings.has_point_columns and auto_detect:
        geometry_column = find_geometry_field(fields)

    if geometry_column and fields.get(geometry_column) not in (None, ""):
        geometry = normalize_geometry(fields[geometry_column])
        if geometry is not None:
            return geometry, geometry_column
    if mappings.has_point_columns:
        latitude = fields.get(mappings.latitude)
        longitude = fields.get(mappings.longitude)
        if latitude not in (None, "") and longitude not in (None, ""):
            return parse_lat_lng(latitude, longitude), None
    return None, geometry_column


def apply_geometry(
    values: dict[str, Any],
    geometry: dict[str, Any] | None,
    mappings: FieldMappings,
    *,
    default_column: str | None = None,
) -> dict[str, Any]:
    """Write ``geometry`` into ``values`` using the configured columns."""

    if not geometry:
        return values
    geometry_column = mappings.geometry or (None if mappings.has_point_columns else default_column)
    if geometry_column:
        wkt = to_wkt(geometry)
        if wkt:
            values[geometry_column] = wkt
        return values
    point = point_coordinates(geometry)
    if point is not None and mappings.has_point_columns:
        values[mappings.latitude] = point[0]
        values[mappings.longitude] = point[1]
    return values
