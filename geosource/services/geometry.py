"""Minimal geometry normalisation between WKT, lat/lng pairs and GeoJSON."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Sequence

WKT_PREFIXES = ("POINT", "LINESTRING", "POLYGON")
GEOJSON_TYPES = frozenset(
    {
        "Point",
        "LineString",
        "Polygon",
        "MultiPoint",
        "MultiLineString",
        "MultiPolygon",
        "GeometryCollection",
    }
)

_WKT_PATTERN = re.compile(r"^\s*(POINT|LINESTRING|POLYGON)\s*(?:Z\s*)?\((.*)\)\s*$", re.IGNORECASE | re.DOTALL)
_RING_PATTERN = re.compile(r"\(([^()]*)\)")

logger = logging.getLogger(__name__)


def looks_like_wkt(
    value: Any, prefixes: Iterable[str] = WKT_PREFIXES, *, ignore_case: bool = True
) -> bool:
    """Return ``True`` for strings that start with a WKT geometry keyword.

    With ``ignore_case=False`` only the upper-case keywords match.
    """

    if not isinstance(value, str):
        return False
    stripped = value.strip()
    if ignore_case:
        stripped = stripped.upper()
    return any(stripped.startswith(prefix) for prefix in prefixes)


def _parse_position(text: str) -> list[float]:
    parts = text.split()
    if len(parts) < 2:
        raise ValueError(f"Invalid coordinate: {text!r}")
    return [float(part) for part in parts]


def _parse_positions(text: str) -> list[list[float]]:
    return [_parse_position(chunk) for chunk in text.split(",") if chunk.strip()]


def parse_wkt(value: str | None) -> dict[str, Any] | None:
    """Convert a ``POINT``/``LINESTRING``/``POLYGON`` WKT string to GeoJSON."""

    if not value or not isinstance(value, str):
        return None
    match = _WKT_PATTERN.match(value)
    if match is None:
        return None

    kind = match.group(1).upper()
    body = match.group(2)
    try:
        if kind == "POINT":
            return {"type": "Point", "coordinates": _parse_position(body)}
        if kind == "LINESTRING":
            coordinates = _parse_positions(body)
            if len(coordinates) < 2:
                return None
            return {"type": "LineString", "coordinates": coordinates}
        rings = [_parse_positions(ring) for ring in _RING_PATTERN.findall(body)]
        if not rings or any(len(ring) < 4 for ring in rings):
            return None
        return {"type": "Polygon", "coordinates": rings}
    except ValueError:
        logger.debug("Unparseable WKT value", extra={"geometry_kind": kind})
        return None


def parse_geojson(value: Any) -> dict[str, Any] | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    if not isinstance(value, dict):
        return None
    geometry_type = value.get("type")
    if geometry_type == "Feature":
        return parse_geojson(value.get("geometry"))
    if geometry_type not in GEOJSON_TYPES:
        return None
    if geometry_type == "GeometryCollection":
        return value if isinstance(value.get("geometries"), list) else None
    return value if value.get("coordinates") is not None else None


def parse_lat_lng(latitude: Any, longitude: Any) -> dict[str, Any] | None:
    """Build a GeoJSON point from a latitude/longitude pair within range."""

    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return {"type": "Point", "coordinates": [lng, lat]}


def normalize_geometry(value: Any) -> dict[str, Any] | None:
    """Return GeoJSON for a WKT string, GeoJSON string or GeoJSON mapping."""

    if value is None or value == "":
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if looks_like_wkt(stripped):
            return parse_wkt(stripped)
        if stripped.startswith(("{", "[")):
            return parse_geojson(stripped)
        return None
    if isinstance(value, dict):
        return parse_geojson(value)
    return None


def _format_number(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def _format_positions(positions: Sequence[Sequence[float]]) -> str:
    return ", ".join(" ".join(_format_number(part) for part in position) for position in positions)


def to_wkt(geometry: dict[str, Any] | None) -> str | None:
    """Render a GeoJSON ``Point``/``LineString``/``Polygon`` as WKT."""

    if not geometry:
        return None
    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if coordinates is None:
        return None
    if geometry_type == "Point":
        return f"POINT ({_format_positions([coordinates])})"
    if geometry_type == "LineString":
        return f"LINESTRING ({_format_positions(coordinates)})"
    if geometry_type == "Polygon":
        rings = ", ".join(f"({_format_positions(ring)})" for ring in coordinates)
        return f"POLYGON ({rings})"
    return None


def point_coordinates(geometry: dict[str, Any] | None) -> tuple[float, float] | None:
    """Return ``(latitude, longitude)`` for a GeoJSON point."""

    if not geometry or geometry.get("type") != "Point":
        return None
    coordinates = geometry.get("coordinates") or []
    if len(coordinates) < 2:
        return None
    return float(coordinates[1]), float(coordinates[0])
