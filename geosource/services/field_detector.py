"""Propose which spreadsheet columns feed identity, name and location.

Detection is advisory: a role without a confident match is ``None`` and the
proposal is always confirmed by a person before it is saved. Roles are
matched case-insensitively over the headers in order and the first matching
column wins each role.
"""
from __future__ import annotations

from typing import Any, Sequence

from geosource.schemas import FieldMappingProposal
from geosource.services.geometry import looks_like_wkt

MAX_SAMPLE_ROWS = 99

GEOMETRY_KEYWORDS = ("geometry", "geom", "wkt", "shape", "the_geom")
IDENTITY_KEYWORDS = ("id", "objectid", "fid", "gid")
NAME_KEYWORDS = ("name", "title", "label", "description")
LATITUDE_NAMES = ("lat", "latitude", "y")
LATITUDE_SUFFIXES = ("lat",)
LONGITUDE_NAMES = ("lon", "lng", "long", "longitude", "x")
LONGITUDE_SUFFIXES = ("lng", "lon")


def _is_geometry(header: str) -> bool:
    return any(keyword in header for keyword in GEOMETRY_KEYWORDS)


def _is_identity(header: str) -> bool:
    return any(header == keyword or header.endswith(keyword) for keyword in IDENTITY_KEYWORDS)


def _is_name(header: str) -> bool:
    return any(keyword in header for keyword in NAME_KEYWORDS)


def _is_latitude(header: str) -> bool:
    return header in LATITUDE_NAMES or header.endswith(LATITUDE_SUFFIXES)


def _is_longitude(header: str) -> bool:
    return header in LONGITUDE_NAMES or header.endswith(LONGITUDE_SUFFIXES)


def _first_non_empty(rows: Sequence[Sequence[Any]], index: int) -> Any:
    for row in rows:
        if index < len(row) and row[index] not in (None, ""):
            return row[index]
    return None


def detect_fields(
    headers: Sequence[str], rows: Sequence[Sequence[Any]] = ()
) -> FieldMappingProposal:
    """Return a best-effort role mapping for ``headers``.

    ``rows`` are data rows below the header; only the first 99 are sampled.
    """

    columns = [str(header) if header is not None else "" for header in headers]
    sample = list(rows[:MAX_SAMPLE_ROWS])

    roles: dict[str, str | None] = {
        "geometry": None,
        "identity": None,
        "name": None,
        "latitude": None,
        "longitude": None,
    }
    matchers = (
        ("geometry", _is_geometry),
        ("identity", _is_identity),
        ("name", _is_name),
        ("latitude", _is_latitude),
        ("longitude", _is_longitude),
    )

    for header in columns:
        lowered = header.strip().lower()
        if not lowered:
            continue
        for role, matches in matchers:
            if roles[role] is None and matches(lowered):
                roles[role] = header

    if not (roles["geometry"] or roles["latitude"] or roles["longitude"]):
        for index, header in enumerate(columns):
            if looks_like_wkt(_first_non_empty(sample, index), ignore_case=False):
                roles["geometry"] = header
                break

    if roles["identity"] is None and columns:
        roles["identity"] = columns[0] or None
    if roles["name"] is None and len(columns) > 1:
        roles["name"] = columns[1] or None

    return FieldMappingProposal(**roles, all_columns=columns)
