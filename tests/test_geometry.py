from __future__ import annotations

import pytest

from geosource.services.geometry import (
    looks_like_wkt,
    normalize_geometry,
    parse_lat_lng,
    parse_wkt,
    point_coordinates,
    to_wkt,
)


def test_parse_point_linestring_and_polygon():
    assert parse_wkt("POINT (4.3 52.1)") == {"type": "Point", "coordinates": [4.3, 52.1]}
    assert parse_wkt("LINESTRING(0 0, 1 1, 2 1)") == {
        "type": "LineString",
        "coordinates": [[0.0, 0.0], [1.0, 1.0], [2.0, 1.0]],
    }
    assert parse_wkt("POLYGON((0 0,1 0,1 1,0 1,0 0))") == {
        "type": "Polygon",
        "coordinates": [[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0], [0.0, 0.0]]],
    }


@pytest.mark.parametrize(
    "value",
    ["POINT (abc def)", "LINESTRING (0 0)", "POLYGON ((0 0, 1 1))", "MULTIPOINT ((0 0))", "", None],
)
def test_unparseable_wkt_yields_none(value):
    assert parse_wkt(value) is None


def test_lat_lng_pair_becomes_point_in_lng_lat_order():
    assert parse_lat_lng("52.1", "4.3") == {"type": "Point", "coordinates": [4.3, 52.1]}
    assert parse_lat_lng(91, 0) is None
    assert parse_lat_lng(0, 181) is None
    assert parse_lat_lng("north", "4") is None


def test_normalize_accepts_geojson_strings_and_mappings():
    point = {"type": "Point", "coordinates": [1, 2]}

    assert normalize_geometry(point) == point
    assert normalize_geometry('{"type": "Point", "coordinates": [1, 2]}') == point
    assert normalize_geometry({"type": "Feature", "geometry": point}) == point
    assert normalize_geometry("Main St") is None
    assert normalize_geometry({"type": "Circle"}) is None


def test_to_wkt_round_trips_supported_types():
    polygon = "POLYGON ((0 0, 1 0, 1 1, 0 0))"

    assert to_wkt({"type": "Point", "coordinates": [4.3, 52.1]}) == "POINT (4.3 52.1)"
    assert to_wkt(parse_wkt(polygon)) == polygon
    assert to_wkt({"type": "MultiPoint", "coordinates": [[0, 0]]}) is None


def test_helpers():
    assert looks_like_wkt("  point (1 2)")
    assert not looks_like_wkt("  point (1 2)", ignore_case=False)
    assert looks_like_wkt("POLYGON ((0 0, 1 0, 1 1, 0 0))", ignore_case=False)
    assert not looks_like_wkt(42)
    assert point_coordinates({"type": "Point", "coordinates": [4.3, 52.1]}) == (52.1, 4.3)
    assert point_coordinates({"type": "LineString", "coordinates": [[0, 0], [1, 1]]}) is None
