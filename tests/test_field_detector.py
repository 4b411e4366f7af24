from __future__ import annotations

from geosource.services.field_detector import MAX_SAMPLE_ROWS, detect_fields


def test_detects_roles_from_headers():
    proposal = detect_fields(["OBJECTID", "PARCEL_NAME", "LATITUDE", "LONGITUDE", "NOTES"])

    assert proposal.identity == "OBJECTID"
    assert proposal.name == "PARCEL_NAME"
    assert proposal.latitude == "LATITUDE"
    assert proposal.longitude == "LONGITUDE"
    assert proposal.geometry is None
    assert proposal.all_columns == ["OBJECTID", "PARCEL_NAME", "LATITUDE", "LONGITUDE", "NOTES"]


def test_geometry_header_with_positional_defaults():
    proposal = detect_fields(
        ["col1", "col2", "shape"], [["1", "Main St", "POLYGON((0 0,1 0,1 1,0 1,0 0))"]]
    )

    assert proposal.geometry == "shape"
    assert proposal.identity == "col1"
    assert proposal.name == "col2"


def test_sniffs_wkt_values_when_no_location_header():
    proposal = detect_fields(
        ["code", "label", "where"],
        [["", "", ""], ["A", "First", "POINT (4.3 52.1)"]],
    )

    assert proposal.geometry == "where"
    assert proposal.name == "label"
    assert proposal.identity == "code"


def test_value_sniffing_only_matches_upper_case_keywords():
    proposal = detect_fields(["a", "b", "c"], [["1", "x", "point (1 2)"]])

    assert proposal.geometry is None


def test_value_sniffing_skipped_when_lat_lng_headers_exist():
    proposal = detect_fields(["id", "lat", "lng", "path"], [["1", "52", "4", "LINESTRING (0 0, 1 1)"]])

    assert proposal.geometry is None
    assert proposal.latitude == "lat"
    assert proposal.longitude == "lng"


def test_first_matching_column_wins_each_role():
    proposal = detect_fields(["site_id", "owner_id", "title", "description", "y", "x"])

    assert proposal.identity == "site_id"
    assert proposal.name == "title"
    assert proposal.latitude == "y"
    assert proposal.longitude == "x"


def test_suffix_matches_for_coordinates():
    proposal = detect_fields(["gid", "start_lat", "start_lon"])

    assert proposal.identity == "gid"
    assert proposal.latitude == "start_lat"
    assert proposal.longitude == "start_lon"


def test_only_leading_rows_are_sampled():
    rows = [[""]] * MAX_SAMPLE_ROWS + [["POINT (1 2)"]]

    assert detect_fields(["value"], rows).geometry is None


def test_missing_roles_are_none_rather_than_errors():
    assert detect_fields([]).identity is None
    single = detect_fields(["only"])
    assert single.identity == "only"
    assert single.name is None
