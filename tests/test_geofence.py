import json

import pytest

from conftest import LONDON, PARIS
from fusion_types import CandidateMethod, ConfigurationError
from geofence import (
    DEFAULT_GEOFENCES,
    filter_candidates,
    geofences_from_geojson,
    get_geofence,
    load_geofences,
    normalize_region_code,
)

SQUARE = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"code": "T1", "name": "Test square"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[2.0, 48.0], [3.0, 48.0], [3.0, 49.0], [2.0, 49.0], [2.0, 48.0]]],
            },
        },
        {
            "type": "Feature",
            "properties": {"code": "T1"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[3.0, 48.0], [4.0, 48.0], [4.0, 49.0], [3.0, 49.0], [3.0, 48.0]]],
            },
        },
    ],
}


def test_paris_is_inside_and_london_outside():
    paris = get_geofence("75")
    assert paris.name == "Paris"
    assert paris.contains(*PARIS)
    assert not paris.contains(*LONDON)


def test_boundary_counts_as_inside():
    # Corner of the built-in Paris rectangle
    assert get_geofence("75").contains(48.8, 2.2)


@pytest.mark.parametrize("raw, expected", [("2a", "2A"), ("1", "01"), (" 75 ", "75"), (75, "75"), ("971", "971")])
def test_region_codes_are_normalized(raw, expected):
    assert normalize_region_code(raw) == expected


def test_every_builtin_region_is_registered():
    assert "2A" in DEFAULT_GEOFENCES and "2B" in DEFAULT_GEOFENCES
    assert "20" not in DEFAULT_GEOFENCES
    assert get_geofence("2a").code == "2A"


def test_unknown_region_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        get_geofence("99")


def test_filter_keeps_inside_candidates_in_order(candidate):
    first = candidate(48.8600, 2.3400, CandidateMethod.OCR_GEOCODING)
    outside = candidate(*LONDON, CandidateMethod.EXIF_GPS, 0.99)
    second = candidate(48.8700, 2.3500, CandidateMethod.MODEL_REASONING)
    no_coords = candidate(None, None)

    kept = filter_candidates([first, outside, second, no_coords], "75")
    assert kept == [first, second]
    assert kept[0] is first


def test_filter_is_idempotent(candidate):
    cands = [candidate(*PARIS), candidate(*LONDON), candidate(48.8, 2.5)]
    once = filter_candidates(cands, "75")
    assert filter_candidates(once, "75") == once


def test_filter_rejects_unknown_region(candidate):
    with pytest.raises(ConfigurationError):
        filter_candidates([candidate()], "ZZ")


def test_geojson_features_with_the_same_code_are_merged():
    registry = geofences_from_geojson(SQUARE)
    fence = registry["T1"]
    assert fence.name == "Test square"
    assert fence.contains(48.5, 2.5)
    assert fence.contains(48.5, 3.5)
    assert not fence.contains(48.5, 4.5)


def test_load_geofences_from_file(tmp_path):
    path = tmp_path / "fences.geojson"
    path.write_text(json.dumps(SQUARE), encoding="utf-8")
    registry = load_geofences(str(path))
    assert list(registry) == ["T1"]


@pytest.mark.parametrize("data", [
    {},
    {"type": "FeatureCollection", "features": []},
    {"features": [{"properties": {}, "geometry": SQUARE["features"][0]["geometry"]}]},
    {"features": [{"properties": {"code": "P"}, "geometry": {"type": "Point", "coordinates": [2.0, 48.0]}}]},
    {"features": [{"properties": {"code": "X"}, "geometry": None}]},
    {"features": ["not a feature"]},
])
def test_invalid_geojson_is_a_configuration_error(data):
    with pytest.raises(ConfigurationError):
        geofences_from_geojson(data)


def test_unreadable_geofence_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_geofences(str(tmp_path / "missing.geojson"))
    bad = tmp_path / "bad.geojson"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_geofences(str(bad))
