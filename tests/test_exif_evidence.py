import pytest
from PIL import ExifTags, Image

from exif_evidence import (
    EXIF_CONFIDENCE,
    candidate_from_gps_info,
    candidate_from_image,
    dms_to_decimal,
    get_decimal_coordinates,
    get_gps_info,
)
from fusion_types import CandidateMethod, EvidenceKind

EIFFEL_GPS = {
    "GPSLatitudeRef": "N",
    "GPSLatitude": (48, 51, 29.64),
    "GPSLongitudeRef": "E",
    "GPSLongitude": (2, 17, 40.2),
}


def test_dms_to_decimal():
    assert dms_to_decimal((48, 51, 23.76), "N") == pytest.approx(48.8566, abs=1e-4)
    assert dms_to_decimal((2, 21, 7.92), "W") == pytest.approx(-2.3522, abs=1e-4)
    assert dms_to_decimal((33, 52, 4.0), "S") < 0


@pytest.mark.parametrize("dms", [None, (48, 51), "48,51,23", (48, "x", 1)])
def test_dms_to_decimal_rejects_bad_input(dms):
    assert dms_to_decimal(dms, "N") is None


def test_decimal_coordinates_require_all_fields():
    assert get_decimal_coordinates({}) == (None, None)
    assert get_decimal_coordinates({"GPSLatitude": (48, 51, 0), "GPSLatitudeRef": "N"}) == (None, None)
    lat, lon = get_decimal_coordinates(EIFFEL_GPS)
    assert lat == pytest.approx(48.8582, abs=1e-4)
    assert lon == pytest.approx(2.2945, abs=1e-4)


def test_candidate_from_gps_info():
    cand = candidate_from_gps_info(EIFFEL_GPS, address="Champ de Mars, Paris")
    assert cand.method is CandidateMethod.EXIF_GPS
    assert cand.confidence == EXIF_CONFIDENCE
    assert cand.address == "Champ de Mars, Paris"
    assert cand.evidence[0].kind is EvidenceKind.METADATA_COORDINATES
    assert candidate_from_gps_info(None) is None


def test_image_without_exif_gives_no_candidate(tmp_path):
    path = tmp_path / "plain.png"
    Image.new("RGB", (8, 8), "white").save(path)
    assert get_gps_info(str(path)) is None
    assert candidate_from_image(str(path)) is None


def test_missing_or_unreadable_file_gives_no_candidate(tmp_path):
    assert candidate_from_image(str(tmp_path / "missing.jpg")) is None
    not_an_image = tmp_path / "notes.jpg"
    not_an_image.write_text("not an image")
    assert candidate_from_image(str(not_an_image)) is None


def test_jpeg_with_gps_block(tmp_path):
    image = Image.new("RGB", (8, 8), "white")
    exif = image.getexif()
    exif[ExifTags.IFD.GPSInfo] = {1: "N", 2: (48, 51, 24), 3: "E", 4: (2, 21, 8)}
    path = tmp_path / "tagged.jpg"
    image.save(path, exif=exif)

    cand = candidate_from_image(str(path))
    assert cand is not None
    assert cand.latitude == pytest.approx(48 + 51 / 60 + 24 / 3600)
    assert cand.longitude == pytest.approx(2 + 21 / 60 + 8 / 3600)
