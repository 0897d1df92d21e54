import math

import pytest

from fusion_types import (
    CandidateFormatError,
    CandidateMethod,
    ConsolidatedResult,
    EvidenceKind,
    candidate_from_dict,
    candidates_from_list,
    clamp_unit,
    confidence_label,
    sanitize_candidates,
    source_priority,
)


def test_candidate_from_dict_accepts_detector_names():
    cand = candidate_from_dict({
        "latitude": "48.8566",
        "longitude": 2.3522,
        "source": "VISION_GEOCODING",
        "confidence": 0.7,
        "evidences": [{"type": "SHOP_SIGN", "label": "SEPHORA"}],
        "street_view": {"embed_url": "https://example.test/embed", "heading": 120},
    })
    assert cand.method is CandidateMethod.OCR_GEOCODING
    assert cand.latitude == pytest.approx(48.8566)
    assert cand.evidence[0].kind is EvidenceKind.SHOP_SIGN
    assert cand.evidence[0].weight == 0.5
    assert cand.street_view.heading == 120.0


@pytest.mark.parametrize("data", [
    "not an object",
    {"latitude": 48.0, "longitude": 2.0, "method": "carrier-pigeon"},
    {"latitude": "north", "longitude": 2.0, "method": "exif-gps"},
    {"latitude": 48.0, "longitude": 2.0, "method": "exif-gps", "confidence": True},
    {"latitude": 48.0, "longitude": 2.0, "method": "exif-gps", "evidence": "lots"},
])
def test_candidate_from_dict_rejects_malformed_input(data):
    with pytest.raises(CandidateFormatError):
        candidate_from_dict(data)


def test_candidates_must_be_a_list():
    with pytest.raises(CandidateFormatError):
        candidates_from_list({"latitude": 48.0})


def test_sanitize_drops_unusable_coordinates_and_clamps_scores(candidate, evidence):
    cands = [
        candidate(48.86, None),
        candidate(None, None),
        candidate(float("inf"), 2.35),
        candidate(confidence=float("nan")),
        candidate(confidence=-0.5, evidence=[evidence(EvidenceKind.SHOP_SIGN, "SEPHORA", 4.0)]),
    ]
    cleaned = sanitize_candidates(cands)
    assert [c.confidence for c in cleaned] == [0.0, 0.0]
    assert cleaned[1].evidence[0].weight == 1.0
    assert all(math.isfinite(c.latitude) for c in cleaned)


def test_source_priority_table():
    assert source_priority(CandidateMethod.MAP_SCREENSHOT) == 100
    assert source_priority(CandidateMethod.MODEL_REASONING) == 30
    assert source_priority(CandidateMethod.CONSOLIDATED) == 0


@pytest.mark.parametrize("confidence, label", [(0.9, "High"), (0.75, "High"), (0.5, "Medium"), (0.4, "Medium"), (0.1, "Low")])
def test_confidence_label(confidence, label):
    assert confidence_label(confidence) == label


def test_result_from_candidate_clamps_confidence(candidate):
    result = ConsolidatedResult.from_candidate(candidate(confidence=1.7))
    assert result.confidence == 1.0
    assert not result.needs_manual_review
    assert ConsolidatedResult.from_candidate(candidate(confidence=0.69)).needs_manual_review


def test_clamp_unit_maps_nan_to_zero():
    assert clamp_unit(float("nan")) == 0.0
    assert clamp_unit(1.5) == 1.0
    assert clamp_unit(-2.0) == 0.0
