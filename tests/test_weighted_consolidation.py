import pytest

from fusion_types import CandidateMethod
from weighted_consolidation import (
    ARCHITECTURE_STYLE,
    GENERAL_SIMILARITY,
    LANDMARK_DISTANCE,
    OCR_STREET,
    STREET_VIEW_MATCH,
    categorize,
    consolidate_weighted,
    should_consolidate,
)


@pytest.mark.parametrize("method, tag, expected", [
    (CandidateMethod.STREET_VIEW_MATCH, None, STREET_VIEW_MATCH),
    (CandidateMethod.MODEL_REASONING, "ssim", STREET_VIEW_MATCH),
    (CandidateMethod.MODEL_REASONING, "EMBEDDING", STREET_VIEW_MATCH),
    (CandidateMethod.OCR_GEOCODING, None, OCR_STREET),
    (CandidateMethod.CONTEXT_FALLBACK, "vision_ocr", OCR_STREET),
    (CandidateMethod.MODEL_REASONING, "architecture_match", ARCHITECTURE_STYLE),
    (CandidateMethod.LANDMARK_RECOGNITION, None, LANDMARK_DISTANCE),
    (CandidateMethod.EXIF_GPS, None, GENERAL_SIMILARITY),
    (CandidateMethod.MODEL_REASONING, None, GENERAL_SIMILARITY),
])
def test_categorize(candidate, method, tag, expected):
    assert categorize(candidate(method=method, method_tag=tag)) == expected


def test_first_matching_category_wins(candidate):
    # Street View family is checked before OCR
    cand = candidate(method=CandidateMethod.STREET_VIEW_MATCH, method_tag="ocr")
    assert categorize(cand) == STREET_VIEW_MATCH


def test_weighted_average_of_category_representatives(candidate):
    sv = candidate(48.8600, 2.3400, CandidateMethod.STREET_VIEW_MATCH, 0.8, address="12 Rue A, Paris")
    weaker_sv = candidate(48.8700, 2.3500, CandidateMethod.STREET_VIEW_MATCH, 0.3)
    ocr = candidate(48.8610, 2.3410, CandidateMethod.OCR_GEOCODING, 0.5, address="14 Rue A, Paris")

    result = consolidate_weighted([weaker_sv, ocr, sv])

    w_sv, w_ocr = 0.4 * 0.8, 0.2 * 0.5
    total = w_sv + w_ocr
    assert result.source is CandidateMethod.CONSOLIDATED
    assert result.latitude == pytest.approx((48.8600 * w_sv + 48.8610 * w_ocr) / total)
    assert result.longitude == pytest.approx((2.3400 * w_sv + 2.3410 * w_ocr) / total)
    assert result.confidence == pytest.approx(total)
    assert result.address == "12 Rue A, Paris"
    assert result.breakdown[STREET_VIEW_MATCH] == pytest.approx(w_sv)
    assert result.breakdown[OCR_STREET] == pytest.approx(w_ocr)
    assert result.breakdown[ARCHITECTURE_STYLE] == 0.0


def test_address_comes_from_most_confident_representative(candidate):
    sv = candidate(48.8600, 2.3400, CandidateMethod.STREET_VIEW_MATCH, 0.4, address="SV address")
    landmark = candidate(48.8601, 2.3401, CandidateMethod.LANDMARK_RECOGNITION, 0.9, address="Landmark address")
    assert consolidate_weighted([sv, landmark]).address == "Landmark address"


def test_confidence_is_capped(candidate):
    cands = [
        candidate(method=CandidateMethod.STREET_VIEW_MATCH, confidence=1.0),
        candidate(method=CandidateMethod.OCR_GEOCODING, confidence=1.0),
        candidate(method_tag="style", confidence=1.0),
        candidate(method=CandidateMethod.LANDMARK_RECOGNITION, confidence=1.0),
        candidate(method=CandidateMethod.MODEL_REASONING, confidence=1.0),
    ]
    assert consolidate_weighted(cands).confidence == pytest.approx(0.95)


def test_zero_weight_and_empty_input_give_no_result(candidate):
    assert consolidate_weighted([]) is None
    assert consolidate_weighted([candidate(confidence=0.0), candidate(method=CandidateMethod.OCR_GEOCODING, confidence=0.0)]) is None
    assert consolidate_weighted([candidate(lat=None, lng=None)]) is None


def test_should_consolidate_requires_independent_close_categories(candidate):
    sv = candidate(48.8600, 2.3400, CandidateMethod.STREET_VIEW_MATCH, 0.8)
    ocr = candidate(48.8605, 2.3405, CandidateMethod.OCR_GEOCODING, 0.5)
    far_ocr = candidate(48.8700, 2.3400, CandidateMethod.OCR_GEOCODING, 0.5)
    exif = candidate(48.8600, 2.3400, CandidateMethod.EXIF_GPS, 0.9)

    assert should_consolidate([sv, ocr])
    assert not should_consolidate([sv])
    assert not should_consolidate([sv, sv])
    assert not should_consolidate([sv, far_ocr])
    assert not should_consolidate([sv, ocr, exif])
