import pytest

from fusion_types import CandidateMethod, EvidenceItem, EvidenceKind, LocationCandidate

# Inside the built-in Paris (75) geofence
PARIS = (48.8566, 2.3522)
LONDON = (51.5074, -0.1278)


def make_candidate(lat=PARIS[0], lng=PARIS[1], method=CandidateMethod.MODEL_REASONING,
                   confidence=0.5, address=None, evidence=(), method_tag=None, street_view=None):
    return LocationCandidate(
        latitude=lat,
        longitude=lng,
        method=method,
        confidence=confidence,
        address=address,
        evidence=tuple(evidence),
        method_tag=method_tag,
        street_view=street_view,
    )


def make_evidence(kind, label, weight=0.5, detail=""):
    return EvidenceItem(kind=kind, label=label, detail=detail, weight=weight)


@pytest.fixture
def candidate():
    return make_candidate


@pytest.fixture
def evidence():
    return make_evidence


@pytest.fixture
def shop_sign():
    return make_evidence(EvidenceKind.SHOP_SIGN, "SEPHORA", weight=0.8)
