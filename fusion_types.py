# fusion_types.py
# Data model, fixed tables and errors shared by the fusion engine stages

import math
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType


# --- Errors ---
class ConfigurationError(Exception):
    """Raised when the engine is asked to use a region or table it does not know."""


class CandidateFormatError(ValueError):
    """Raised when a serialized candidate cannot be turned into a LocationCandidate."""


# --- Enumerations ---
class EvidenceKind(Enum):
    SHOP_SIGN = "shop-sign"
    ROAD_MARKING = "road-marking"
    OCR_TEXT = "ocr-text"
    ARCHITECTURE_STYLE = "architecture-style"
    LANDMARK = "landmark"
    MAP_SCREENSHOT = "map-screenshot"
    METADATA_COORDINATES = "coordinates-from-metadata"
    MODEL_REASONING = "model-reasoning"
    DEPARTMENT_LOCK = "department-lock"
    STREET_VIEW_MATCH = "street-view-match"


class CandidateMethod(Enum):
    MAP_SCREENSHOT = "map-screenshot"
    EXIF_GPS = "exif-gps"
    LANDMARK_RECOGNITION = "landmark-recognition"
    STREET_VIEW_MATCH = "street-view-match"
    OCR_GEOCODING = "ocr-geocoding"
    MANUAL_CORRECTION = "manual-correction"
    CONTEXT_FALLBACK = "context-fallback"
    MODEL_REASONING = "model-reasoning"
    CONSOLIDATED = "consolidated"


# --- Fixed Tables ---
# Higher = more trusted. Consulted by the reprioritizer and the merger.
SOURCE_PRIORITY = MappingProxyType({
    CandidateMethod.MAP_SCREENSHOT: 100,
    CandidateMethod.EXIF_GPS: 90,
    CandidateMethod.LANDMARK_RECOGNITION: 80,
    CandidateMethod.STREET_VIEW_MATCH: 70,
    CandidateMethod.OCR_GEOCODING: 60,
    CandidateMethod.MANUAL_CORRECTION: 50,
    CandidateMethod.CONTEXT_FALLBACK: 40,
    CandidateMethod.MODEL_REASONING: 30,
    CandidateMethod.CONSOLIDATED: 0,
})

# Detector names as emitted by the upstream services
METHOD_ALIASES = MappingProxyType({
    "MAPS_SCREENSHOT": CandidateMethod.MAP_SCREENSHOT,
    "EXIF": CandidateMethod.EXIF_GPS,
    "EXIF_GPS": CandidateMethod.EXIF_GPS,
    "VISION_LANDMARK": CandidateMethod.LANDMARK_RECOGNITION,
    "STREETVIEW_VISUAL_MATCH": CandidateMethod.STREET_VIEW_MATCH,
    "VISION_GEOCODING": CandidateMethod.OCR_GEOCODING,
    "OCR_GEOCODING": CandidateMethod.OCR_GEOCODING,
    "GOOGLE_GEOCODING": CandidateMethod.OCR_GEOCODING,
    "MANUAL": CandidateMethod.MANUAL_CORRECTION,
    "VISION_CONTEXT_FALLBACK": CandidateMethod.CONTEXT_FALLBACK,
    "CONTEXT_FALLBACK": CandidateMethod.CONTEXT_FALLBACK,
    "AI_GEOGUESSR": CandidateMethod.MODEL_REASONING,
    "LLM_REASONING": CandidateMethod.MODEL_REASONING,
    "WEIGHTED_CONSOLIDATION": CandidateMethod.CONSOLIDATED,
})

KIND_ALIASES = MappingProxyType({
    "OCR_TEXT": EvidenceKind.OCR_TEXT,
    "LANDMARK": EvidenceKind.LANDMARK,
    "STREETVIEW_MATCH": EvidenceKind.STREET_VIEW_MATCH,
    "GOOGLE_MAPS_SCREENSHOT": EvidenceKind.MAP_SCREENSHOT,
    "ARCHITECTURE_STYLE": EvidenceKind.ARCHITECTURE_STYLE,
    "ROAD_MARKING": EvidenceKind.ROAD_MARKING,
    "SHOP_SIGN": EvidenceKind.SHOP_SIGN,
    "LLM_REASONING": EvidenceKind.MODEL_REASONING,
    "DEPARTMENT_LOCK": EvidenceKind.DEPARTMENT_LOCK,
    "EXIF_GPS": EvidenceKind.METADATA_COORDINATES,
})

# Extremely distinctive places; matched case-insensitively as substrings
CRITICAL_LANDMARKS = (
    "arc de triomphe",
    "champs-élysées",
    "champs élysées",
    "champs-elysees",
    "louis vuitton",
    "five guys champs-élysées",
    "sephora champs-élysées",
    "tour eiffel",
    "eiffel tower",
    "notre-dame",
    "sacré-cœur",
    "sacré coeur",
    "sacre-coeur",
)

MANUAL_REVIEW_THRESHOLD = 0.70


def clamp_unit(value):
    """Clamps a score into [0, 1]; NaN counts as no confidence."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def source_priority(method, priorities=SOURCE_PRIORITY):
    return priorities.get(method, 0)


def ranking_key(candidate, priorities=SOURCE_PRIORITY):
    """Sort key for (priority desc, confidence desc); use with sorted(), which is stable."""
    return (-source_priority(candidate.method, priorities), -candidate.confidence)


def confidence_label(confidence):
    if confidence >= 0.75:
        return "High"
    if confidence >= 0.4:
        return "Medium"
    return "Low"


# --- Records ---
@dataclass(frozen=True)
class EvidenceItem:
    kind: EvidenceKind
    label: str
    detail: str = ""
    weight: float = 0.5

    def to_dict(self):
        return {
            "kind": self.kind.value,
            "label": self.label,
            "detail": self.detail,
            "weight": round(self.weight, 3),
        }


@dataclass(frozen=True)
class StreetViewPreview:
    """Opaque preview of the street-level view a detector matched against."""

    embed_url: str = None
    image_url: str = None
    heading: float = 0.0

    def to_dict(self):
        return {"embed_url": self.embed_url, "image_url": self.image_url, "heading": self.heading}


@dataclass(frozen=True)
class LocationCandidate:
    latitude: float
    longitude: float
    method: CandidateMethod
    confidence: float
    address: str = None
    evidence: tuple = ()
    street_view: StreetViewPreview = None
    method_tag: str = None

    @property
    def has_coordinates(self):
        """True when both coordinates are present and finite."""
        if self.latitude is None or self.longitude is None:
            return False
        return math.isfinite(self.latitude) and math.isfinite(self.longitude)

    def with_confidence(self, confidence):
        return replace(self, confidence=clamp_unit(confidence))

    def has_evidence(self, *kinds):
        return any(item.kind in kinds for item in self.evidence)

    def to_dict(self):
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "method": self.method.value,
            "confidence": round(self.confidence, 4),
            "evidence": [item.to_dict() for item in self.evidence],
            "street_view": self.street_view.to_dict() if self.street_view else None,
            "method_tag": self.method_tag,
        }


@dataclass(frozen=True)
class FusionContext:
    """Flags derived by the caller after running the screenshot and landmark detectors."""

    map_screenshot_detected: bool = False
    critical_landmark_detected: bool = False


@dataclass(frozen=True)
class Explanation:
    summary: str
    evidence: tuple = ()

    def to_dict(self):
        return {"summary": self.summary, "evidence": [item.to_dict() for item in self.evidence]}


@dataclass(frozen=True)
class ConsolidatedResult:
    latitude: float
    longitude: float
    confidence: float
    source: CandidateMethod
    address: str = None
    explanation: Explanation = None
    street_view: StreetViewPreview = None
    address_too_vague: bool = False
    breakdown: dict = field(default_factory=dict)

    @classmethod
    def from_candidate(cls, candidate, **overrides):
        values = {
            "latitude": candidate.latitude,
            "longitude": candidate.longitude,
            "confidence": clamp_unit(candidate.confidence),
            "source": candidate.method,
            "address": candidate.address,
            "street_view": candidate.street_view,
        }
        values.update(overrides)
        return cls(**values)

    @property
    def needs_manual_review(self):
        return self.confidence < MANUAL_REVIEW_THRESHOLD

    @property
    def map_url(self):
        return f"https://www.google.com/maps/search/?api=1&query={self.latitude:.6f},{self.longitude:.6f}"

    def to_dict(self):
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "address_too_vague": self.address_too_vague,
            "confidence": round(self.confidence, 4),
            "confidence_label": confidence_label(self.confidence),
            "needs_manual_review": self.needs_manual_review,
            "source": self.source.value,
            "explanation": self.explanation.to_dict() if self.explanation else None,
            "street_view": self.street_view.to_dict() if self.street_view else None,
            "breakdown": {name: round(weight, 4) for name, weight in self.breakdown.items()},
            "map_url": self.map_url,
        }


# --- Deserialization ---
def _parse_enum(enum_cls, aliases, raw, what):
    if isinstance(raw, enum_cls):
        return raw
    if not isinstance(raw, str):
        raise CandidateFormatError(f"Unknown {what}: {raw!r}")
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        pass
    alias = aliases.get(raw.strip().upper())
    if alias is None:
        raise CandidateFormatError(f"Unknown {what}: {raw!r}")
    return alias


def _parse_float(raw, name, allow_none=True):
    if raw is None:
        if allow_none:
            return None
        raise CandidateFormatError(f"Missing numeric field '{name}'")
    if isinstance(raw, bool):
        raise CandidateFormatError(f"Field '{name}' must be a number, got {raw!r}")
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise CandidateFormatError(f"Field '{name}' must be a number, got {raw!r}") from None


def evidence_from_dict(data):
    if not isinstance(data, dict):
        raise CandidateFormatError(f"Evidence item must be an object, got {type(data).__name__}")
    return EvidenceItem(
        kind=_parse_enum(EvidenceKind, KIND_ALIASES, data.get("kind", data.get("type")), "evidence kind"),
        label=str(data.get("label", "")),
        detail=str(data.get("detail", "") or ""),
        weight=_parse_float(data.get("weight", 0.5), "weight", allow_none=False),
    )


def candidate_from_dict(data):
    """Builds a LocationCandidate from its JSON form (kebab-case or detector names)."""
    if not isinstance(data, dict):
        raise CandidateFormatError(f"Candidate must be an object, got {type(data).__name__}")

    street_view = None
    preview = data.get("street_view")
    if isinstance(preview, dict):
        street_view = StreetViewPreview(
            embed_url=preview.get("embed_url"),
            image_url=preview.get("image_url"),
            heading=_parse_float(preview.get("heading"), "heading") or 0.0,
        )

    evidence = data.get("evidence", data.get("evidences")) or []
    if not isinstance(evidence, list):
        raise CandidateFormatError("Field 'evidence' must be a list")

    return LocationCandidate(
        latitude=_parse_float(data.get("latitude"), "latitude"),
        longitude=_parse_float(data.get("longitude"), "longitude"),
        method=_parse_enum(CandidateMethod, METHOD_ALIASES, data.get("method", data.get("source")), "method"),
        confidence=_parse_float(data.get("confidence", 0.0), "confidence", allow_none=False),
        address=data.get("address") or None,
        evidence=tuple(evidence_from_dict(item) for item in evidence),
        street_view=street_view,
        method_tag=data.get("method_tag") or None,
    )


def candidates_from_list(items):
    if not isinstance(items, list):
        raise CandidateFormatError("Candidates must be given as a list")
    return [candidate_from_dict(item) for item in items]


# --- Sanitizing ---
def sanitize_candidates(candidates):
    """
    Drops candidates with unusable coordinates and clamps out-of-range scores.
    Every repair is logged; nothing here is fatal.
    """
    cleaned = []
    for index, cand in enumerate(candidates):
        lat, lon = cand.latitude, cand.longitude
        if (lat is None) != (lon is None):
            logging.warning(f"  Malformed candidate #{index} ({cand.method.value}): only one coordinate set. Dropped.")
            continue
        if lat is None:
            logging.info(f"  Candidate #{index} ({cand.method.value}) has no coordinates. Dropped.")
            continue
        if not cand.has_coordinates:
            logging.warning(f"  Malformed candidate #{index} ({cand.method.value}): non-finite coordinates. Dropped.")
            continue

        confidence = cand.confidence
        if not math.isfinite(confidence):
            logging.warning(f"  Malformed candidate #{index} ({cand.method.value}): confidence {confidence} reset to 0.")
            confidence = 0.0
        elif not 0.0 <= confidence <= 1.0:
            logging.warning(f"  Malformed candidate #{index} ({cand.method.value}): confidence {confidence} clamped.")

        evidence = []
        for item in cand.evidence:
            if math.isfinite(item.weight) and 0.0 <= item.weight <= 1.0:
                evidence.append(item)
                continue
            logging.warning(f"  Malformed evidence '{item.label}' on candidate #{index}: weight {item.weight} clamped.")
            evidence.append(replace(item, weight=clamp_unit(item.weight) if math.isfinite(item.weight) else 0.0))

        cleaned.append(replace(cand, confidence=clamp_unit(confidence), evidence=tuple(evidence)))
    return cleaned
