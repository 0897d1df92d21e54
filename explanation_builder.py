# explanation_builder.py
# Ranks the supporting evidence and writes the human-readable justification

import logging

from fusion_types import CandidateMethod, EvidenceKind, Explanation, clamp_unit

# --- Confidence Bonuses: (bonus, cap) ---
SEVERAL_EVIDENCE_COUNT = 3
SEVERAL_EVIDENCE_BONUS = (0.10, 0.95)
MANY_EVIDENCE_COUNT = 5
MANY_EVIDENCE_BONUS = (0.05, 0.98)
STREET_VIEW_STRONG_MATCH = 0.88
STREET_VIEW_BONUS = (0.10, 0.98)
OCR_SHOP_SIGN_BONUS = (0.10, 0.95)
MAP_SCREENSHOT_STRONG = 0.85
MAP_SCREENSHOT_BONUS = (0.10, 0.98)
MODEL_REASONING_STRONG = 0.7
MODEL_REASONING_BONUS = (0.12, 0.98)

# Prefixes detectors put in front of labels; stripped for the summary sentence
_LABEL_PREFIXES = (
    "shop sign detected:",
    "road marking:",
    "landmark detected:",
    "enseigne détectée :",
    "marquage au sol :",
    "landmark détecté :",
)


def dedup_evidence(items):
    """One item per (kind, label), keeping the heaviest; sorted by weight descending."""
    unique = {}
    for item in items:
        key = (item.kind, item.label)
        current = unique.get(key)
        if current is None or item.weight > current.weight:
            unique[key] = item
    return sorted(unique.values(), key=lambda item: item.weight, reverse=True)


def collect_evidence(candidates):
    items = []
    for cand in candidates:
        items.extend(cand.evidence)
    return dedup_evidence(items)


def _clean_label(label):
    text = label.strip()
    lowered = text.lower()
    for prefix in _LABEL_PREFIXES:
        if lowered.startswith(prefix):
            return text[len(prefix):].strip()
    return text


def _labels(evidence, kind):
    return [_clean_label(item.label) for item in evidence if item.kind is kind]


def _join_parts(parts):
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]


def build_summary(evidence, address=None, source=None):
    """One sentence explaining why the property was placed where it was."""
    place = address or "this position"
    kinds = {item.kind for item in evidence}

    if EvidenceKind.MAP_SCREENSHOT in kinds or source is CandidateMethod.MAP_SCREENSHOT:
        return f"Located this property at {place} using coordinates read directly from a map screenshot."
    if source is CandidateMethod.EXIF_GPS or (
        source is None and EvidenceKind.METADATA_COORDINATES in kinds
    ):
        return f"Located this property at {place} using the GPS coordinates embedded in the image metadata."

    parts = []
    shop_signs = _labels(evidence, EvidenceKind.SHOP_SIGN)
    if shop_signs:
        parts.append(f"the shop signs ({', '.join(shop_signs)})")
    road_markings = _labels(evidence, EvidenceKind.ROAD_MARKING)
    if road_markings:
        parts.append(f"the detected street name ({', '.join(road_markings)})")
    if EvidenceKind.STREET_VIEW_MATCH in kinds:
        parts.append("a strong match with a Street View image")
    landmarks = _labels(evidence, EvidenceKind.LANDMARK)
    if landmarks:
        parts.append(f"the view towards {', '.join(landmarks)}")
    if EvidenceKind.ARCHITECTURE_STYLE in kinds:
        parts.append("the characteristic architectural style")

    if not parts:
        return f"Located this property at {place} based on visual analysis of the image."
    return f"Located this property at {place} based on {_join_parts(parts)}."


def explain(candidates, address=None, source=None):
    """Deduplicated, weight-ranked evidence plus a summary sentence."""
    evidence = collect_evidence(candidates)
    summary = build_summary(evidence, address=address, source=source)
    logging.info(f"  Explanation: {len(evidence)} evidence items. {summary}")
    return Explanation(summary=summary, evidence=tuple(evidence))


def _raise_to(confidence, bonus):
    amount, cap = bonus
    # A cap below the current score never lowers it
    return max(confidence, min(cap, confidence + amount))


def apply_evidence_bonuses(confidence, evidence, source=None, source_confidence=None):
    """
    Raises confidence for corroborating evidence and for a few strong winning methods.
    `source_confidence` is the dominant candidate's own score (defaults to `confidence`).
    """
    if source_confidence is None:
        source_confidence = confidence
    score = confidence

    if len(evidence) >= SEVERAL_EVIDENCE_COUNT:
        score = _raise_to(score, SEVERAL_EVIDENCE_BONUS)
    if len(evidence) >= MANY_EVIDENCE_COUNT:
        score = _raise_to(score, MANY_EVIDENCE_BONUS)

    if source is CandidateMethod.STREET_VIEW_MATCH and source_confidence > STREET_VIEW_STRONG_MATCH:
        score = _raise_to(score, STREET_VIEW_BONUS)
    elif source is CandidateMethod.OCR_GEOCODING and any(item.kind is EvidenceKind.SHOP_SIGN for item in evidence):
        score = _raise_to(score, OCR_SHOP_SIGN_BONUS)
    elif source is CandidateMethod.MAP_SCREENSHOT and source_confidence > MAP_SCREENSHOT_STRONG:
        score = _raise_to(score, MAP_SCREENSHOT_BONUS)
    elif source is CandidateMethod.MODEL_REASONING and source_confidence > MODEL_REASONING_STRONG:
        score = _raise_to(score, MODEL_REASONING_BONUS)

    score = clamp_unit(score)
    if score != confidence:
        logging.info(f"  Evidence bonuses: confidence {confidence:.2f} -> {score:.2f}")
    return score
