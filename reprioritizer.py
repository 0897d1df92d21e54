# reprioritizer.py
# Re-weights candidate confidence by evidence strength and known failure modes

import logging

from fusion_types import (
    CRITICAL_LANDMARKS,
    CandidateMethod,
    EvidenceKind,
    FusionContext,
    clamp_unit,
)

# --- Adjustment Table ---
LANDMARK_BONUS = 0.3
CRITICAL_LANDMARK_BONUS = 0.6
TEXT_EVIDENCE_BONUS = 0.4
EXIF_BONUS = 0.2
MAP_SCREENSHOT_BONUS = 0.3
STREET_VIEW_CRITICAL_LANDMARK_PENALTY = 0.5
STREET_VIEW_SCREENSHOT_PENALTY = 0.4

TEXT_EVIDENCE_KINDS = (EvidenceKind.SHOP_SIGN, EvidenceKind.ROAD_MARKING, EvidenceKind.OCR_TEXT)


def is_critical_landmark(name, allow_list=CRITICAL_LANDMARKS):
    if not name:
        return False
    name_lower = name.lower()
    return any(landmark in name_lower for landmark in allow_list)


def detect_critical_landmark(candidates, allow_list=CRITICAL_LANDMARKS):
    """True if any landmark evidence names a place on the allow-list."""
    for cand in candidates:
        for item in cand.evidence:
            if item.kind is not EvidenceKind.LANDMARK:
                continue
            if is_critical_landmark(item.label, allow_list) or is_critical_landmark(item.detail, allow_list):
                return True
    return False


def build_context(candidates, map_screenshot_detected=False, critical_landmark_detected=None):
    """Fills in the critical-landmark flag from evidence when the caller left it unset."""
    if critical_landmark_detected is None:
        critical_landmark_detected = detect_critical_landmark(candidates)
    return FusionContext(
        map_screenshot_detected=bool(map_screenshot_detected),
        critical_landmark_detected=bool(critical_landmark_detected),
    )


def adjusted_confidence(candidate, context):
    """Applies the bonus/penalty rules to one candidate and returns the clamped score."""
    score = candidate.confidence
    method = candidate.method

    if candidate.has_evidence(EvidenceKind.LANDMARK) or method is CandidateMethod.LANDMARK_RECOGNITION:
        bonus = CRITICAL_LANDMARK_BONUS if context.critical_landmark_detected else LANDMARK_BONUS
        score += bonus
        logging.debug(f"    Landmark evidence: +{bonus} -> {score:.2f}")

    if candidate.has_evidence(*TEXT_EVIDENCE_KINDS) or method is CandidateMethod.OCR_GEOCODING:
        score += TEXT_EVIDENCE_BONUS
        logging.debug(f"    Sign/OCR evidence: +{TEXT_EVIDENCE_BONUS} -> {score:.2f}")

    if method is CandidateMethod.EXIF_GPS:
        score += EXIF_BONUS
        logging.debug(f"    EXIF GPS: +{EXIF_BONUS} -> {score:.2f}")
    elif method is CandidateMethod.MAP_SCREENSHOT:
        score += MAP_SCREENSHOT_BONUS
        logging.debug(f"    Map screenshot: +{MAP_SCREENSHOT_BONUS} -> {score:.2f}")
    elif method is CandidateMethod.STREET_VIEW_MATCH:
        # Both penalties are independent and may stack
        if context.critical_landmark_detected:
            score -= STREET_VIEW_CRITICAL_LANDMARK_PENALTY
            logging.debug(f"    Street View under critical landmark: -{STREET_VIEW_CRITICAL_LANDMARK_PENALTY} -> {score:.2f}")
        if context.map_screenshot_detected:
            score -= STREET_VIEW_SCREENSHOT_PENALTY
            logging.debug(f"    Street View under map screenshot: -{STREET_VIEW_SCREENSHOT_PENALTY} -> {score:.2f}")

    return clamp_unit(score)


def reprioritize(candidates, context=None):
    """Returns new candidates with adjusted confidence, sorted by it (stable, descending)."""
    context = context or FusionContext()
    logging.info(
        f"  Reprioritizing {len(candidates)} candidates "
        f"(map_screenshot={context.map_screenshot_detected}, critical_landmark={context.critical_landmark_detected})"
    )

    adjusted = []
    for cand in candidates:
        new_confidence = adjusted_confidence(cand, context)
        logging.info(f"    {cand.method.value}: {cand.confidence:.2f} -> {new_confidence:.2f}")
        adjusted.append(cand.with_confidence(new_confidence))

    adjusted.sort(key=lambda c: c.confidence, reverse=True)
    if adjusted:
        best = adjusted[0]
        logging.info(f"  Best after reprioritization: {best.method.value} (score: {best.confidence:.2f})")
    return adjusted
