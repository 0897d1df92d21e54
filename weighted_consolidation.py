# weighted_consolidation.py
# Blends independent signal categories that measure the same location

import logging
from types import MappingProxyType

from fusion_types import CandidateMethod, ConsolidatedResult, clamp_unit
from result_merger import haversine_distance

# --- Category Table ---
# Order matters: a candidate belongs to the first category it matches.
STREET_VIEW_MATCH = "street_view_match"
OCR_STREET = "ocr_street"
ARCHITECTURE_STYLE = "architecture_style"
LANDMARK_DISTANCE = "landmark_distance"
GENERAL_SIMILARITY = "general_similarity"

CATEGORY_WEIGHTS = MappingProxyType({
    STREET_VIEW_MATCH: 0.40,
    OCR_STREET: 0.20,
    ARCHITECTURE_STYLE: 0.20,
    LANDMARK_DISTANCE: 0.10,
    GENERAL_SIMILARITY: 0.10,
})

STREET_VIEW_TAGS = {"combined", "ssim", "embedding"}
HARD_FIX_METHODS = (CandidateMethod.MAP_SCREENSHOT, CandidateMethod.EXIF_GPS)
MAX_CONSOLIDATION_SPREAD_M = 500.0
MAX_CONSOLIDATED_CONFIDENCE = 0.95


def categorize(candidate):
    method = candidate.method
    tag = (candidate.method_tag or "").lower()

    if method is CandidateMethod.STREET_VIEW_MATCH or tag in STREET_VIEW_TAGS:
        return STREET_VIEW_MATCH
    if method is CandidateMethod.OCR_GEOCODING or "ocr" in tag:
        return OCR_STREET
    if "architecture" in tag or "style" in tag:
        return ARCHITECTURE_STYLE
    if method is CandidateMethod.LANDMARK_RECOGNITION:
        return LANDMARK_DISTANCE
    return GENERAL_SIMILARITY


def pick_category_representatives(candidates, weights=CATEGORY_WEIGHTS):
    """Highest-confidence candidate per non-empty category, in category order."""
    best = {}
    for cand in candidates:
        if not cand.has_coordinates:
            continue
        category = categorize(cand)
        current = best.get(category)
        if current is None or cand.confidence > current.confidence:
            best[category] = cand
    return {category: best[category] for category in weights if category in best}


def should_consolidate(candidates, weights=CATEGORY_WEIGHTS, max_spread_m=MAX_CONSOLIDATION_SPREAD_M):
    """
    True when the set looks like several independent measurements of one place:
    at least two categories, no hard position fix, and all representatives close together.
    """
    if any(c.method in HARD_FIX_METHODS for c in candidates):
        return False
    chosen = list(pick_category_representatives(candidates, weights).values())
    if len(chosen) < 2:
        return False
    for i in range(len(chosen) - 1):
        for j in range(i + 1, len(chosen)):
            a, b = chosen[i], chosen[j]
            if haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude) > max_spread_m:
                return False
    return True


def consolidate_weighted(candidates, weights=CATEGORY_WEIGHTS):
    """Weighted average of the per-category representatives, or None when no weight accrues."""
    if not candidates:
        return None

    chosen = pick_category_representatives(candidates, weights)
    breakdown = {category: 0.0 for category in weights}
    total_weight = weighted_lat = weighted_lng = 0.0
    best_address, best_confidence = None, -1.0

    for category, cand in chosen.items():
        weight = weights[category] * clamp_unit(cand.confidence)
        breakdown[category] = weight
        weighted_lat += cand.latitude * weight
        weighted_lng += cand.longitude * weight
        total_weight += weight
        if cand.confidence > best_confidence:
            best_confidence = cand.confidence
            best_address = cand.address
        logging.info(f"    {category}: {cand.method.value} conf {cand.confidence:.2f} -> weight {weight:.3f}")

    if total_weight <= 0:
        logging.info("  Weighted consolidation: total weight is zero, no result.")
        return None

    result = ConsolidatedResult(
        latitude=weighted_lat / total_weight,
        longitude=weighted_lng / total_weight,
        confidence=min(MAX_CONSOLIDATED_CONFIDENCE, total_weight),
        source=CandidateMethod.CONSOLIDATED,
        address=best_address,
        breakdown=breakdown,
    )
    logging.info(
        f"  Weighted consolidation: ({result.latitude:.6f}, {result.longitude:.6f}) "
        f"confidence {result.confidence:.2f} from {len(chosen)} categories"
    )
    return result
