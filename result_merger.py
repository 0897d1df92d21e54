# result_merger.py
# Picks or blends the final position from the reprioritized candidates

import math
import re
import logging

from fusion_types import (
    SOURCE_PRIORITY,
    ConsolidatedResult,
    clamp_unit,
    ranking_key,
    source_priority,
)

# --- Merge Constants ---
EARTH_RADIUS_M = 6371000
SHORT_CIRCUIT_PRIORITY = 80             # Sources at or above this may skip blending...
SHORT_CIRCUIT_CONFIDENCE = 0.85         # ...when at least this confident
TOP_N = 3
COHERENT_DISTANCE_M = 100.0             # Below: confidence bonus
CENTROID_DISTANCE_M = 200.0             # Below: blend coordinates
DISAGREEMENT_DISTANCE_M = 500.0         # Above: confidence penalty
MAX_COHERENCE_BONUS = 0.15
DISAGREEMENT_PENALTY = 0.2
DISAGREEMENT_FLOOR = 0.3


# --- Haversine Distance ---
def haversine_distance(lat1, lon1, lat2, lon2):
    """Great-circle distance between two lat/lon points in meters."""
    if None in (lat1, lon1, lat2, lon2):
        return float("inf")
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    # Rounding can push a past 1 for near-antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def pairwise_distances(candidates):
    distances = []
    for i in range(len(candidates) - 1):
        for j in range(i + 1, len(candidates)):
            a, b = candidates[i], candidates[j]
            distances.append(haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude))
    return distances


def mean_pairwise_distance(candidates):
    distances = pairwise_distances(candidates)
    if not distances:
        return 0.0
    return sum(distances) / len(distances)


def coherence_adjusted_confidence(confidence, avg_distance):
    """Agreement raises trust, wide disagreement lowers it."""
    if avg_distance < COHERENT_DISTANCE_M:
        bonus = min(MAX_COHERENCE_BONUS, (COHERENT_DISTANCE_M - avg_distance) / 1000)
        return clamp_unit(confidence + bonus)
    if avg_distance > DISAGREEMENT_DISTANCE_M:
        return clamp_unit(max(DISAGREEMENT_FLOOR, confidence - DISAGREEMENT_PENALTY))
    return clamp_unit(confidence)


def confidence_weighted_centroid(candidates):
    """Returns (lat, lng), or None when the confidences sum to zero."""
    weights = [clamp_unit(c.confidence) for c in candidates]
    total = sum(weights)
    if total <= 0:
        return None
    lat = sum(c.latitude * w for c, w in zip(candidates, weights)) / total
    lng = sum(c.longitude * w for c, w in zip(candidates, weights)) / total
    return lat, lng


def merge(candidates, priorities=SOURCE_PRIORITY):
    """
    Selects or blends a final position.

    Ranking is (source priority desc, confidence desc). A single strong, highly
    confident source is returned directly; otherwise the top three candidates are
    checked for spatial coherence, which adjusts confidence and may blend the
    coordinates into a confidence-weighted centroid.

    Returns a ConsolidatedResult (without explanation), or None when no valid
    candidate remains.
    """
    valid = [c for c in candidates if c.has_coordinates]
    if len(valid) < len(candidates):
        logging.info(f"  Merge: ignored {len(candidates) - len(valid)} candidates without usable coordinates.")

    if not valid:
        logging.info("  Merge: no valid candidates.")
        return None
    if len(valid) == 1:
        return ConsolidatedResult.from_candidate(valid[0])

    ranked = sorted(valid, key=lambda c: ranking_key(c, priorities))
    best = ranked[0]
    best_priority = source_priority(best.method, priorities)

    if best_priority >= SHORT_CIRCUIT_PRIORITY and best.confidence >= SHORT_CIRCUIT_CONFIDENCE:
        logging.info(
            f"  Merge: {best.method.value} (priority {best_priority}, confidence {best.confidence:.2f}) "
            "is strong enough to use directly."
        )
        return ConsolidatedResult.from_candidate(best)

    top = ranked[:TOP_N]
    avg_distance = mean_pairwise_distance(top)
    final_confidence = coherence_adjusted_confidence(clamp_unit(best.confidence), avg_distance)
    logging.info(
        f"  Merge: top {len(top)} average spread {avg_distance:.1f} m, "
        f"confidence {best.confidence:.2f} -> {final_confidence:.2f}"
    )

    final_lat, final_lng = best.latitude, best.longitude
    if avg_distance < CENTROID_DISTANCE_M:
        centroid = confidence_weighted_centroid(top)
        if centroid is not None:
            final_lat, final_lng = centroid
            logging.info(f"  Merge: coherent cluster, centroid ({final_lat:.6f}, {final_lng:.6f})")

    return ConsolidatedResult.from_candidate(
        best,
        latitude=final_lat,
        longitude=final_lng,
        confidence=final_confidence,
    )


# --- Address Vagueness ---
_PLACE_NAME = r"[^\W\d_]+(?:[-'][^\W\d_]+)*"

_VAGUE_ADDRESS_PATTERNS = (
    re.compile(rf"^\d{{5}}\s+{_PLACE_NAME}$"),                    # "75000 Paris"
    re.compile(rf"^{_PLACE_NAME},\s*france$", re.IGNORECASE),     # "Paris, France"
    re.compile(rf"^{_PLACE_NAME}$"),                              # "Paris"
)


def _component_types(components):
    types = set()
    for component in components or []:
        types.update(component.get("types") or [])
    return types


def is_address_too_vague(address, components=None):
    """
    True when the address only pins a city or postcode area.

    `components` are geocoder address components in the Google format
    ({'types': [...], 'long_name': ..., 'short_name': ...}).
    """
    if not address or not address.strip():
        return True
    text = address.strip()
    if any(pattern.match(text) for pattern in _VAGUE_ADDRESS_PATTERNS):
        return True

    if components is not None:
        # Postcode + locality only also lands here
        types = _component_types(components)
        if "street_number" not in types and "route" not in types:
            return True
    return False
