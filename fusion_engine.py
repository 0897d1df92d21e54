# fusion_engine.py
# Core logic for the Evidence Fusion & Geolocation Consolidation Engine

import os
import logging
from dataclasses import replace

from dotenv import load_dotenv

from fusion_types import ConfigurationError, sanitize_candidates
from geofence import DEFAULT_GEOFENCES, filter_candidates, load_geofences
from reprioritizer import build_context, reprioritize
from weighted_consolidation import consolidate_weighted, should_consolidate
from result_merger import is_address_too_vague, merge
from explanation_builder import apply_evidence_bonuses, explain

load_dotenv()

# --- Setup Logging ---
logging.basicConfig(
    level=os.getenv("FUSION_LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - FUSION_ENGINE - %(levelname)s - %(message)s'
)

# --- Configuration ---
CONSOLIDATION_MODES = ("auto", "always", "never")
DEFAULT_REGION = os.getenv("FUSION_DEFAULT_REGION") or None
DEFAULT_CONSOLIDATION_MODE = os.getenv("FUSION_CONSOLIDATION_MODE", "auto").lower()
try:
    MAX_CANDIDATES = int(os.getenv("FUSION_MAX_CANDIDATES", "50"))
except ValueError:
    logging.warning("FUSION_MAX_CANDIDATES is not an integer; using 50.")
    MAX_CANDIDATES = 50

if DEFAULT_CONSOLIDATION_MODE not in CONSOLIDATION_MODES:
    logging.warning(f"Unknown FUSION_CONSOLIDATION_MODE '{DEFAULT_CONSOLIDATION_MODE}'; using 'auto'.")
    DEFAULT_CONSOLIDATION_MODE = "auto"

# Geofences are loaded once and shared read-only by every call
_geofence_file = os.getenv("FUSION_GEOFENCE_FILE")
GEOFENCES = load_geofences(_geofence_file) if _geofence_file else DEFAULT_GEOFENCES


def _wants_consolidation(candidates, mode):
    if mode == "never":
        return False
    if mode == "always":
        return True
    return should_consolidate(candidates)


# --- Main Processing Function ---
def localize(candidates, region_code=None, map_screenshot_detected=False,
             critical_landmark_detected=None, consolidation=None, geofences=None):
    """
    Fuses detector candidates into one located result.

    Returns a ConsolidatedResult, or None when nothing valid survives the
    geofence. Raises ConfigurationError for an unknown region code or
    consolidation mode.
    """
    region_code = region_code or DEFAULT_REGION
    if not region_code:
        raise ConfigurationError("No region code given and FUSION_DEFAULT_REGION is not set")
    mode = consolidation or DEFAULT_CONSOLIDATION_MODE
    if not isinstance(mode, str):
        raise ConfigurationError(f"Consolidation mode must be a string, got {consolidation!r}")
    mode = mode.lower()
    if mode not in CONSOLIDATION_MODES:
        raise ConfigurationError(f"Unknown consolidation mode: {consolidation!r}")
    geofences = geofences if geofences is not None else GEOFENCES

    logging.info(f"--- Starting Evidence Fusion for region {region_code} ({len(candidates)} candidates) ---")
    if len(candidates) > MAX_CANDIDATES:
        logging.warning(f"Received {len(candidates)} candidates, above the soft limit of {MAX_CANDIDATES}.")

    logging.info("--- Stage 1: Sanitize & Geofence ---")
    valid = sanitize_candidates(candidates)
    inside = filter_candidates(valid, region_code, geofences)
    if not inside:
        logging.warning("No candidates left inside the region. Could not localize.")
        return None

    logging.info("--- Stage 2: Reprioritization ---")
    context = build_context(inside, map_screenshot_detected, critical_landmark_detected)
    ranked = reprioritize(inside, context)

    result = None
    if _wants_consolidation(ranked, mode):
        logging.info("--- Stage 3: Weighted Consolidation ---")
        result = consolidate_weighted(ranked)
    else:
        logging.info("--- Stage 3: Weighted Consolidation skipped ---")

    if result is None:
        logging.info("--- Stage 4: Result Merge ---")
        result = merge(ranked)
    if result is None:
        logging.warning("Merge produced no result. Could not localize.")
        return None

    logging.info("--- Stage 5: Explanation ---")
    dominant = _dominant_candidate(ranked, result)
    explanation = explain(ranked, address=result.address, source=result.source)
    confidence = apply_evidence_bonuses(
        result.confidence,
        explanation.evidence,
        source=result.source,
        source_confidence=dominant.confidence if dominant else None,
    )
    result = replace(
        result,
        confidence=confidence,
        explanation=explanation,
        address_too_vague=is_address_too_vague(result.address),
    )

    logging.info(
        f"--- Evidence Fusion Finished. Source: {result.source.value}, "
        f"Confidence: {result.confidence:.2f}, Position: ({result.latitude:.6f}, {result.longitude:.6f}) ---"
    )
    return result


def _dominant_candidate(candidates, result):
    """The candidate whose method produced the result, highest confidence first."""
    for cand in candidates:
        if cand.method is result.source:
            return cand
    return None


if __name__ == '__main__':
    logging.info("fusion_engine.py executed directly (intended for import). Use fusion_cli.py instead.")
