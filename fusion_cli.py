# fusion_cli.py (Command-line front-end for the fusion engine)

import argparse
import json
import os
import sys

from fusion_types import CandidateFormatError, ConfigurationError, candidates_from_list, confidence_label
from fusion_engine import CONSOLIDATION_MODES, DEFAULT_REGION, localize
from exif_evidence import candidate_from_image


def load_candidates(path):
    """Reads a JSON list of candidates (or an object with a 'candidates' list)."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("candidates", [])
    return candidates_from_list(data)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Evidence Fusion Engine: consolidate detector candidates into one location.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("candidates_path", help="Path to a JSON file with the detector candidates")
    parser.add_argument("--region", "-r", default=DEFAULT_REGION,
                        help="Region code the property must lie in (e.g. a département code)")
    parser.add_argument("--image", "-i", default=None,
                        help="Optional image whose EXIF GPS is added as a candidate")
    parser.add_argument("--map-screenshot", action="store_true",
                        help="A map screenshot was positively detected upstream")
    parser.add_argument("--critical-landmark", action="store_true", default=None,
                        help="A critical landmark was detected upstream (derived from evidence if omitted)")
    parser.add_argument("--consolidate", choices=CONSOLIDATION_MODES, default=None,
                        help="Weighted consolidation mode (defaults to FUSION_CONSOLIDATION_MODE)")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    return parser


def print_result(result):
    print("\n" + "=" * 35)
    print("      FUSION RESULT")
    print("=" * 35)
    if result is None:
        print("Source of Prediction: None")
        print("Could not determine a location from the supplied candidates.")
        print("=" * 35 + "\n")
        return

    print(f"Source of Prediction: {result.source.value}")
    print(f"Confidence:           {result.confidence:.2f} ({confidence_label(result.confidence)})")
    print(f"Predicted Coordinates: Lat={result.latitude:.6f}, Lon={result.longitude:.6f}")
    if result.address and not result.address_too_vague:
        print(f"Predicted Address:     {result.address}")
    else:
        print(f"Predicted Address:     (approximate) {result.address or 'N/A'}")
    if result.needs_manual_review:
        print("Review:               manual confirmation recommended")
    print(f"Map Link:             {result.map_url}")
    if result.explanation:
        print(f"\n{result.explanation.summary}")
        for item in result.explanation.evidence:
            print(f"  - [{item.kind.value}] {item.label} ({item.weight:.2f})")
    print("=" * 35 + "\n")


def main_cli(argv=None):
    args = build_parser().parse_args(argv)

    if not os.path.exists(args.candidates_path):
        print(f"Error: Candidates file not found at path: {args.candidates_path}")
        return 1

    try:
        candidates = load_candidates(args.candidates_path)
    except (OSError, json.JSONDecodeError, CandidateFormatError) as e:
        print(f"Error: Could not read candidates from {args.candidates_path}: {e}")
        return 1

    if args.image:
        if not os.path.exists(args.image):
            print(f"Error: Image file not found at path: {args.image}")
            return 1
        exif_candidate = candidate_from_image(args.image)
        if exif_candidate is not None:
            candidates.append(exif_candidate)

    try:
        result = localize(
            candidates,
            region_code=args.region,
            map_screenshot_detected=args.map_screenshot,
            critical_landmark_detected=args.critical_landmark,
            consolidation=args.consolidate,
        )
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1

    if args.json:
        print(json.dumps({"success": result is not None, "result": result.to_dict() if result else None},
                         indent=2, ensure_ascii=False))
    else:
        print_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main_cli())
