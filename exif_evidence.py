# exif_evidence.py
# Turns the GPS block of an image's EXIF metadata into a location candidate

import logging

from PIL import Image, ExifTags, UnidentifiedImageError

from fusion_types import CandidateMethod, EvidenceItem, EvidenceKind, LocationCandidate

EXIF_CONFIDENCE = 0.95      # Embedded GPS is rarely wrong when present
EXIF_EVIDENCE_WEIGHT = 1.0


# --- EXIF Data Processing ---
def get_gps_info(image_path):
    """Reads the decoded GPS IFD of an image, or None when it has none."""
    try:
        logging.info(f"Opening image for EXIF: {image_path}")
        with Image.open(image_path) as image:
            logging.info(f"Image format identified by Pillow: {image.format}")
            exif = image.getexif()
            if not exif:
                logging.info("No EXIF metadata found in image.")
                return None
            gps_raw = exif.get_ifd(ExifTags.IFD.GPSInfo)
    except FileNotFoundError:
        logging.error(f"Image file not found at: {image_path}")
        return None
    except UnidentifiedImageError:
        logging.warning(f"Cannot identify image format for: {image_path}")
        return None
    except OSError as e:
        logging.error(f"Error reading image or EXIF data from {image_path}: {e}")
        return None

    if not gps_raw:
        logging.info("EXIF metadata has no GPS block.")
        return None
    # Decode GPS sub-tags to names like 'GPSLatitude'
    return {ExifTags.GPSTAGS.get(k, k): v for k, v in gps_raw.items()}


def dms_to_decimal(dms, ref):
    """Converts GPS Degrees/Minutes/Seconds to decimal degrees."""
    if not isinstance(dms, (tuple, list)) or len(dms) < 3:
        logging.warning(f"Invalid DMS format for conversion: {dms}")
        return None
    try:
        degrees = float(dms[0])
        minutes = float(dms[1]) / 60.0
        seconds = float(dms[2]) / 3600.0
    except (ValueError, TypeError, ZeroDivisionError) as e:
        logging.warning(f"Error converting DMS component to float ({dms}): {e}")
        return None
    decimal = degrees + minutes + seconds
    if ref in ("S", "W"):  # Southern and Western hemispheres are negative
        decimal = -decimal
    return decimal


def get_decimal_coordinates(gps_info):
    """Extracts latitude and longitude in decimal format from GPS info."""
    if not gps_info:
        return None, None
    lat_dms, lon_dms = gps_info.get("GPSLatitude"), gps_info.get("GPSLongitude")
    lat_ref, lon_ref = gps_info.get("GPSLatitudeRef"), gps_info.get("GPSLongitudeRef")

    if not all([lat_dms, lat_ref, lon_dms, lon_ref]):
        return None, None
    lat = dms_to_decimal(lat_dms, lat_ref)
    lon = dms_to_decimal(lon_dms, lon_ref)
    if lat is None or lon is None:
        logging.warning("DMS to Decimal conversion failed for GPS data.")
        return None, None
    return lat, lon


def candidate_from_gps_info(gps_info, address=None):
    lat, lon = get_decimal_coordinates(gps_info)
    if lat is None or lon is None:
        return None
    evidence = EvidenceItem(
        kind=EvidenceKind.METADATA_COORDINATES,
        label="GPS coordinates in image metadata",
        detail=f"EXIF GPS: {lat:.6f}, {lon:.6f}",
        weight=EXIF_EVIDENCE_WEIGHT,
    )
    return LocationCandidate(
        latitude=lat,
        longitude=lon,
        method=CandidateMethod.EXIF_GPS,
        confidence=EXIF_CONFIDENCE,
        address=address,
        evidence=(evidence,),
    )


def candidate_from_image(image_path):
    """EXIF GPS candidate for an image file, or None when the image carries no usable GPS."""
    candidate = candidate_from_gps_info(get_gps_info(image_path))
    if candidate is None:
        logging.info("No usable EXIF GPS data found.")
    else:
        logging.info(f"EXIF Coords Found: Lat={candidate.latitude:.6f}, Lon={candidate.longitude:.6f}")
    return candidate
