# geofence.py
# Hard geographic containment: drops candidates outside the requested region

import json
import logging
from dataclasses import dataclass
from types import MappingProxyType

from shapely.geometry import Point, box, shape
from shapely.ops import unary_union
from shapely.prepared import prep

from fusion_types import ConfigurationError

# --- Built-in Regions ---
# French départements as simplified rectangles: code -> (name, (min_lng, min_lat, max_lng, max_lat))
DEPARTMENT_BOUNDS = MappingProxyType({
    "01": ("Ain", (4.5, 45.5, 6.0, 46.5)),
    "02": ("Aisne", (3.0, 49.0, 4.5, 50.0)),
    "03": ("Allier", (2.5, 46.0, 4.0, 47.0)),
    "04": ("Alpes-de-Haute-Provence", (5.5, 43.8, 7.0, 44.8)),
    "05": ("Hautes-Alpes", (5.5, 44.2, 7.2, 45.2)),
    "06": ("Alpes-Maritimes", (6.5, 43.3, 7.8, 44.0)),
    "07": ("Ardèche", (4.0, 44.3, 5.0, 45.5)),
    "08": ("Ardennes", (4.5, 49.2, 5.5, 50.2)),
    "09": ("Ariège", (1.0, 42.5, 2.0, 43.2)),
    "10": ("Aube", (3.5, 48.0, 5.0, 49.0)),
    "11": ("Aude", (1.8, 42.8, 3.0, 43.5)),
    "12": ("Aveyron", (2.0, 44.0, 3.5, 45.0)),
    "13": ("Bouches-du-Rhône", (4.5, 43.0, 5.8, 43.8)),
    "14": ("Calvados", (-1.0, 48.8, 0.5, 49.5)),
    "15": ("Cantal", (2.5, 44.8, 3.5, 45.5)),
    "16": ("Charente", (-0.5, 45.2, 1.0, 46.0)),
    "17": ("Charente-Maritime", (-1.5, 45.2, -0.2, 46.2)),
    "18": ("Cher", (2.0, 46.8, 3.0, 47.8)),
    "19": ("Corrèze", (1.2, 45.0, 2.5, 45.8)),
    "21": ("Côte-d'Or", (4.0, 47.0, 5.5, 48.0)),
    "22": ("Côtes-d'Armor", (-5.0, 48.0, -2.5, 49.0)),
    "23": ("Creuse", (1.5, 45.8, 2.5, 46.5)),
    "24": ("Dordogne", (0.0, 44.5, 1.5, 45.5)),
    "25": ("Doubs", (5.8, 46.8, 7.0, 47.8)),
    "26": ("Drôme", (4.5, 44.2, 5.5, 45.2)),
    "27": ("Eure", (0.8, 48.8, 2.0, 49.5)),
    "28": ("Eure-et-Loir", (1.0, 48.0, 2.0, 48.8)),
    "29": ("Finistère", (-5.0, 47.8, -3.5, 48.8)),
    "2A": ("Corse-du-Sud", (8.5, 41.8, 9.5, 42.5)),
    "2B": ("Haute-Corse", (8.5, 42.2, 9.5, 43.0)),
    "30": ("Gard", (3.8, 43.8, 5.0, 44.5)),
    "31": ("Haute-Garonne", (0.8, 43.0, 2.2, 44.0)),
    "32": ("Gers", (-0.5, 43.2, 1.0, 44.2)),
    "33": ("Gironde", (-1.2, 44.5, 0.0, 45.5)),
    "34": ("Hérault", (2.8, 43.2, 4.2, 44.2)),
    "35": ("Ille-et-Vilaine", (-2.2, 47.8, -1.0, 48.8)),
    "36": ("Indre", (1.2, 46.2, 2.2, 47.2)),
    "37": ("Indre-et-Loire", (0.0, 47.0, 1.2, 48.0)),
    "38": ("Isère", (5.0, 44.8, 6.5, 45.8)),
    "39": ("Jura", (5.2, 46.2, 6.5, 47.2)),
    "40": ("Landes", (-1.5, 43.5, -0.2, 44.5)),
    "41": ("Loir-et-Cher", (0.8, 47.2, 2.0, 48.2)),
    "42": ("Loire", (3.8, 45.2, 5.0, 46.2)),
    "43": ("Haute-Loire", (3.2, 44.8, 4.5, 45.8)),
    "44": ("Loire-Atlantique", (-2.5, 47.0, -1.0, 47.8)),
    "45": ("Loiret", (1.8, 47.5, 3.0, 48.5)),
    "46": ("Lot", (1.2, 44.2, 2.2, 45.2)),
    "47": ("Lot-et-Garonne", (0.0, 44.0, 1.2, 45.0)),
    "48": ("Lozère", (3.0, 44.2, 4.0, 45.2)),
    "49": ("Maine-et-Loire", (-1.2, 47.0, 0.2, 48.0)),
    "50": ("Manche", (-1.8, 48.5, -0.8, 49.5)),
    "51": ("Marne", (3.5, 48.5, 5.0, 49.5)),
    "52": ("Haute-Marne", (4.8, 47.8, 6.0, 48.8)),
    "53": ("Mayenne", (-1.2, 47.8, 0.0, 48.8)),
    "54": ("Meurthe-et-Moselle", (5.5, 48.2, 7.0, 49.2)),
    "55": ("Meuse", (5.0, 48.5, 6.0, 49.5)),
    "56": ("Morbihan", (-3.5, 47.2, -2.5, 48.2)),
    "57": ("Moselle", (5.8, 48.5, 7.5, 49.5)),
    "58": ("Nièvre", (3.0, 46.8, 4.2, 47.8)),
    "59": ("Nord", (2.5, 50.0, 4.5, 51.0)),
    "60": ("Oise", (2.0, 49.0, 3.5, 50.0)),
    "61": ("Orne", (0.0, 48.2, 1.0, 49.2)),
    "62": ("Pas-de-Calais", (1.5, 50.0, 3.5, 51.0)),
    "63": ("Puy-de-Dôme", (2.5, 45.2, 4.0, 46.2)),
    "64": ("Pyrénées-Atlantiques", (-1.8, 43.0, 0.0, 44.0)),
    "65": ("Hautes-Pyrénées", (-0.5, 42.8, 0.5, 43.8)),
    "66": ("Pyrénées-Orientales", (2.0, 42.2, 3.2, 43.2)),
    "67": ("Bas-Rhin", (7.0, 48.2, 8.0, 49.2)),
    "68": ("Haut-Rhin", (6.8, 47.2, 8.0, 48.2)),
    "69": ("Rhône", (4.5, 45.5, 5.5, 46.5)),
    "70": ("Haute-Saône", (5.5, 47.2, 7.0, 48.2)),
    "71": ("Saône-et-Loire", (3.8, 46.0, 5.2, 47.0)),
    "72": ("Sarthe", (-0.5, 47.5, 1.0, 48.5)),
    "73": ("Savoie", (5.8, 45.2, 7.2, 46.2)),
    "74": ("Haute-Savoie", (6.0, 45.8, 7.5, 46.8)),
    "75": ("Paris", (2.2, 48.8, 2.5, 48.9)),
    "76": ("Seine-Maritime", (0.0, 49.2, 2.0, 50.2)),
    "77": ("Seine-et-Marne", (2.5, 48.2, 4.0, 49.2)),
    "78": ("Yvelines", (1.5, 48.5, 2.5, 49.0)),
    "79": ("Deux-Sèvres", (-0.8, 46.0, 0.2, 47.0)),
    "80": ("Somme", (1.5, 49.5, 3.0, 50.5)),
    "81": ("Tarn", (1.5, 43.5, 2.5, 44.5)),
    "82": ("Tarn-et-Garonne", (0.8, 43.8, 2.0, 44.8)),
    "83": ("Var", (5.5, 43.0, 7.0, 43.8)),
    "84": ("Vaucluse", (4.8, 43.8, 5.8, 44.5)),
    "85": ("Vendée", (-2.2, 46.2, -0.8, 47.2)),
    "86": ("Vienne", (0.0, 46.2, 1.2, 47.2)),
    "87": ("Haute-Vienne", (1.0, 45.5, 2.0, 46.5)),
    "88": ("Vosges", (6.0, 47.8, 7.5, 48.8)),
    "89": ("Yonne", (3.0, 47.5, 4.5, 48.5)),
    "90": ("Territoire de Belfort", (6.8, 47.5, 7.5, 48.0)),
    "91": ("Essonne", (2.0, 48.3, 2.8, 48.8)),
    "92": ("Hauts-de-Seine", (2.0, 48.7, 2.5, 48.9)),
    "93": ("Seine-Saint-Denis", (2.3, 48.8, 2.6, 49.0)),
    "94": ("Val-de-Marne", (2.3, 48.6, 2.7, 48.9)),
    "95": ("Val-d'Oise", (1.8, 48.8, 2.5, 49.2)),
    "971": ("Guadeloupe", (-61.8, 15.8, -61.0, 16.5)),
    "972": ("Martinique", (-61.2, 14.3, -60.8, 14.9)),
    "973": ("Guyane", (-54.0, 2.0, -51.0, 6.0)),
    "974": ("La Réunion", (55.2, -21.4, 55.8, -20.8)),
    "976": ("Mayotte", (45.0, -13.0, 45.3, -12.6)),
})


@dataclass(frozen=True)
class Geofence:
    """A named containment region. Coordinates inside the shapely geometry are (lng, lat)."""

    code: str
    name: str
    geometry: object

    def __post_init__(self):
        # Prepared geometries are not hashable/comparable, so keep the cache out of the dataclass fields
        object.__setattr__(self, "_prepared", prep(self.geometry))

    def contains(self, latitude, longitude):
        """Boundary points count as inside."""
        if latitude is None or longitude is None:
            return False
        return self._prepared.covers(Point(longitude, latitude))


def normalize_region_code(region_code):
    """'2a' -> '2A', '1' -> '01', ' 75 ' -> '75'."""
    return str(region_code).strip().upper().zfill(2)


def build_default_geofences():
    return MappingProxyType({
        code: Geofence(code=code, name=name, geometry=box(*bounds))
        for code, (name, bounds) in DEPARTMENT_BOUNDS.items()
    })


def geofences_from_geojson(feature_collection):
    """Builds a registry from a GeoJSON FeatureCollection whose features carry a 'code' property."""
    features = feature_collection.get("features") if isinstance(feature_collection, dict) else None
    if not isinstance(features, list) or not features:
        raise ConfigurationError("Geofence GeoJSON must be a FeatureCollection with at least one feature")

    grouped = {}
    names = {}
    for index, feature in enumerate(features):
        if not isinstance(feature, dict):
            raise ConfigurationError(f"Geofence feature #{index} must be an object")
        properties = feature.get("properties") or {}
        code = properties.get("code")
        if code is None:
            raise ConfigurationError(f"Geofence feature #{index} has no 'code' property")
        try:
            geometry = shape(feature["geometry"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Geofence feature #{index} ({code}) has invalid geometry: {e}") from e
        if geometry.geom_type not in ("Polygon", "MultiPolygon"):
            raise ConfigurationError(f"Geofence feature #{index} ({code}) must be a Polygon or MultiPolygon, got {geometry.geom_type}")
        key = normalize_region_code(code)
        grouped.setdefault(key, []).append(geometry)
        names.setdefault(key, properties.get("name") or key)

    return MappingProxyType({
        code: Geofence(code=code, name=names[code], geometry=unary_union(parts))
        for code, parts in grouped.items()
    })


def load_geofences(path):
    """Reads a GeoJSON file once at startup."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not read geofence file '{path}': {e}") from e
    registry = geofences_from_geojson(data)
    logging.info(f"Loaded {len(registry)} geofences from {path}")
    return registry


DEFAULT_GEOFENCES = build_default_geofences()


def get_geofence(region_code, geofences=DEFAULT_GEOFENCES):
    code = normalize_region_code(region_code)
    geofence = geofences.get(code)
    if geofence is None:
        raise ConfigurationError(f"Unknown region code: {region_code!r}")
    return geofence


def filter_candidates(candidates, region_code, geofences=DEFAULT_GEOFENCES):
    """Keeps candidates inside the region, unmodified and in their original order."""
    geofence = get_geofence(region_code, geofences)
    kept = []
    for cand in candidates:
        if not cand.has_coordinates:
            logging.info(f"  Geofence: dropped {cand.method.value} candidate without coordinates.")
            continue
        if not geofence.contains(cand.latitude, cand.longitude):
            logging.info(
                f"  Geofence: dropped {cand.method.value} candidate at "
                f"({cand.latitude:.6f}, {cand.longitude:.6f}) outside {geofence.code} ({geofence.name})."
            )
            continue
        kept.append(cand)
    logging.info(f"  Geofence {geofence.code}: kept {len(kept)}/{len(candidates)} candidates.")
    return kept
