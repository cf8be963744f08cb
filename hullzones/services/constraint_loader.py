"""
Constraint and land data preparation.

Turns the combined constraint payload (one FeatureCollection per constraint
category, plus coastline and study area) into the three inputs the zone
calculator works on:
- a constraint set: category key -> polygonal features
- the study area feature
- the list of land features

Upstream ingestion is expected to have cleaned the data already; features
that still fail schema validation are logged and skipped here.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from hullzones.config import get_settings
from hullzones.schemas.geojson import GeoJSONFeature
from hullzones.services.geometry_utils import feature_properties, is_polygonal_feature

logger = logging.getLogger(__name__)

COASTLINE_KEY = "coastline"
STUDY_AREA_KEY = "studyArea"


class ConstraintCategory(str, Enum):
    """Known constraint categories."""
    PORT_AUTHORITIES = "portAuthorities"
    MARINE_PARKS = "marineParks"
    FISH_HABITAT = "fishHabitat"
    COCKBURN_SOUND = "cockburnSound"
    MOORING_AREAS = "mooringAreas"
    MARINE_INFRASTRUCTURE = "marineInfrastructure"
    MARINE_GEOMORPHIC = "marineGeomorphic"
    AUS_MARINE_PARKS = "ausMarineParks"
    OSM_HARBOURS = "osmHarbours"
    OSM_MARINAS = "osmMarinas"


CATEGORY_DESCRIPTIONS = {
    ConstraintCategory.PORT_AUTHORITIES: "Port Authority Areas",
    ConstraintCategory.MARINE_PARKS: "Marine Parks & Reserves",
    ConstraintCategory.FISH_HABITAT: "Fish Habitat Protection Areas",
    ConstraintCategory.COCKBURN_SOUND: "Cockburn Sound Protection Area",
    ConstraintCategory.MOORING_AREAS: "Mooring Control Areas",
    ConstraintCategory.MARINE_INFRASTRUCTURE: "Marine Infrastructure",
    ConstraintCategory.MARINE_GEOMORPHIC: "Marine Geomorphic Features",
    ConstraintCategory.AUS_MARINE_PARKS: "Australian Marine Parks",
    ConstraintCategory.OSM_HARBOURS: "OSM Harbour Areas",
    ConstraintCategory.OSM_MARINAS: "OSM Marina Areas",
}


@dataclass
class ConstraintInputs:
    """The three inputs of a zone calculation, split out of a combined payload."""
    constraint_set: dict[str, dict[str, Any]]
    study_area: dict[str, Any]
    land_features: list[dict[str, Any]] = field(default_factory=list)


def default_study_area() -> dict[str, Any]:
    """Coastal study area from Lancelin to Mandurah (Western Australia)."""
    return {
        "type": "Feature",
        "properties": {
            "type": "Study Area",
            "description": "Default study area - Western Australia coast",
        },
        "geometry": {
            "type": "Polygon",
            "coordinates": [[
                [115.2, -32.60],
                [116.0, -32.60],
                [116.0, -30.90],
                [115.2, -30.90],
                [115.2, -32.60],
            ]],
        },
    }


def collection_features(collection: Any) -> list[Any]:
    """
    Return the features of a FeatureCollection-like value.

    Accepts a GeoJSON dict, a pydantic collection or a bare list; anything
    else yields an empty list.
    """
    if collection is None:
        return []
    if hasattr(collection, "features"):
        return list(collection.features)
    if isinstance(collection, dict):
        features = collection.get("features")
        return list(features) if isinstance(features, list) else []
    if isinstance(collection, list):
        return list(collection)
    return []


def clean_features(features: Iterable[Any], label: str = "collection") -> list[dict[str, Any]]:
    """Validate features against the GeoJSON schema, dropping invalid ones."""
    cleaned = []
    skipped = 0
    for feature in features:
        try:
            model = feature if isinstance(feature, GeoJSONFeature) else GeoJSONFeature.model_validate(feature)
        except ValidationError:
            skipped += 1
            continue
        if model.geometry is None or not model.geometry.coordinates:
            skipped += 1
            continue
        cleaned.append(model.model_dump())
    if skipped:
        logger.warning(f"Dropped {skipped} invalid features from {label}")
    return cleaned


def collect_constraints(
    constraint_set: dict[str, Any],
    keys: Optional[Iterable[str]] = None,
) -> list[Any]:
    """
    Flatten the constraint categories into one list of polygonal features.

    Args:
        constraint_set: Category key -> FeatureCollection
        keys: Categories to include (defaults to every key in the set)

    Returns:
        Polygon/MultiPolygon features; other geometry types are ignored
    """
    selected = list(keys) if keys is not None else list(constraint_set.keys())
    constraints: list[Any] = []

    for key in selected:
        if key not in constraint_set:
            continue
        features = collection_features(constraint_set[key])
        # Malformed features are dropped one by one, never the whole category
        polygons = [f for f in features if is_polygonal_feature(f)]
        if len(polygons) < len(features):
            logger.debug(f"{key}: ignored {len(features) - len(polygons)} non-polygon features")
        constraints.extend(polygons)

    logger.info(f"Collected {len(constraints)} constraint polygons from {len(selected)} categories")
    return constraints


def is_land_feature(feature: Any, keywords: Iterable[str]) -> bool:
    """True if the feature's type or name mentions one of the land keywords."""
    props = feature_properties(feature)
    haystacks = [
        str(props.get("type") or "").lower(),
        str(props.get("name") or "").lower(),
    ]
    return any(k.lower() in h for k in keywords for h in haystacks if h)


def extract_land_features(
    data: dict[str, Any],
    keywords: Optional[Iterable[str]] = None,
) -> list[Any]:
    """
    Pick out land features from a combined payload.

    Every coastline feature counts as land, plus any feature in any other
    collection whose type or name mentions a land keyword.
    """
    keywords = list(keywords) if keywords is not None else get_settings().land_keywords
    land: list[Any] = []

    land.extend(collection_features(data.get(COASTLINE_KEY)))
    for key, collection in data.items():
        if key in (COASTLINE_KEY, STUDY_AREA_KEY):
            continue
        land.extend(f for f in collection_features(collection) if is_land_feature(f, keywords))

    logger.info(f"Extracted {len(land)} land features")
    return land


def split_constraint_data(
    data: dict[str, Any],
    keys: Optional[Iterable[str]] = None,
) -> ConstraintInputs:
    """
    Split a combined payload into constraint set, study area and land.

    Only the configured constraint categories go into the constraint set.
    The default study area is used when the payload carries none.
    """
    keys = list(keys) if keys is not None else get_settings().constraint_keys

    constraint_set: dict[str, dict[str, Any]] = {}
    for key in keys:
        if key not in data:
            continue
        features = clean_features(collection_features(data[key]), label=key)
        constraint_set[key] = {"type": "FeatureCollection", "features": features}

    study_area = data.get(STUDY_AREA_KEY) or default_study_area()
    land_features = clean_features(extract_land_features(data), label="land")

    return ConstraintInputs(
        constraint_set=constraint_set,
        study_area=study_area,
        land_features=land_features,
    )


def load_constraint_file(path: str | Path) -> dict[str, Any]:
    """
    Read a combined constraint payload from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the content is not a JSON object
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Constraint data file not found: {p}")
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Constraint data must be a JSON object keyed by category")
    return data
