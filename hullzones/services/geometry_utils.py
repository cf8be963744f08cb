"""
Geometry helpers shared by the engine components.

Converts GeoJSON features to Shapely geometries (and back), repairs invalid
polygons, pulls polygonal parts out of overlay results and measures
geodesic area/perimeter on the WGS84 ellipsoid.
"""
import logging
from typing import Any, Optional

from pyproj import Geod
from shapely.errors import GEOSException
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient
from shapely.ops import unary_union
from shapely.validation import make_valid

from hullzones.services.zone_errors import FeatureGeometryError

logger = logging.getLogger(__name__)

GEOD = Geod(ellps="WGS84")

POLYGON_TYPES = ("Polygon", "MultiPolygon")


def feature_geometry(feature: Any) -> Optional[dict[str, Any]]:
    """Return the GeoJSON geometry dict of a feature (dict or pydantic model)."""
    if feature is None:
        return None
    if hasattr(feature, "model_dump"):
        feature = feature.model_dump()
    if not isinstance(feature, dict):
        return None
    if feature.get("type") == "Feature":
        geometry = feature.get("geometry")
        return geometry if isinstance(geometry, dict) else None
    # Bare geometry objects are accepted as well
    if "coordinates" in feature:
        return feature
    return None


def feature_properties(feature: Any) -> dict[str, Any]:
    """Return the property map of a feature, or an empty dict."""
    if hasattr(feature, "model_dump"):
        feature = feature.model_dump()
    if isinstance(feature, dict):
        properties = feature.get("properties")
        if isinstance(properties, dict):
            return properties
    return {}


def is_polygonal_feature(feature: Any) -> bool:
    """True if the feature carries a Polygon or MultiPolygon geometry."""
    geometry = feature_geometry(feature)
    return geometry is not None and geometry.get("type") in POLYGON_TYPES


def ensure_polygonal(geom: Optional[BaseGeometry]) -> Polygon | MultiPolygon:
    """
    Return geom as Polygon or MultiPolygon.

    Invalid polygons are repaired with make_valid, which keeps every lobe
    of a self-intersecting ring; lines and points are dropped from
    collections. An empty Polygon is returned when nothing areal remains.
    """
    if geom is None or geom.is_empty:
        return Polygon()
    if isinstance(geom, (Polygon, MultiPolygon)):
        if geom.is_valid:
            return geom
        geom = make_valid(geom)
        if isinstance(geom, (Polygon, MultiPolygon)):
            return geom
        return ensure_polygonal(geom)
    if isinstance(geom, GeometryCollection) or hasattr(geom, "geoms"):
        polys: list[Polygon] = []
        for part in geom.geoms:
            fixed = ensure_polygonal(part)
            if fixed.is_empty:
                continue
            if isinstance(fixed, MultiPolygon):
                polys.extend(fixed.geoms)
            else:
                polys.append(fixed)
        if not polys:
            return Polygon()
        if len(polys) == 1:
            return polys[0]
        # Parts of a repaired collection may touch or overlap
        return ensure_polygonal(unary_union(polys))
    return Polygon()


def feature_to_shape(feature: Any) -> BaseGeometry:
    """
    Convert a GeoJSON feature to a Shapely geometry.

    Raises:
        FeatureGeometryError: If the feature has no geometry or its
            coordinates cannot be turned into a geometry (e.g. short rings).
    """
    geometry = feature_geometry(feature)
    if not geometry:
        raise FeatureGeometryError("Feature has no geometry")
    try:
        geom = shape(geometry)
    except (GEOSException, ValueError, TypeError, KeyError, IndexError, AttributeError) as e:
        raise FeatureGeometryError(f"Invalid {geometry.get('type')} geometry: {e}")
    if geom.is_empty:
        raise FeatureGeometryError(f"Empty {geometry.get('type')} geometry")
    return geom


def feature_to_polygonal(feature: Any) -> Polygon | MultiPolygon:
    """Convert a polygonal feature to a valid Polygon/MultiPolygon."""
    geom = ensure_polygonal(feature_to_shape(feature))
    if geom.is_empty:
        raise FeatureGeometryError("Feature geometry has no area")
    return geom


def features_to_polygons(features: list[Any], label: str = "feature") -> list[Polygon | MultiPolygon]:
    """Convert polygonal features, logging and skipping the ones that fail."""
    polygons = []
    for i, feature in enumerate(features):
        if not is_polygonal_feature(feature):
            continue
        try:
            polygons.append(feature_to_polygonal(feature))
        except FeatureGeometryError as e:
            logger.warning(f"Skipping {label} {i}: {e}")
    return polygons


def shape_to_geojson(geom: BaseGeometry) -> dict[str, Any]:
    """Convert a Shapely geometry to a GeoJSON geometry dict with list coordinates."""
    return _listify(mapping(geom))


def _listify(value: Any) -> Any:
    """Turn the nested tuples produced by mapping() into lists."""
    if isinstance(value, dict):
        return {k: _listify(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_listify(v) for v in value]
    return value


def geodesic_area_m2(geom: BaseGeometry) -> float:
    """Geodesic area in square meters (WGS84)."""
    if geom is None or geom.is_empty:
        return 0.0
    area, _ = GEOD.geometry_area_perimeter(_oriented(geom))
    return abs(area)


def _oriented(geom: BaseGeometry) -> BaseGeometry:
    """Orient every polygon part counter-clockwise so part areas share a sign."""
    if isinstance(geom, Polygon):
        return orient(geom, sign=1.0)
    if isinstance(geom, MultiPolygon):
        return MultiPolygon([orient(p, sign=1.0) for p in geom.geoms])
    if isinstance(geom, GeometryCollection):
        return GeometryCollection([_oriented(g) for g in geom.geoms])
    return geom


def geodesic_perimeter_m(geom: BaseGeometry) -> float:
    """Geodesic perimeter in meters (WGS84), holes included."""
    if geom is None or geom.is_empty:
        return 0.0
    _, perimeter = GEOD.geometry_area_perimeter(geom)
    return perimeter
