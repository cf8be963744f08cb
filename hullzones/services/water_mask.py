"""
Water mask construction.

The water mask is the study area minus all land (land grown by a small
margin so coastline precision noise does not leave thin slivers of "water"
along the shore). It is the permissible superset of every zone.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.prepared import PreparedGeometry, prep

from hullzones.services.geometry_utils import ensure_polygonal
from hullzones.services.zone_errors import DegenerateStudyAreaError

logger = logging.getLogger(__name__)

GEOMETRY_ERRORS = (GEOSException, ValueError, TypeError)


@dataclass(eq=False)
class WaterMask:
    """Usable water inside the study area, with a prepared copy for point tests."""
    geometry: Polygon | MultiPolygon
    study_area: Polygon | MultiPolygon
    land_union: Optional[BaseGeometry] = None
    used_fallback: bool = False
    prepared: PreparedGeometry = field(init=False, repr=False)

    def __post_init__(self):
        self.prepared = prep(self.geometry)

    @property
    def is_empty(self) -> bool:
        return self.geometry.is_empty or self.geometry.area <= 0

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return self.geometry.bounds

    def covers_point(self, point: Point) -> bool:
        """True if the point is in water (boundary included)."""
        return self.prepared.covers(point)


def union_polygons(polygons: list[BaseGeometry], label: str = "polygon") -> Optional[BaseGeometry]:
    """
    Union a list of polygons into one geometry.

    Tries a single unary union first; if GEOS rejects it, falls back to a
    pairwise fold where a failing pair is logged and skipped. Returns None
    when nothing could be unioned.
    """
    polygons = [p for p in polygons if p is not None and not p.is_empty]
    if not polygons:
        return None
    if len(polygons) == 1:
        return polygons[0]

    try:
        return unary_union(polygons)
    except GEOSException as e:
        logger.warning(f"Unary union of {len(polygons)} {label}s failed ({e}), folding pairwise")

    merged = polygons[0]
    for i, poly in enumerate(polygons[1:], start=1):
        try:
            merged = merged.union(poly)
        except GEOMETRY_ERRORS as e:
            logger.warning(f"Error unioning {label} {i}: {e}")
    return merged


class WaterMaskBuilder:
    """
    Builds the water mask for a study area.

    Land union or difference failures degrade the mask to the raw study
    area (logged); only a degenerate study area is fatal.
    """

    def __init__(self, land_buffer: float = 0.0005):
        self.land_buffer = land_buffer

    def build(
        self,
        study_area: BaseGeometry,
        land_polygons: list[BaseGeometry],
    ) -> WaterMask:
        """
        Subtract buffered land from the study area.

        Args:
            study_area: Study area polygon (geographic degrees)
            land_polygons: Land polygons, already converted from features

        Returns:
            WaterMask (possibly empty if land covers the whole study area)

        Raises:
            DegenerateStudyAreaError: If the study area has no area
        """
        area = ensure_polygonal(study_area)
        if area.is_empty or area.area <= 0:
            raise DegenerateStudyAreaError("Study area is empty or has zero area")

        if not land_polygons:
            logger.info("No land features supplied, water mask equals study area")
            return WaterMask(geometry=area, study_area=area)

        land_union = union_polygons(land_polygons, label="land feature")
        if land_union is None or land_union.is_empty:
            logger.warning("Land union produced nothing, falling back to raw study area")
            return WaterMask(geometry=area, study_area=area, used_fallback=True)

        try:
            buffered_land = land_union.buffer(self.land_buffer) if self.land_buffer > 0 else land_union
            water = ensure_polygonal(area.difference(buffered_land))
        except GEOMETRY_ERRORS as e:
            logger.error(f"Error creating water mask, falling back to raw study area: {e}")
            return WaterMask(
                geometry=area,
                study_area=area,
                land_union=land_union,
                used_fallback=True,
            )

        logger.info(
            f"Water mask built from {len(land_polygons)} land features: "
            f"{water.area / area.area * 100:.1f}% of study area is water"
        )
        return WaterMask(geometry=water, study_area=area, land_union=land_union)
