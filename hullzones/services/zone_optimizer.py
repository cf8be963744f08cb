"""
Zone optimization: clip, clean, simplify and filter zone candidates.

For each candidate, in order:
1. Intersect with the water mask (dropped if nothing remains)
2. Subtract each land polygon individually, then each nearby constraint
3. Simplify the boundary
4. Drop it if its geodesic area is below the minimum
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from hullzones.services.geometry_utils import ensure_polygonal, geodesic_area_m2, geodesic_perimeter_m
from hullzones.services.spatial_index import SpatialIndex
from hullzones.services.water_mask import WaterMask
from hullzones.services.zone_synthesizer import ZoneCandidate

logger = logging.getLogger(__name__)

GEOMETRY_ERRORS = (GEOSException, ValueError, TypeError)


@dataclass(frozen=True)
class OptimizedZone:
    """A cleaned zone geometry with its measurements."""
    geometry: Polygon | MultiPolygon
    area_m2: float
    perimeter_km: float
    point_count: int = 0

    @property
    def area_km2(self) -> float:
        return self.area_m2 / 1_000_000


class ZoneOptimizer:
    """Cleans geometric artifacts and enforces the minimum zone area."""

    def __init__(
        self,
        simplify_tolerance: float = 0.0001,
        min_area_km2: float = 0.1,
    ):
        self.simplify_tolerance = simplify_tolerance
        self.min_area_km2 = min_area_km2

    def _subtract(
        self,
        geom: Polygon | MultiPolygon,
        cutters: Sequence[BaseGeometry],
        label: str,
    ) -> Polygon | MultiPolygon:
        """Subtract each cutter in turn; a failing subtraction is skipped."""
        for i, cutter in enumerate(cutters):
            if geom.is_empty:
                break
            if not geom.intersects(cutter):
                continue
            try:
                geom = ensure_polygonal(geom.difference(cutter))
            except GEOMETRY_ERRORS as e:
                logger.warning(f"Skipping {label} {i} subtraction: {e}")
        return geom

    def optimize_one(
        self,
        candidate: BaseGeometry,
        water_mask: WaterMask,
        land_polygons: Sequence[BaseGeometry] = (),
        constraint_index: Optional[SpatialIndex] = None,
    ) -> Optional[Polygon | MultiPolygon]:
        """
        Run the clip/subtract/simplify steps on one candidate.

        Returns:
            The cleaned geometry, or None if nothing remains
        """
        clipped = ensure_polygonal(candidate.intersection(water_mask.geometry))
        if clipped.is_empty:
            return None

        clipped = self._subtract(clipped, land_polygons, "land")
        if clipped.is_empty:
            return None

        if constraint_index is not None and len(constraint_index) > 0:
            nearby = [c.geometry for c in constraint_index.query_bounds(clipped.bounds)]
            clipped = self._subtract(clipped, nearby, "constraint")
            if clipped.is_empty:
                return None

        if self.simplify_tolerance > 0:
            clipped = ensure_polygonal(
                clipped.simplify(self.simplify_tolerance, preserve_topology=True)
            )
        if clipped.is_empty:
            return None
        return clipped

    def optimize(
        self,
        candidates: Sequence[ZoneCandidate],
        water_mask: WaterMask,
        land_polygons: Sequence[BaseGeometry] = (),
        constraint_index: Optional[SpatialIndex] = None,
    ) -> list[OptimizedZone]:
        """Optimize every candidate and keep the ones meeting the minimum area."""
        optimized: list[OptimizedZone] = []
        dropped_small = 0

        for candidate in candidates:
            try:
                geom = self.optimize_one(
                    candidate.geometry, water_mask, land_polygons, constraint_index
                )
            except GEOMETRY_ERRORS as e:
                logger.warning(f"Error optimizing zone: {e}")
                continue
            if geom is None:
                continue

            area_m2 = geodesic_area_m2(geom)
            if area_m2 / 1_000_000 < self.min_area_km2:
                dropped_small += 1
                continue

            optimized.append(OptimizedZone(
                geometry=geom,
                area_m2=area_m2,
                perimeter_km=geodesic_perimeter_m(geom) / 1000,
                point_count=candidate.point_count,
            ))

        logger.info(
            f"Optimized {len(candidates)} candidates into {len(optimized)} zones "
            f"({dropped_small} below {self.min_area_km2} km²)"
        )
        return optimized
