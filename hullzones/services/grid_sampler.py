"""
Adaptive two-level grid sampling.

Coarse pass: walk the study bounding box at twice the base resolution and
classify each point (in water, outside every constraint). Fine pass: around
every accepted coarse point, resample a square of side 2 x coarse spacing at
the base resolution. Fine sampling is therefore spent only where the coarse
pass already found open water.

All sample positions live on one integer lattice of base-resolution steps
anchored at the bounding box minimum, so coarse and fine points coincide
exactly and each lattice point is classified at most once.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from shapely.geometry import Point

from hullzones.services.spatial_index import SpatialIndex
from hullzones.services.water_mask import WaterMask
from hullzones.services.zone_errors import CalculationCancelledError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
CancelCheck = Callable[[], bool]

# Coarse spacing is COARSE_FACTOR lattice steps
COARSE_FACTOR = 2


@dataclass(frozen=True)
class SamplePoint:
    """A classified sample position."""
    x: float
    y: float
    accepted: bool = True


@dataclass
class SamplingStats:
    """Counters for one sampling run."""
    coarse_cells: int = 0
    coarse_accepted: int = 0
    points_tested: int = 0
    rejected_land: int = 0
    rejected_constraint: int = 0
    accepted: int = 0


class AdaptiveGridSampler:
    """
    Generates candidate points that are in water and outside every constraint.

    The water-mask test always runs before the spatial index lookup.
    """

    def __init__(
        self,
        grid_resolution: float = 0.005,
        progress_batch_size: int = 100,
    ):
        if grid_resolution <= 0:
            raise ValueError("grid_resolution must be positive")
        self.grid_resolution = grid_resolution
        self.coarse_resolution = grid_resolution * COARSE_FACTOR
        self.progress_batch_size = max(1, progress_batch_size)
        self.stats = SamplingStats()

    def classify(
        self,
        x: float,
        y: float,
        water_mask: WaterMask,
        index: SpatialIndex,
        radius: float,
    ) -> SamplePoint:
        """Classify a single point: accepted if in water and outside all nearby constraints."""
        self.stats.points_tested += 1
        point = Point(x, y)

        if not water_mask.covers_point(point):
            self.stats.rejected_land += 1
            return SamplePoint(x, y, accepted=False)

        for constraint in index.query(x, y, radius):
            if constraint.covers_point(point):
                self.stats.rejected_constraint += 1
                return SamplePoint(x, y, accepted=False)

        self.stats.accepted += 1
        return SamplePoint(x, y, accepted=True)

    @staticmethod
    def _steps(span: float, step: float) -> int:
        """Number of whole steps that fit in span (tolerant of float noise)."""
        if span <= 0:
            return 0
        return int(math.floor(span / step + 1e-9))

    def sample(
        self,
        bbox: tuple[float, float, float, float],
        water_mask: WaterMask,
        index: SpatialIndex,
        progress_callback: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
        progress_range: tuple[int, int] = (40, 65),
    ) -> list[SamplePoint]:
        """
        Run the coarse and fine passes over bbox.

        Args:
            bbox: (minx, miny, maxx, maxy) of the study area
            water_mask: Water mask to test containment against
            index: Spatial index over constraint polygons
            progress_callback: Called every `progress_batch_size` coarse cells
            should_cancel: Checked at the same cadence; raises when it returns True
            progress_range: Percent range the scan maps onto

        Returns:
            Accepted sample points (each lattice position at most once)
        """
        self.stats = SamplingStats()
        minx, miny, maxx, maxy = bbox
        base = self.grid_resolution
        coarse = self.coarse_resolution

        n_coarse_x = self._steps(maxx - minx, coarse) + 1
        n_coarse_y = self._steps(maxy - miny, coarse) + 1
        total_cells = n_coarse_x * n_coarse_y
        start_pct, end_pct = progress_range

        # Fine square of side 2 x coarse around each accepted coarse point
        reach = int(round(coarse / base))
        fine_offsets = np.arange(-reach, reach + 1)

        classified: dict[tuple[int, int], bool] = {}
        accepted: list[SamplePoint] = []

        def visit(ix: int, iy: int, radius: float) -> bool:
            key = (ix, iy)
            if key in classified:
                return classified[key]
            result = self.classify(minx + ix * base, miny + iy * base, water_mask, index, radius)
            classified[key] = result.accepted
            if result.accepted:
                accepted.append(result)
            return result.accepted

        logger.info(
            f"Adaptive grid: {n_coarse_x}x{n_coarse_y} coarse cells at {coarse}, "
            f"fine resolution {base}"
        )

        for i in range(n_coarse_x):
            for j in range(n_coarse_y):
                self.stats.coarse_cells += 1
                processed = self.stats.coarse_cells

                if processed % self.progress_batch_size == 0:
                    if should_cancel is not None and should_cancel():
                        raise CalculationCancelledError(
                            f"Grid sampling cancelled after {processed}/{total_cells} cells"
                        )
                    if progress_callback is not None:
                        pct = start_pct + int(processed / total_cells * (end_pct - start_pct))
                        progress_callback(pct, f"Processing grid ({len(accepted)} valid points found)")

                ix = i * COARSE_FACTOR
                iy = j * COARSE_FACTOR
                if not visit(ix, iy, coarse):
                    continue
                self.stats.coarse_accepted += 1

                for dx in fine_offsets:
                    for dy in fine_offsets:
                        if dx == 0 and dy == 0:
                            continue
                        visit(ix + int(dx), iy + int(dy), base)

        logger.info(
            f"Adaptive grid done: {self.stats.accepted} accepted of {self.stats.points_tested} tested "
            f"({self.stats.rejected_land} outside water, {self.stats.rejected_constraint} in constraints)"
        )
        return accepted
