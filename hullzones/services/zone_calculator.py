"""
Zone calculation service.

Runs the full pipeline that turns constraint polygons, land features and a
study area into recommended hull cleaning zones:

1. Water mask (study area minus buffered land)
2. Constraint collection and spatial index
3. Adaptive grid sampling of open water outside constraints
4. Zone synthesis (point disks -> clusters -> unioned polygons)
5. Zone optimization (clip, subtract, simplify, minimum area)

Results are cached by a digest of the constraint input shape and grid
resolution; a cached result is returned without running any phase unless
the caller forces recalculation. Fatal failures raise a ZoneCalculationError
subclass and never write to the cache.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from shapely.geometry.base import BaseGeometry

from hullzones.config import Settings, get_settings
from hullzones.schemas.zone import (
    STAGE_PROGRESS,
    CalculationMetadata,
    CalculationStage,
    ZoneCalculationResult,
    ZoneFeature,
    ZoneProperties,
)
from hullzones.services.constraint_loader import collect_constraints
from hullzones.services.geometry_utils import (
    ensure_polygonal,
    feature_to_shape,
    features_to_polygons,
    shape_to_geojson,
)
from hullzones.services.grid_sampler import AdaptiveGridSampler
from hullzones.services.spatial_index import SpatialIndex
from hullzones.services.water_mask import WaterMaskBuilder
from hullzones.services.zone_cache import InMemoryZoneCache, ZoneCache, ZoneResultStore, compute_cache_key
from hullzones.services.zone_errors import (
    CalculationCancelledError,
    DegenerateStudyAreaError,
    FeatureGeometryError,
    NoCandidateAreaError,
    NoZonesProducedError,
)
from hullzones.services.zone_optimizer import OptimizedZone, ZoneOptimizer
from hullzones.services.zone_synthesizer import ZoneSynthesizer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
CancelCheck = Callable[[], bool]


class ProgressReporter:
    """
    Forwards progress to the caller's callback.

    Percentages are clamped to 0-100 and never go backwards, whatever the
    individual phases report.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.last_pct = 0

    def __call__(self, pct: int, message: str) -> None:
        pct = max(self.last_pct, min(100, int(pct)))
        self.last_pct = pct
        if self.callback is not None:
            self.callback(pct, message)

    def stage(self, stage: CalculationStage, message: str) -> None:
        self(STAGE_PROGRESS[stage], message)


class ZoneCalculator:
    """
    Computes recommended zones; stateless between calls apart from the cache.

    Per-call options override the configured defaults for that call only.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[ZoneCache] = None,
        result_store: Optional[ZoneResultStore] = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else InMemoryZoneCache()
        self.result_store = result_store

    def cache_key_for(
        self,
        constraint_set: dict[str, Any],
        study_area: Any,
        land_features: Optional[list[Any]] = None,
        grid_resolution: Optional[float] = None,
    ) -> str:
        """Cache key a compute_zones call with these inputs would use."""
        area = self._study_area_polygon(study_area)
        return compute_cache_key(
            constraint_set,
            grid_resolution or self.settings.grid_resolution_deg,
            land_features=land_features,
            study_area_bounds=area.bounds,
            mode=self.settings.cache_key_mode,
        )

    @staticmethod
    def _study_area_polygon(study_area: Any):
        if study_area is None:
            raise DegenerateStudyAreaError("No study area supplied")
        if isinstance(study_area, BaseGeometry):
            area = ensure_polygonal(study_area)
        else:
            try:
                area = ensure_polygonal(feature_to_shape(study_area))
            except FeatureGeometryError as e:
                raise DegenerateStudyAreaError(f"Study area geometry is unusable: {e}")
        if area.is_empty or area.area <= 0:
            raise DegenerateStudyAreaError("Study area is not a polygon with positive area")
        return area

    def compute_zones(
        self,
        constraint_set: dict[str, Any],
        study_area: Any,
        land_features: Optional[list[Any]] = None,
        grid_resolution: Optional[float] = None,
        buffer_size: Optional[float] = None,
        force_recalculate: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
    ) -> ZoneCalculationResult:
        """
        Compute recommended zones.

        Args:
            constraint_set: Constraint category key -> FeatureCollection
            study_area: Study area Polygon feature
            land_features: Land features (any geometry; only polygons are used)
            grid_resolution: Base grid resolution in degrees
            buffer_size: Point disk radius in degrees
            force_recalculate: Ignore any cached result
            progress_callback: Called with (percent, message) as the run advances
            should_cancel: Polled at checkpoints; True aborts the run

        Returns:
            ZoneCalculationResult with at least one zone

        Raises:
            DegenerateStudyAreaError: Study area unusable
            NoCandidateAreaError: No water or no accepted sample point
            NoZonesProducedError: Every candidate was discarded
            CalculationCancelledError: Cancellation requested
        """
        start = time.monotonic()
        land_features = list(land_features or [])
        grid_resolution = grid_resolution or self.settings.grid_resolution_deg
        buffer_size = buffer_size or self.settings.buffer_size_deg
        progress = ProgressReporter(progress_callback)

        def checkpoint(phase: str) -> None:
            if should_cancel is not None and should_cancel():
                raise CalculationCancelledError(f"Zone calculation cancelled before {phase}")

        area = self._study_area_polygon(study_area)
        cache_key = compute_cache_key(
            constraint_set,
            grid_resolution,
            land_features=land_features,
            study_area_bounds=area.bounds,
            mode=self.settings.cache_key_mode,
        )

        if not force_recalculate:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Using cached zone calculation {cache_key}")
                progress(100, "Using cached results")
                return cached

        logger.info(f"Starting zone calculation {cache_key} (grid {grid_resolution}, buffer {buffer_size})")
        if buffer_size * 2 <= grid_resolution:
            logger.warning(
                f"Buffer size {buffer_size} does not bridge grid spacing {grid_resolution}; "
                f"adjacent sample disks will not overlap"
            )
        progress.stage(CalculationStage.INITIALIZING, "Initializing calculation")

        # Water mask
        checkpoint("water mask")
        progress.stage(CalculationStage.WATER_MASK, "Creating water mask")
        land_polygons = features_to_polygons(land_features, label="land feature")
        water_mask = WaterMaskBuilder(land_buffer=self.settings.land_buffer_deg).build(area, land_polygons)
        if water_mask.is_empty:
            raise NoCandidateAreaError("No candidate area found: land covers the entire study area")

        # Constraints
        checkpoint("constraint processing")
        progress.stage(CalculationStage.CONSTRAINTS, "Processing constraints")
        constraint_features = collect_constraints(constraint_set)
        constraint_polygons = features_to_polygons(constraint_features, label="constraint")

        checkpoint("spatial index")
        progress.stage(CalculationStage.SPATIAL_INDEX, "Building spatial index")
        index = SpatialIndex.build(constraint_polygons, cell_size=self.settings.spatial_index_cell_size_deg)

        # Adaptive grid
        checkpoint("grid sampling")
        progress.stage(CalculationStage.SAMPLING, "Generating candidate points")
        sampler = AdaptiveGridSampler(
            grid_resolution=grid_resolution,
            progress_batch_size=self.settings.progress_batch_size,
        )
        points = sampler.sample(
            area.bounds,
            water_mask,
            index,
            progress_callback=progress,
            should_cancel=should_cancel,
            progress_range=(
                STAGE_PROGRESS[CalculationStage.SAMPLING],
                STAGE_PROGRESS[CalculationStage.SYNTHESIZING] - 5,
            ),
        )
        if not points:
            raise NoCandidateAreaError("No candidate area found: no open water outside the constraints")

        # Synthesis
        checkpoint("zone synthesis")
        progress.stage(CalculationStage.SYNTHESIZING, "Creating zones from valid points")
        synthesizer = ZoneSynthesizer(
            buffer_size=buffer_size,
            link_distance=self.settings.cluster_link_distance_deg,
            quad_segments=self.settings.disk_quad_segments,
        )
        candidates = synthesizer.synthesize(points, progress_callback=progress, should_cancel=should_cancel)

        # Optimization
        checkpoint("zone optimization")
        progress.stage(CalculationStage.OPTIMIZING, "Optimizing zone boundaries")
        optimizer = ZoneOptimizer(
            simplify_tolerance=self.settings.simplify_tolerance_deg,
            min_area_km2=self.settings.min_zone_area_km2,
        )
        zones = optimizer.optimize(candidates, water_mask, land_polygons, index)
        if not zones:
            raise NoZonesProducedError(
                f"No zones of at least {self.settings.min_zone_area_km2} km² remained "
                f"after optimizing {len(candidates)} candidates"
            )

        progress.stage(CalculationStage.FINALIZING, "Finalizing results")
        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = self._build_result(
            zones,
            grid_resolution=grid_resolution,
            elapsed_ms=elapsed_ms,
            candidate_points=len(points),
            constraints_processed=len(constraint_features),
            cache_key=cache_key,
        )

        self.cache.put(cache_key, result)
        if self.result_store is not None:
            try:
                self.result_store.save(result)
            except OSError as e:
                logger.warning(f"Failed to archive zone result: {e}")

        progress.stage(CalculationStage.COMPLETED, "Calculation complete")
        logger.info(f"Zone calculation completed in {elapsed_ms}ms: {len(zones)} zones")
        return result

    @staticmethod
    def _build_result(
        zones: list[OptimizedZone],
        grid_resolution: float,
        elapsed_ms: int,
        candidate_points: int,
        constraints_processed: int,
        cache_key: Optional[str] = None,
    ) -> ZoneCalculationResult:
        """Wrap optimized zones into the result FeatureCollection."""
        calculated_at = datetime.now(timezone.utc)
        features = [
            ZoneFeature(
                geometry=shape_to_geojson(zone.geometry),
                properties=ZoneProperties(
                    id=f"zone_{i + 1}",
                    area_m2=zone.area_m2,
                    perimeter_km=zone.perimeter_km,
                    calculated_at=calculated_at,
                    grid_resolution=grid_resolution,
                ),
            )
            for i, zone in enumerate(zones)
        ]
        return ZoneCalculationResult(
            features=features,
            metadata=CalculationMetadata(
                calculation_time_ms=elapsed_ms,
                total_candidate_points=candidate_points,
                constraints_processed=constraints_processed,
                grid_resolution=grid_resolution,
                cache_key=cache_key,
            ),
        )
