"""
Zone engine services.
"""
from hullzones.services.calculation_session import CalculationSession
from hullzones.services.constraint_loader import (
    ConstraintInputs,
    collect_constraints,
    default_study_area,
    extract_land_features,
    split_constraint_data,
)
from hullzones.services.grid_sampler import AdaptiveGridSampler, SamplePoint
from hullzones.services.spatial_index import SpatialIndex
from hullzones.services.water_mask import WaterMask, WaterMaskBuilder
from hullzones.services.zone_cache import (
    FileZoneCache,
    InMemoryZoneCache,
    ZoneCache,
    ZoneResultStore,
    compute_cache_key,
)
from hullzones.services.zone_calculator import ZoneCalculator
from hullzones.services.zone_errors import (
    CalculationCancelledError,
    DegenerateStudyAreaError,
    FeatureGeometryError,
    NoCandidateAreaError,
    NoZonesProducedError,
    ZoneCalculationError,
)
from hullzones.services.zone_optimizer import OptimizedZone, ZoneOptimizer
from hullzones.services.zone_synthesizer import ZoneCandidate, ZoneSynthesizer

__all__ = [
    # Orchestration
    "ZoneCalculator",
    "CalculationSession",
    # Inputs
    "ConstraintInputs",
    "collect_constraints",
    "default_study_area",
    "extract_land_features",
    "split_constraint_data",
    # Pipeline components
    "SpatialIndex",
    "WaterMask",
    "WaterMaskBuilder",
    "AdaptiveGridSampler",
    "SamplePoint",
    "ZoneSynthesizer",
    "ZoneCandidate",
    "ZoneOptimizer",
    "OptimizedZone",
    # Cache
    "ZoneCache",
    "InMemoryZoneCache",
    "FileZoneCache",
    "ZoneResultStore",
    "compute_cache_key",
    # Errors
    "ZoneCalculationError",
    "DegenerateStudyAreaError",
    "NoCandidateAreaError",
    "NoZonesProducedError",
    "CalculationCancelledError",
    "FeatureGeometryError",
]
