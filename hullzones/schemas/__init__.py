"""
Pydantic schemas for engine input and output.
"""
from hullzones.schemas.geojson import (
    GeoJSONFeature,
    GeoJSONGeometry,
)
from hullzones.schemas.zone import (
    STAGE_PROGRESS,
    CalculationMetadata,
    CalculationStage,
    CalculationState,
    CalculationStatus,
    ZoneCalculationResult,
    ZoneFeature,
    ZoneProperties,
)

__all__ = [
    "GeoJSONFeature",
    "GeoJSONGeometry",
    "STAGE_PROGRESS",
    "CalculationMetadata",
    "CalculationStage",
    "CalculationState",
    "CalculationStatus",
    "ZoneCalculationResult",
    "ZoneFeature",
    "ZoneProperties",
]
