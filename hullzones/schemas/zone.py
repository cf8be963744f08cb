"""
Pydantic schemas for zone calculation results and status polling.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry


ZONE_TYPE_LABEL = "Potential Cleaning Zone"
ZONE_DESCRIPTION = "Area suitable for in-water hull cleaning"
ZONE_METHOD = "optimized-grid"


class ZoneProperties(BaseModel):
    """Properties attached to every emitted zone feature."""

    id: str = Field(..., description="Zone identifier, e.g. zone_1")
    type: str = Field(ZONE_TYPE_LABEL, description="Zone type label")
    area_m2: float = Field(..., ge=0, description="Geodesic area in square meters")
    perimeter_km: float = Field(..., ge=0, description="Geodesic perimeter in kilometers")
    description: str = ZONE_DESCRIPTION
    calculated_at: datetime = Field(..., description="Calculation timestamp (UTC)")
    method: str = ZONE_METHOD
    grid_resolution: float = Field(..., gt=0, description="Base grid resolution in degrees")


class ZoneFeature(BaseModel):
    """A zone as a GeoJSON feature (Polygon or MultiPolygon)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["Feature"] = "Feature"
    geometry: dict[str, Any]
    properties: ZoneProperties

    def to_shape(self) -> BaseGeometry:
        """Return the zone geometry as a Shapely object."""
        return shape(self.geometry)


class CalculationMetadata(BaseModel):
    """Summary of one calculation run."""

    calculation_time_ms: int = Field(..., ge=0)
    total_candidate_points: int = Field(..., ge=0)
    constraints_processed: int = Field(..., ge=0)
    grid_resolution: float = Field(..., gt=0)
    cache_key: Optional[str] = None


class ZoneCalculationResult(BaseModel):
    """Zone FeatureCollection plus calculation metadata."""

    model_config = ConfigDict(frozen=True)

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[ZoneFeature]
    metadata: CalculationMetadata

    def to_geojson(self) -> dict[str, Any]:
        """JSON-ready dict (timestamps as ISO strings)."""
        return self.model_dump(mode="json")

    def zone_shapes(self) -> list[BaseGeometry]:
        return [f.to_shape() for f in self.features]


class CalculationStage(str, Enum):
    """Stages of a zone calculation for progress tracking."""
    IDLE = "idle"
    INITIALIZING = "initializing"
    WATER_MASK = "water_mask"
    CONSTRAINTS = "constraints"
    SPATIAL_INDEX = "spatial_index"
    SAMPLING = "sampling"
    SYNTHESIZING = "synthesizing"
    OPTIMIZING = "optimizing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


# Stage progress percentages reported at each phase boundary
STAGE_PROGRESS = {
    CalculationStage.IDLE: 0,
    CalculationStage.INITIALIZING: 5,
    CalculationStage.WATER_MASK: 10,
    CalculationStage.CONSTRAINTS: 20,
    CalculationStage.SPATIAL_INDEX: 30,
    CalculationStage.SAMPLING: 40,
    CalculationStage.SYNTHESIZING: 70,
    CalculationStage.OPTIMIZING: 85,
    CalculationStage.FINALIZING: 95,
    CalculationStage.COMPLETED: 100,
}


class CalculationState(str, Enum):
    """Caller-facing outcome of the current or last calculation."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class CalculationStatus(BaseModel):
    """Snapshot of the calculation session, safe to hand to pollers."""

    model_config = ConfigDict(frozen=True)

    state: CalculationState = CalculationState.IDLE
    in_progress: bool = False
    stage: CalculationStage = CalculationStage.IDLE
    progress: int = Field(0, ge=0, le=100)
    message: Optional[str] = None
    last_started: Optional[datetime] = None
    last_completed: Optional[datetime] = None
    error: Optional[str] = None
    zone_count: Optional[int] = Field(None, description="Number of zones when completed")
