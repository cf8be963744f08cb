"""
Pydantic schemas for GeoJSON input data.

Coordinates are validated only structurally here; ring closure and minimum
ring length are checked when the geometry is converted to Shapely.
"""
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


GeometryType = Literal[
    "Point",
    "LineString",
    "Polygon",
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
]


class GeoJSONGeometry(BaseModel):
    """A GeoJSON geometry in geographic (lon, lat) degrees."""

    type: GeometryType = Field(..., description="GeoJSON geometry type")
    coordinates: list[Any] = Field(..., description="Coordinate payload")


class GeoJSONFeature(BaseModel):
    """A single geometry plus an open-ended property map."""

    type: Literal["Feature"] = "Feature"
    geometry: Optional[GeoJSONGeometry] = None
    properties: dict[str, Any] = Field(default_factory=dict)
