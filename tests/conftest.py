"""
Shared fixtures for the zone engine tests.

Scenario tests run at a 0.1 degree grid so a full calculation over a one
degree square tests only a few hundred points.
"""
import pytest
from shapely.geometry import box, mapping

from hullzones.config import Settings


def to_feature(geom, **properties) -> dict:
    """Wrap a Shapely geometry as a GeoJSON feature dict."""
    geometry = mapping(geom)
    # mapping() returns tuples; GeoJSON payloads carry lists
    return {
        "type": "Feature",
        "geometry": {"type": geometry["type"], "coordinates": _as_lists(geometry["coordinates"])},
        "properties": properties,
    }


def _as_lists(value):
    if isinstance(value, (list, tuple)):
        return [_as_lists(v) for v in value]
    return value


@pytest.fixture
def make_feature():
    """Factory turning a Shapely geometry into a GeoJSON feature."""
    return to_feature


@pytest.fixture
def make_collection():
    """Factory turning Shapely geometries into a GeoJSON FeatureCollection."""
    def _make(*geoms, **properties):
        return {
            "type": "FeatureCollection",
            "features": [to_feature(g, **properties) for g in geoms],
        }
    return _make


@pytest.fixture
def test_settings():
    """Coarse settings that keep full calculations fast."""
    return Settings(
        grid_resolution_deg=0.1,
        buffer_size_deg=0.08,
        cluster_link_distance_deg=0.15,
        disk_quad_segments=6,
        spatial_index_cell_size_deg=0.25,
        land_buffer_deg=0.0005,
        simplify_tolerance_deg=0.0001,
        min_zone_area_km2=0.1,
        progress_batch_size=10,
        calculation_timeout_s=30,
    )


@pytest.fixture
def unit_square():
    """Study area: the unit square [0,0]-[1,1] in degrees."""
    return to_feature(box(0, 0, 1, 1), type="Study Area")
