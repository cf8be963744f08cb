"""
Tests for water mask construction and its fallbacks.
"""
import pytest
from shapely.errors import GEOSException
from shapely.geometry import Point, Polygon, box

from hullzones.services import water_mask as water_mask_module
from hullzones.services.geometry_utils import features_to_polygons
from hullzones.services.water_mask import WaterMaskBuilder, union_polygons
from hullzones.services.zone_errors import DegenerateStudyAreaError


class BrokenLand:
    """Stand-in for a land geometry whose buffer blows up in GEOS."""

    is_empty = False

    def buffer(self, distance):
        raise GEOSException("TopologyException: side location conflict")


class NotAGeometry:
    """Object that passes the emptiness filter but cannot be unioned."""

    is_empty = False


class TestWaterMaskBuilder:
    """Tests for WaterMaskBuilder.build."""

    @pytest.fixture
    def study_area(self):
        return box(0, 0, 1, 1)

    def test_no_land_returns_study_area(self, study_area):
        mask = WaterMaskBuilder().build(study_area, [])

        assert mask.geometry.equals(study_area)
        assert mask.land_union is None
        assert not mask.used_fallback
        assert not mask.is_empty

    def test_land_is_buffered_and_subtracted(self, study_area):
        mask = WaterMaskBuilder(land_buffer=0.0005).build(study_area, [box(0, 0, 0.5, 1)])

        assert mask.geometry.area == pytest.approx(0.4995, abs=1e-6)
        assert mask.geometry.bounds[0] == pytest.approx(0.5005, abs=1e-9)
        assert not mask.covers_point(Point(0.25, 0.5))
        assert not mask.covers_point(Point(0.5002, 0.5))
        assert mask.covers_point(Point(0.75, 0.5))

    def test_boundary_points_are_in_water(self, study_area):
        mask = WaterMaskBuilder().build(study_area, [])
        assert mask.covers_point(Point(1.0, 1.0))
        assert mask.covers_point(Point(0.0, 0.5))

    def test_multiple_land_polygons_are_unioned(self, study_area):
        land = [box(0, 0, 0.3, 0.3), box(0.2, 0.2, 0.4, 0.4), box(0.7, 0.7, 1, 1)]
        mask = WaterMaskBuilder(land_buffer=0).build(study_area, land)

        expected = 1 - (0.09 + 0.04 - 0.01) - 0.09
        assert mask.geometry.area == pytest.approx(expected)
        assert mask.land_union is not None

    def test_land_covering_everything_gives_empty_mask(self, study_area):
        mask = WaterMaskBuilder().build(study_area, [box(-0.5, -0.5, 1.5, 1.5)])
        assert mask.is_empty

    def test_self_intersecting_land_feature_removes_both_lobes(self, study_area):
        bowtie = {
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [0.6, 1], [0.6, 0], [0, 1], [0, 0]]]},
            "properties": {"type": "Land"},
        }
        land = features_to_polygons([bowtie], label="land feature")

        mask = WaterMaskBuilder(land_buffer=0).build(study_area, land)

        assert mask.geometry.area == pytest.approx(0.7)
        assert not mask.covers_point(Point(0.05, 0.5))
        assert not mask.covers_point(Point(0.55, 0.5))

    def test_degenerate_study_area_raises(self):
        with pytest.raises(DegenerateStudyAreaError):
            WaterMaskBuilder().build(Polygon(), [])

    def test_zero_area_study_area_raises(self):
        flat = Polygon([(0, 0), (1, 0), (2, 0), (0, 0)])
        with pytest.raises(DegenerateStudyAreaError):
            WaterMaskBuilder().build(flat, [])

    def test_difference_failure_falls_back_to_study_area(self, study_area):
        mask = WaterMaskBuilder().build(study_area, [BrokenLand()])

        assert mask.used_fallback
        assert mask.geometry.equals(study_area)


class TestUnionPolygons:
    """Tests for the unary-then-pairwise union helper."""

    def test_empty_input(self):
        assert union_polygons([]) is None
        assert union_polygons([Polygon()]) is None

    def test_single_polygon_is_returned_as_is(self):
        poly = box(0, 0, 1, 1)
        assert union_polygons([poly]) is poly

    def test_pairwise_fallback_skips_failing_pair(self, monkeypatch):
        def failing_unary_union(geoms):
            raise GEOSException("unary union failed")

        monkeypatch.setattr(water_mask_module, "unary_union", failing_unary_union)

        a = box(0, 0, 1, 1)
        b = box(2, 0, 3, 1)
        merged = union_polygons([a, NotAGeometry(), b])

        assert merged.area == pytest.approx(2.0)
        assert merged.covers(Point(2.5, 0.5))
