"""
Tests for cache keys, the in-memory and file caches, and the result archive.
"""
import re
from datetime import datetime, timezone

import pytest
from shapely.geometry import box

from hullzones.schemas.zone import CalculationMetadata, ZoneCalculationResult, ZoneFeature, ZoneProperties
from hullzones.services.geometry_utils import shape_to_geojson
from hullzones.services.zone_cache import (
    FileZoneCache,
    InMemoryZoneCache,
    ZoneResultStore,
    compute_cache_key,
)


def make_result(zone_count: int = 1, grid_resolution: float = 0.005) -> ZoneCalculationResult:
    calculated_at = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    features = [
        ZoneFeature(
            geometry=shape_to_geojson(box(i, 0, i + 0.5, 0.5)),
            properties=ZoneProperties(
                id=f"zone_{i + 1}",
                area_m2=1000.0 * (i + 1),
                perimeter_km=2.5,
                calculated_at=calculated_at,
                grid_resolution=grid_resolution,
            ),
        )
        for i in range(zone_count)
    ]
    return ZoneCalculationResult(
        features=features,
        metadata=CalculationMetadata(
            calculation_time_ms=42,
            total_candidate_points=10,
            constraints_processed=3,
            grid_resolution=grid_resolution,
            cache_key="zones_deadbeef_0.005",
        ),
    )


@pytest.fixture
def constraint_set(make_collection):
    return {
        "marineParks": make_collection(box(0, 0, 1, 1), box(2, 2, 3, 3)),
        "portAuthorities": make_collection(box(5, 5, 6, 6)),
    }


class TestComputeCacheKey:
    """Tests for compute_cache_key."""

    def test_key_format(self, constraint_set):
        key = compute_cache_key(constraint_set, 0.005)
        assert re.fullmatch(r"zones_[0-9a-f]{8}_0\.005", key)

    def test_key_ignores_category_order(self, constraint_set):
        reordered = dict(reversed(list(constraint_set.items())))
        assert compute_cache_key(constraint_set, 0.005) == compute_cache_key(reordered, 0.005)

    def test_key_changes_with_resolution(self, constraint_set):
        assert compute_cache_key(constraint_set, 0.005) != compute_cache_key(constraint_set, 0.01)

    def test_key_changes_with_feature_count(self, constraint_set, make_collection):
        changed = dict(constraint_set, portAuthorities=make_collection(box(5, 5, 6, 6), box(7, 7, 8, 8)))
        assert compute_cache_key(constraint_set, 0.005) != compute_cache_key(changed, 0.005)

    def test_key_changes_with_land_count_and_study_area(self, constraint_set, make_feature):
        base = compute_cache_key(constraint_set, 0.005, land_features=[], study_area_bounds=(0, 0, 1, 1))
        with_land = compute_cache_key(
            constraint_set, 0.005, land_features=[make_feature(box(0, 0, 1, 1))], study_area_bounds=(0, 0, 1, 1)
        )
        moved = compute_cache_key(constraint_set, 0.005, land_features=[], study_area_bounds=(0, 0, 2, 1))

        assert len({base, with_land, moved}) == 3

    def test_counts_mode_misses_geometry_edits(self, constraint_set, make_collection):
        edited = dict(constraint_set, portAuthorities=make_collection(box(5, 5, 6.5, 6)))

        assert compute_cache_key(constraint_set, 0.005, mode="counts") == compute_cache_key(
            edited, 0.005, mode="counts"
        )
        assert compute_cache_key(constraint_set, 0.005, mode="content") != compute_cache_key(
            edited, 0.005, mode="content"
        )


class TestInMemoryZoneCache:
    def test_returns_the_stored_object(self):
        cache = InMemoryZoneCache()
        result = make_result()

        assert cache.get("zones_x_0.005") is None
        cache.put("zones_x_0.005", result)

        assert cache.get("zones_x_0.005") is result
        assert "zones_x_0.005" in cache
        assert len(cache) == 1

    def test_put_replaces_and_clear_empties(self):
        cache = InMemoryZoneCache()
        first, second = make_result(1), make_result(2)
        cache.put("k", first)
        cache.put("k", second)

        assert cache.get("k") is second
        cache.clear()
        assert len(cache) == 0


class TestFileZoneCache:
    def test_round_trip(self, tmp_path):
        cache = FileZoneCache(tmp_path / "cache")
        result = make_result(2)

        cache.put("zones_abcdef12_0.005", result)

        assert (tmp_path / "cache" / "zones_abcdef12_0.005.json").exists()
        assert cache.get("zones_abcdef12_0.005").to_geojson() == result.to_geojson()

    def test_missing_entry_is_a_miss(self, tmp_path):
        assert FileZoneCache(tmp_path).get("zones_00000000_0.005") is None

    def test_corrupt_entry_is_a_miss(self, tmp_path):
        (tmp_path / "zones_abcdef12_0.005.json").write_text("{not json", encoding="utf-8")
        assert FileZoneCache(tmp_path).get("zones_abcdef12_0.005") is None

    def test_clear_removes_entries(self, tmp_path):
        cache = FileZoneCache(tmp_path)
        cache.put("zones_a_0.005", make_result())
        cache.put("zones_b_0.005", make_result())

        cache.clear()

        assert list(tmp_path.glob("zones_*.json")) == []


class TestZoneResultStore:
    def test_save_uses_dated_file_name(self, tmp_path):
        store = ZoneResultStore(tmp_path)
        path = store.save(make_result(), when=datetime(2024, 3, 1, tzinfo=timezone.utc))
        assert path.name == "zones_2024-03-01.json"

    def test_get_latest_returns_newest(self, tmp_path):
        store = ZoneResultStore(tmp_path)
        store.save(make_result(1), when=datetime(2024, 3, 1, tzinfo=timezone.utc))
        store.save(make_result(3), when=datetime(2024, 5, 9, tzinfo=timezone.utc))
        store.save(make_result(2), when=datetime(2024, 4, 2, tzinfo=timezone.utc))

        latest = store.get_latest()
        assert latest is not None
        assert len(latest.features) == 3

    def test_get_latest_without_archive(self, tmp_path):
        assert ZoneResultStore(tmp_path / "missing").get_latest() is None
