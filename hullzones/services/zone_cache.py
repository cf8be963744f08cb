"""
Result cache for zone calculations.

Results are keyed by a short digest of the constraint input shape plus the
grid resolution. In "counts" mode the digest covers category keys and
per-category feature counts only, so an edit that changes geometry but not
counts is not seen; "content" mode also hashes the geometries.

Also provides ZoneResultStore, the dated archive of finished calculations.
"""
import hashlib
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from hullzones.schemas.zone import ZoneCalculationResult
from hullzones.services.constraint_loader import collection_features
from hullzones.services.geometry_utils import feature_geometry

logger = logging.getLogger(__name__)

DIGEST_LENGTH = 8


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _geometry_digest(features: Iterable[Any]) -> str:
    geometries = [feature_geometry(f) for f in features]
    return hashlib.sha256(_canonical_json(geometries).encode("utf-8")).hexdigest()


def compute_cache_key(
    constraint_set: dict[str, Any],
    grid_resolution: float,
    land_features: Optional[list[Any]] = None,
    study_area_bounds: Optional[tuple[float, float, float, float]] = None,
    mode: str = "counts",
) -> str:
    """
    Derive the cache key for a calculation.

    Args:
        constraint_set: Category key -> FeatureCollection
        grid_resolution: Base grid resolution in degrees
        land_features: Land features (their count is part of the key)
        study_area_bounds: Study area bounding box (part of the key)
        mode: "counts" or "content"

    Returns:
        Key of the form zones_<8 hex chars>_<grid resolution>
    """
    summary: dict[str, Any] = {
        "keys": sorted(constraint_set.keys()),
        "featureCounts": {
            key: len(collection_features(collection))
            for key, collection in constraint_set.items()
        },
        "landCount": len(land_features or []),
        "studyAreaBounds": [round(b, 9) for b in study_area_bounds] if study_area_bounds else None,
    }
    if mode == "content":
        summary["contentHashes"] = {
            key: _geometry_digest(collection_features(collection))
            for key, collection in constraint_set.items()
        }
        summary["landHash"] = _geometry_digest(land_features or [])

    digest = hashlib.md5(_canonical_json(summary).encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
    return f"zones_{digest}_{grid_resolution}"


class ZoneCache(ABC):
    """Interface for zone result caches."""

    @abstractmethod
    def get(self, key: str) -> Optional[ZoneCalculationResult]:
        """Return the cached result for key, or None."""
        pass

    @abstractmethod
    def put(self, key: str, result: ZoneCalculationResult) -> None:
        """Store result under key, replacing any previous entry."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""
        pass

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryZoneCache(ZoneCache):
    """Process-local cache; hands back the very object that was stored."""

    def __init__(self):
        self._entries: dict[str, ZoneCalculationResult] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[ZoneCalculationResult]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, result: ZoneCalculationResult) -> None:
        with self._lock:
            self._entries[key] = result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FileZoneCache(ZoneCache):
    """
    One JSON file per key under cache_dir.

    Missing or unreadable files are cache misses; write failures are logged
    and otherwise ignored.
    """

    def __init__(self, cache_dir: str | Path):
        self.cache_dir = Path(cache_dir)

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> Optional[ZoneCalculationResult]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return ZoneCalculationResult.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache entry {path.name}: {e}")
            return None

    def put(self, key: str, result: ZoneCalculationResult) -> None:
        path = self._path(key)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to cache result {key}: {e}")

    def clear(self) -> None:
        if not self.cache_dir.exists():
            return
        for path in self.cache_dir.glob("zones_*.json"):
            try:
                path.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove cache entry {path.name}: {e}")


class ZoneResultStore:
    """Dated archive of calculation results (zones_<YYYY-MM-DD>.json)."""

    def __init__(self, zones_dir: str | Path):
        self.zones_dir = Path(zones_dir)

    def save(self, result: ZoneCalculationResult, when: Optional[datetime] = None) -> Path:
        """Write result to the archive file for the given (default: current) UTC date."""
        when = when or datetime.now(timezone.utc)
        self.zones_dir.mkdir(parents=True, exist_ok=True)
        path = self.zones_dir / f"zones_{when.strftime('%Y-%m-%d')}.json"
        path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        logger.info(f"Saved {len(result.features)} zones to {path}")
        return path

    def get_latest(self) -> Optional[ZoneCalculationResult]:
        """Return the newest archived result, or None if there is none."""
        if not self.zones_dir.exists():
            return None
        files = sorted(self.zones_dir.glob("zones_*.json"), reverse=True)
        if not files:
            return None
        try:
            return ZoneCalculationResult.model_validate_json(files[0].read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            logger.error(f"Error reading latest zones {files[0].name}: {e}")
            return None
