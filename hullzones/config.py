"""
Engine configuration from environment variables.

All distances are in geographic degrees unless the name says otherwise.
"""
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Zone engine settings loaded from environment variables."""

    # Adaptive grid
    grid_resolution_deg: float = 0.005  # ~500m fine-pass spacing
    progress_batch_size: int = 100  # Coarse cells between progress reports

    # Zone synthesis
    buffer_size_deg: float = 0.004  # Disk radius around each accepted point
    disk_quad_segments: int = 6
    cluster_link_distance_deg: float = 0.0075

    # Spatial index
    spatial_index_cell_size_deg: float = 0.01  # ~1km cells

    # Water mask / optimization
    land_buffer_deg: float = 0.0005
    simplify_tolerance_deg: float = 0.0001
    min_zone_area_km2: float = 0.1

    # Cache and result storage
    cache_key_mode: str = "counts"  # "counts" or "content"
    cache_dir: str = "zone_cache"
    zones_dir: str = "calculated_zones"

    # Orchestration
    calculation_timeout_s: float = 600.0  # 10 minutes

    # Constraint categories scanned when collecting constraint polygons
    constraint_keys: list[str] = [
        "portAuthorities",
        "marineParks",
        "fishHabitat",
        "cockburnSound",
        "mooringAreas",
        "marineInfrastructure",
        "marineGeomorphic",
        "ausMarineParks",
        "osmHarbours",
        "osmMarinas",
    ]

    # Feature type/name fragments that mark a feature as land
    land_keywords: list[str] = ["land", "island", "peninsula"]

    @field_validator("constraint_keys", "land_keywords", mode="before")
    @classmethod
    def parse_comma_list(cls, v):
        """Parse list settings from comma-separated string or list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("cache_key_mode")
    @classmethod
    def check_cache_key_mode(cls, v: str) -> str:
        """Only the two supported cache key strategies are accepted."""
        v = v.lower()
        if v not in ("counts", "content"):
            raise ValueError("cache_key_mode must be 'counts' or 'content'")
        return v

    class Config:
        env_file = ".env"
        env_prefix = "HULLZONES_"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
