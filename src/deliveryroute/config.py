"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Route Engine API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for cache files and run outputs.")

    # Provider credentials and endpoints
    mapbox_access_token: Optional[str] = Field(
        default=None,
        description="Mapbox token used for precise geocoding and trip optimization.",
    )
    mapbox_geocoding_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    mapbox_optimization_url: str = "https://api.mapbox.com/optimized-trips/v1/mapbox"
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    http_user_agent: str = "DeliveryRouteEngine/1.0 (Contact: dispatch@example.com)"
    http_timeout_seconds: float = Field(default=15.0, gt=0.0)

    # Operating area. Coordinates are (lat, lon); the viewbox is (west, south, east, north).
    service_center: tuple[float, ...] = Field(
        default=(43.6532, -79.3832),
        description="Depot centre used for proximity bias, as (lat, lon).",
    )
    geocode_country: str = "ca"
    geocode_region_qualifier: str = "ON, Canada"
    geocode_viewbox: tuple[float, ...] = Field(
        default=(-79.639219, 43.580952, -79.115906, 43.855457),
        description="Fallback provider search box as (west, south, east, north).",
    )
    operating_region_bbox: tuple[float, ...] = Field(
        default=(-80.5, 43.0, -78.5, 45.0),
        description="Accepted coordinate region as (west, south, east, north).",
    )

    # Geocoding behaviour
    geocode_min_relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    geocode_request_delay_seconds: float = Field(default=1.0, ge=0.0)
    geocode_batch_size: int = Field(default=5, ge=1)
    geocode_batch_delay_seconds: float = Field(default=2.0, ge=0.0)
    geocode_max_batch_addresses: int = Field(default=25, ge=1)
    geocode_max_retries: int = Field(default=3, ge=0)
    geocode_backoff_seconds: float = Field(default=1.0, ge=0.0)
    geocode_cache_ttl_days: float = Field(default=30.0, gt=0.0)
    geocode_cache_backend: Literal["memory", "file", "supabase"] = "file"
    geocode_cache_file: Path = Field(default=Path("data/geocoding-cache.json"))
    geocode_cache_table: str = "geocode_cache"

    # Travel estimation
    average_speed_kmh: float = Field(default=40.0, gt=0.0)
    minimum_travel_minutes: float = Field(default=1.0, ge=0.0)
    rush_hour_multiplier: float = Field(default=1.3, gt=0.0)
    night_multiplier: float = Field(default=0.8, gt=0.0)
    traffic_update_interval_seconds: float = Field(default=300.0, ge=0.0)

    # Route optimization
    max_deliveries: int = Field(default=100, ge=1)
    cluster_size_limit: int = Field(default=8, ge=1)
    optimization_timeout_seconds: float = Field(default=30.0, gt=0.0)
    capacity_tolerance: float = Field(default=1.2, ge=1.0)
    working_hours_buffer_hours: float = Field(default=2.0, ge=0.0)
    time_window_grace_hours: float = Field(default=2.0, ge=0.0)
    fallback_minutes_per_stop: float = Field(default=30.0, gt=0.0)
    enable_local_improvement: bool = False
    two_opt_max_passes: int = Field(default=50, ge=1)

    # External trip optimization
    trip_min_waypoints: int = Field(default=2, ge=2)
    trip_max_waypoints: int = Field(default=12, ge=2)
    trip_request_delay_seconds: float = Field(default=1.0, ge=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("data_root", "geocode_cache_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("service_center", "geocode_viewbox", "operating_region_bbox", mode="before")
    @classmethod
    def _parse_float_tuple_from_env(cls, value: Any) -> tuple[float, ...]:
        """Parse float tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, (tuple, list)):
            return tuple(float(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(float(item) for item in parsed)
            except (json.JSONDecodeError, TypeError, ValueError):
                pass
            return tuple(float(item.strip()) for item in value.split(",") if item.strip())
        return tuple()

    @field_validator("service_center")
    @classmethod
    def _check_center(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        if len(value) != 2:
            raise ValueError("service_center must be a (lat, lon) pair")
        return value

    @field_validator("geocode_viewbox", "operating_region_bbox")
    @classmethod
    def _check_bbox(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        if len(value) != 4:
            raise ValueError("bounding boxes must be (west, south, east, north)")
        west, south, east, north = value
        if west >= east or south >= north:
            raise ValueError("bounding box edges are inverted")
        return value


settings = Settings()
