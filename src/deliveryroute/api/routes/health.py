"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/providers", status_code=status.HTTP_200_OK)
def health_providers() -> dict:
    """Report which upstream providers have credentials configured. Makes no network calls."""
    mapbox = bool(settings.mapbox_access_token)
    return {
        "geocoding": {
            "primary": {"provider": "mapbox", "configured": mapbox},
            "fallback": {"provider": "nominatim", "configured": True},
        },
        "trip_optimization": {"provider": "mapbox", "configured": mapbox},
        "geocode_cache": {
            "backend": settings.geocode_cache_backend,
            "supabase_configured": bool(settings.supabase_url and settings.supabase_key),
        },
    }
