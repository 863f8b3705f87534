"""Process-wide service instances shared by the route handlers."""

from __future__ import annotations

from functools import lru_cache

from ..persistence.cache_store import build_cache_store
from ..services.geocoding.cache import GeocodeCache
from ..services.geocoding.resolver import GeocodingResolver
from ..services.routing.engine import RouteOptimizationEngine
from ..services.routing.service import RouteOptimizationService
from ..services.trips.client import TripOptimizationClient


@lru_cache()
def get_geocoding_resolver() -> GeocodingResolver:
    return GeocodingResolver(cache=GeocodeCache(store=build_cache_store()))


@lru_cache()
def get_route_engine() -> RouteOptimizationEngine:
    return RouteOptimizationEngine()


def get_route_service() -> RouteOptimizationService:
    return RouteOptimizationService(engine=get_route_engine(), resolver=get_geocoding_resolver())


@lru_cache()
def get_trip_client() -> TripOptimizationClient:
    return TripOptimizationClient()
