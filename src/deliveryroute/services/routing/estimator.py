"""Distance and travel-time estimation between coordinates."""

from __future__ import annotations

from datetime import datetime

from ...config import settings
from ...models.domain import LatLon
from ..geospatial import haversine_km
from .traffic import TrafficConditionCache

RUSH_HOURS = frozenset({7, 8, 9, 17, 18, 19})
NIGHT_HOURS = frozenset({22, 23, 0, 1, 2, 3, 4, 5, 6})


class TravelEstimator:
    """Straight-line distance in km and travel time in minutes.

    No I/O and no shared mutable state of its own, so strategies may call it
    concurrently. The traffic cache is read but never written here.
    """

    def __init__(
        self,
        traffic_cache: TrafficConditionCache | None = None,
        average_speed_kmh: float | None = None,
        minimum_minutes: float | None = None,
        rush_hour_multiplier: float | None = None,
        night_multiplier: float | None = None,
    ) -> None:
        self.traffic_cache = traffic_cache
        self.average_speed_kmh = average_speed_kmh or settings.average_speed_kmh
        self.minimum_minutes = minimum_minutes if minimum_minutes is not None else settings.minimum_travel_minutes
        self.rush_hour_multiplier = rush_hour_multiplier or settings.rush_hour_multiplier
        self.night_multiplier = night_multiplier or settings.night_multiplier

    def distance(self, origin: LatLon, destination: LatLon) -> float:
        return haversine_km(origin[0], origin[1], destination[0], destination[1])

    def travel_time(self, distance_km: float) -> float:
        return distance_km / self.average_speed_kmh * 60.0

    def time_of_day_multiplier(self, departure: datetime) -> float:
        if departure.hour in RUSH_HOURS:
            return self.rush_hour_multiplier
        if departure.hour in NIGHT_HOURS:
            return self.night_multiplier
        return 1.0

    def traffic_factor(self, origin: LatLon, destination: LatLon) -> float:
        if self.traffic_cache is None:
            return 1.0
        return self.traffic_cache.delay_factor(origin, destination)

    def dynamic_travel_time(self, origin: LatLon, destination: LatLon, departure: datetime) -> float:
        """Travel minutes, preferring a cached segment delay over the clock-based multiplier."""
        base = self.travel_time(self.distance(origin, destination))
        condition = self.traffic_cache.get(origin, destination) if self.traffic_cache is not None else None
        multiplier = condition.delay_factor if condition else self.time_of_day_multiplier(departure)
        return max(base * multiplier, self.minimum_minutes)
