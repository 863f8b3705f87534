"""HTTP client for the hosted waypoint-optimization service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

import httpx

from ...config import settings
from ..geospatial import is_valid_coordinate, point_in_bbox
from .models import (
    OptimizedTrip,
    OptimizedWaypoint,
    SUPPORTED_PROFILES,
    TripLeg,
    TripOptimizationOptions,
    TripStep,
    Waypoint,
)

logger = logging.getLogger(__name__)


class WaypointValidationError(ValueError):
    """Waypoint list rejected before any request was made."""


class TripServiceError(RuntimeError):
    """The provider answered with an error status or a non-Ok code."""


class MissingAccessTokenError(RuntimeError):
    """No access token configured for the trip-optimization provider."""


def _swap(coordinates: Sequence[Sequence[float]]) -> list[tuple[float, float]]:
    """Provider [lon, lat] pairs to (lat, lon)."""
    return [(float(pair[1]), float(pair[0])) for pair in coordinates]


def format_distance(meters: float) -> str:
    if meters >= 1000:
        return f"{meters / 1000:.1f} km"
    return f"{round(meters)} m"


def format_duration(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    remaining = seconds % 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {round(remaining)}s"
    return f"{round(remaining)}s"


def count_out_of_region(waypoints: Sequence[Waypoint], bbox: Sequence[float] | None = None) -> int:
    bbox = tuple(bbox or settings.operating_region_bbox)
    outside = 0
    for position, waypoint in enumerate(waypoints):
        lat, lon = waypoint.coordinates
        if not point_in_bbox(lat, lon, bbox):
            logger.warning(f"Waypoint {position} outside operating region: ({lat}, {lon})")
            outside += 1
    return outside


class TripOptimizationClient:
    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        min_waypoints: int | None = None,
        max_waypoints: int | None = None,
        request_delay_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.access_token = access_token if access_token is not None else settings.mapbox_access_token
        self.base_url = (base_url or settings.mapbox_optimization_url).rstrip("/")
        self._client = client
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.min_waypoints = min_waypoints if min_waypoints is not None else settings.trip_min_waypoints
        self.max_waypoints = max_waypoints if max_waypoints is not None else settings.trip_max_waypoints
        self.request_delay_seconds = (
            request_delay_seconds if request_delay_seconds is not None else settings.trip_request_delay_seconds
        )
        self._sleep = sleep

    def validate_waypoints(self, waypoints: Sequence[Waypoint]) -> None:
        if len(waypoints) < self.min_waypoints:
            raise WaypointValidationError(f"At least {self.min_waypoints} waypoints are required")
        if len(waypoints) > self.max_waypoints:
            raise WaypointValidationError(f"Maximum {self.max_waypoints} waypoints allowed")
        invalid = [index for index, waypoint in enumerate(waypoints) if not is_valid_coordinate(waypoint.coordinates)]
        if invalid:
            raise WaypointValidationError(
                f"{len(invalid)} waypoints have invalid coordinates (indices {', '.join(map(str, invalid))})"
            )

    def build_request(self, waypoints: Sequence[Waypoint], options: TripOptimizationOptions) -> tuple[str, dict]:
        if options.profile not in SUPPORTED_PROFILES:
            raise WaypointValidationError(f"Unsupported profile '{options.profile}'")
        coordinates = ";".join(f"{wp.coordinates[1]},{wp.coordinates[0]}" for wp in waypoints)
        params: dict[str, Any] = {
            "access_token": self.access_token,
            "overview": "full",
            "steps": "true",
            "geometries": "geojson",
            "source": options.source,
            "destination": options.destination,
            "roundtrip": str(options.roundtrip).lower(),
        }
        if options.annotations:
            params["annotations"] = ",".join(options.annotations)
        return f"{self.base_url}/{options.profile}/{coordinates}", params

    async def optimize_route(
        self,
        waypoints: Sequence[Waypoint],
        options: TripOptimizationOptions | None = None,
    ) -> OptimizedTrip:
        """Order ``waypoints`` with one provider call.

        Raises WaypointValidationError before any network traffic, then
        MissingAccessTokenError when unconfigured, and TripServiceError for
        provider failures.
        """
        options = options or TripOptimizationOptions()
        self.validate_waypoints(waypoints)
        if not self.access_token:
            raise MissingAccessTokenError("Mapbox access token is required for route optimization")

        url, params = self.build_request(waypoints, options)
        logger.info(f"Optimizing trip for {len(waypoints)} waypoints ({options.profile})")

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0)) as client:
                    response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise TripServiceError(f"Mapbox API error: {exc}") from exc

        if response.is_error:
            raise TripServiceError(
                f"Mapbox API error: {response.status_code} {response.reason_phrase} - {response.text}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise TripServiceError(f"Mapbox API error: invalid JSON response ({exc})") from exc

        if data.get("code") != "Ok":
            raise TripServiceError(
                f"Optimization failed: {data.get('code')} - {data.get('message') or 'Unknown error'}"
            )
        if not data.get("trips"):
            raise TripServiceError("No optimized trips returned from API")

        try:
            trip = self._parse_trip(waypoints, data)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise TripServiceError(f"Malformed optimization response: {exc}") from exc

        logger.info(
            f"Trip optimized: {format_distance(trip.distance)}, {format_duration(trip.duration)}, "
            f"{len(trip.waypoints)} waypoints"
        )
        return trip

    async def optimize_multiple_routes(
        self,
        requests: Sequence[tuple[Sequence[Waypoint], TripOptimizationOptions | None]],
    ) -> list[OptimizedTrip]:
        """Optimize several trips one after another, pausing between calls. Stops at the first failure."""
        results: list[OptimizedTrip] = []
        for position, (waypoints, options) in enumerate(requests):
            logger.info(f"Processing trip {position + 1}/{len(requests)}")
            results.append(await self.optimize_route(waypoints, options))
            if position < len(requests) - 1:
                await self._sleep(self.request_delay_seconds)
        return results

    @staticmethod
    def _parse_trip(waypoints: Sequence[Waypoint], data: dict) -> OptimizedTrip:
        trip = data["trips"][0]

        # Provider waypoints are listed in input order; waypoint_index is the trip position.
        ordered: list[tuple[int, int, list[float]]] = sorted(
            (int(item["waypoint_index"]), input_index, item["location"])
            for input_index, item in enumerate(data.get("waypoints") or [])
        )
        optimized = []
        for position, (_, input_index, location) in enumerate(ordered):
            original = waypoints[input_index]
            optimized.append(
                OptimizedWaypoint(
                    coordinates=(float(location[1]), float(location[0])),
                    name=original.name or f"Stop {position + 1}",
                    address=original.address,
                    input_index=input_index,
                )
            )

        legs = [
            TripLeg(
                distance=float(leg.get("distance", 0.0)),
                duration=float(leg.get("duration", 0.0)),
                steps=[
                    TripStep(
                        distance=float(step.get("distance", 0.0)),
                        duration=float(step.get("duration", 0.0)),
                        instruction=(step.get("maneuver") or {}).get("instruction", ""),
                        coordinates=_swap((step.get("geometry") or {}).get("coordinates") or []),
                    )
                    for step in leg.get("steps") or []
                ],
            )
            for leg in trip.get("legs") or []
        ]

        return OptimizedTrip(
            waypoints=optimized,
            distance=float(trip["distance"]),
            duration=float(trip["duration"]),
            geometry=_swap((trip.get("geometry") or {}).get("coordinates") or []),
            legs=legs,
        )
