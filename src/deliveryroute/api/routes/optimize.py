"""External trip-optimization endpoints."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from ...schemas.trips import OptimizedTripModel, TripRequest, TripResponse, TripSummary
from ...services.trips.client import (
    MissingAccessTokenError,
    TripOptimizationClient,
    TripServiceError,
    WaypointValidationError,
    count_out_of_region,
    format_distance,
    format_duration,
)
from ...services.trips.models import SUPPORTED_PROFILES, TripOptimizationOptions, Waypoint
from ..dependencies import get_trip_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/optimize-route", tags=["trips"])


@router.post("", response_model=TripResponse, status_code=status.HTTP_200_OK)
async def optimize_route(
    payload: TripRequest,
    client: TripOptimizationClient = Depends(get_trip_client),
) -> TripResponse:
    try:
        waypoints = [
            Waypoint(coordinates=tuple(wp.coordinates), name=wp.name, address=wp.address) for wp in payload.waypoints
        ]
        client.validate_waypoints(waypoints)
        out_of_bounds = count_out_of_region(waypoints)
        if out_of_bounds:
            logger.warning(f"{out_of_bounds} waypoints are outside the operating region, optimizing anyway")

        options = TripOptimizationOptions(**payload.options.model_dump())
        trip = await client.optimize_route(waypoints, options)
    except WaypointValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MissingAccessTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except TripServiceError as exc:
        logger.error(f"Trip optimization failed upstream: {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error optimizing trip: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to optimize route: {str(exc)}",
        ) from exc

    return TripResponse(
        data=OptimizedTripModel(**asdict(trip)),
        summary=TripSummary(
            distance=format_distance(trip.distance),
            duration=format_duration(trip.duration),
            waypoints=len(trip.waypoints),
            out_of_bounds_count=out_of_bounds,
        ),
    )


@router.get("", status_code=status.HTTP_200_OK)
def describe(client: TripOptimizationClient = Depends(get_trip_client)) -> dict:
    return {
        "message": "Trip optimization API",
        "endpoints": {"POST": "/optimize-route"},
        "parameters": {
            "waypoints": "Array of waypoint objects with coordinates [lat, lng]",
            "options": "Optional settings (profile, source, destination, roundtrip, annotations)",
        },
        "limits": {
            "min_waypoints": client.min_waypoints,
            "max_waypoints": client.max_waypoints,
            "supported_profiles": list(SUPPORTED_PROFILES),
        },
    }
