"""2-opt local improvement for a sequenced route."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping, Sequence

from ...models.domain import LatLon, OptimizationResult
from ..geospatial import haversine_km

logger = logging.getLogger(__name__)

STALE_ESTIMATES_WARNING = "Arrival times and traffic adjustments follow the stop order before local improvement"


def two_opt_swap(route: Sequence[int], i: int, j: int) -> list[int]:
    """Return ``route`` with the segment ``i..j`` (inclusive) reversed."""
    return [*route[:i], *reversed(route[i : j + 1]), *route[j + 1 :]]


def route_distance(start: LatLon, route: Sequence[int], coordinates: Mapping[int, LatLon]) -> float:
    total = 0.0
    current = start
    for index in route:
        point = coordinates[index]
        total += haversine_km(current[0], current[1], point[0], point[1])
        current = point
    return total


def improve_route(
    result: OptimizationResult,
    start: LatLon,
    coordinates: Mapping[int, LatLon],
    max_passes: int = 50,
) -> OptimizationResult:
    """Apply 2-opt reversals, keeping only strict distance reductions.

    The driver position is a fixed anchor before the first stop. Only
    ``route``, ``total_distance`` and ``improvement`` change on the returned
    copy, so a reordered result carries a warning that its arrival times and
    traffic adjustments are in the pre-improvement order.
    """
    route = list(result.route)
    if len(route) < 2:
        return result

    best_distance = route_distance(start, route, coordinates)
    passes = 0
    improving_passes = 0
    improved = True
    while improved and passes < max_passes:
        improved = False
        passes += 1
        for i in range(len(route) - 1):
            for j in range(i + 1, len(route)):
                candidate = two_opt_swap(route, i, j)
                candidate_distance = route_distance(start, candidate, coordinates)
                if candidate_distance < best_distance - 1e-9:
                    route = candidate
                    best_distance = candidate_distance
                    improved = True
        if improved:
            improving_passes += 1

    if route == result.route:
        return result

    logger.info(
        f"2-opt shortened route from {result.total_distance:.2f}km to {best_distance:.2f}km in {passes} passes"
    )
    return replace(
        result,
        route=route,
        total_distance=best_distance,
        improvement=improving_passes,
        warnings=[*result.warnings, STALE_ESTIMATES_WARNING],
    )
