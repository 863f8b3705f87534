"""Serializers for route optimization outputs."""

from __future__ import annotations

import csv
import io
from typing import Sequence

from ...models.domain import DeliveryStop, OptimizationResult


def route_stops(result: OptimizationResult, deliveries: Sequence[DeliveryStop]) -> list[dict]:
    """One row per visited stop, in route order. Unknown indices are reported with no delivery id.

    Arrival times and traffic adjustments are paired by position. After a 2-opt
    reorder they still describe the strategy's original order; the result
    carries a warning saying so.
    """
    stops = []
    for sequence, index in enumerate(result.route, start=1):
        delivery = deliveries[index] if 0 <= index < len(deliveries) else None
        arrival = (
            result.estimated_arrival_times[sequence - 1]
            if sequence - 1 < len(result.estimated_arrival_times)
            else None
        )
        adjustment = (
            result.traffic_adjustments[sequence - 1] if sequence - 1 < len(result.traffic_adjustments) else None
        )
        stops.append(
            {
                "sequence": sequence,
                "index": index,
                "delivery_id": delivery.id if delivery else "",
                "coordinates": list(delivery.coordinates) if delivery and delivery.coordinates else None,
                "estimated_arrival": arrival,
                "traffic_adjustment": adjustment,
            }
        )
    return stops


def optimization_result_to_json(result: OptimizationResult, deliveries: Sequence[DeliveryStop]) -> dict:
    return {
        "algorithm": result.algorithm,
        "is_valid": result.is_valid,
        "total_distance_km": round(result.total_distance, 3),
        "total_time_min": round(result.total_time, 1),
        "iterations": result.iterations,
        "improvement": result.improvement,
        "attempted_algorithms": list(result.attempted_algorithms),
        "errors": list(result.errors),
        "warnings": list(result.warnings),
        "route": list(result.route),
        "stops": [
            {**stop, "estimated_arrival": stop["estimated_arrival"].isoformat() if stop["estimated_arrival"] else None}
            for stop in route_stops(result, deliveries)
        ],
    }


def optimization_result_to_csv(result: OptimizationResult, deliveries: Sequence[DeliveryStop]) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "sequence",
        "delivery_id",
        "index",
        "latitude",
        "longitude",
        "estimated_arrival",
        "traffic_adjustment",
        "algorithm",
        "total_distance_km",
        "total_time_min",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for stop in route_stops(result, deliveries):
        coordinates = stop["coordinates"] or (None, None)
        writer.writerow(
            {
                "sequence": stop["sequence"],
                "delivery_id": stop["delivery_id"],
                "index": stop["index"],
                "latitude": coordinates[0],
                "longitude": coordinates[1],
                "estimated_arrival": stop["estimated_arrival"].isoformat() if stop["estimated_arrival"] else "",
                "traffic_adjustment": stop["traffic_adjustment"],
                "algorithm": result.algorithm,
                "total_distance_km": round(result.total_distance, 3),
                "total_time_min": round(result.total_time, 1),
            }
        )
    return buffer.getvalue()
