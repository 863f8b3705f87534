"""Route optimization orchestration: geocode, build stops, optimize, persist."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict
from datetime import datetime
from typing import Sequence

from ...models.domain import (
    DeliveryStop,
    DeliveryWindow,
    LatLon,
    OptimizationResult,
    VehicleConstraints,
    WorkingHours,
)
from ...persistence.filesystem import FileStorage
from ...schemas.routing import (
    DeliveryRecord,
    GeocodingSummary,
    OptimizationResultModel,
    RouteOptimizationRequest,
    RouteOptimizationResponse,
    RouteStopModel,
    VehicleConstraintsModel,
)
from ..geocoding.resolver import GeocodingResolver
from ..geospatial import is_valid_coordinate
from ..outputs.routing_formatter import optimization_result_to_csv, optimization_result_to_json, route_stops
from .engine import RouteOptimizationEngine

logger = logging.getLogger(__name__)


def _build_constraints(model: VehicleConstraintsModel | None) -> VehicleConstraints | None:
    if model is None:
        return None
    return VehicleConstraints(
        max_capacity=model.max_capacity,
        current_load=model.current_load,
        max_deliveries=model.max_deliveries,
        working_hours=WorkingHours(start=model.working_hours.start, end=model.working_hours.end),
    )


def _build_stop(record: DeliveryRecord, coordinates: LatLon | None) -> DeliveryStop:
    window = record.time_window
    return DeliveryStop(
        id=record.id,
        coordinates=coordinates,
        estimated_service_time=record.estimated_service_time,
        priority=record.priority,
        time_window=DeliveryWindow(start=window.start, end=window.end, priority=window.priority) if window else None,
        package_weight=record.package_weight,
        special_requirements=tuple(record.special_requirements),
        address=record.address,
    )


def _default_now(constraints: VehicleConstraints | None) -> datetime:
    """Current time in the same timezone convention as the working hours."""
    tzinfo = constraints.working_hours.start.tzinfo if constraints else None
    return datetime.now(tzinfo)


class RouteOptimizationService:
    """Turn caller delivery records into an ordered route for one driver."""

    def __init__(
        self,
        engine: RouteOptimizationEngine | None = None,
        resolver: GeocodingResolver | None = None,
        storage: FileStorage | None = None,
    ) -> None:
        self.engine = engine or RouteOptimizationEngine()
        self._resolver = resolver
        self._storage = storage

    @property
    def resolver(self) -> GeocodingResolver:
        if self._resolver is None:
            self._resolver = GeocodingResolver()
        return self._resolver

    @property
    def storage(self) -> FileStorage:
        if self._storage is None:
            self._storage = FileStorage()
        return self._storage

    async def geocode_missing(self, records: Sequence[DeliveryRecord]) -> tuple[list[LatLon | None], GeocodingSummary]:
        """Coordinates for every record, geocoding those that only carry an address."""
        coordinates: list[LatLon | None] = []
        pending: list[int] = []
        for position, record in enumerate(records):
            if is_valid_coordinate(record.coordinates):
                coordinates.append((float(record.coordinates[0]), float(record.coordinates[1])))
                continue
            coordinates.append(None)
            if record.address and record.address.strip():
                pending.append(position)

        summary = GeocodingSummary(requested=len(pending))
        if not pending:
            return coordinates, summary

        chunk_size = self.resolver.max_batch_addresses
        logger.info(f"Geocoding {len(pending)} delivery addresses in chunks of {chunk_size}")
        for start in range(0, len(pending), chunk_size):
            chunk = pending[start : start + chunk_size]
            results = await self.resolver.resolve_batch([records[position].address for position in chunk])
            for position, result in zip(chunk, results):
                if result.coordinates is not None:
                    coordinates[position] = result.coordinates
                    summary.resolved += 1
                else:
                    summary.failed.append(records[position].id)

        if summary.failed:
            logger.warning(f"Could not geocode {len(summary.failed)} deliveries: {', '.join(summary.failed)}")
        return coordinates, summary

    async def optimize(self, payload: RouteOptimizationRequest) -> RouteOptimizationResponse:
        coordinates, geocoding = await self.geocode_missing(payload.deliveries)
        stops = [_build_stop(record, coords) for record, coords in zip(payload.deliveries, coordinates)]
        constraints = _build_constraints(payload.vehicle_constraints)
        current_time = payload.current_time or _default_now(constraints)

        result = await self.engine.optimize(
            tuple(payload.driver_location),
            stops,
            constraints,
            current_time,
            local_improvement=payload.local_improvement,
        )

        output_dir = None
        if payload.persist:
            output_dir = self.persist(result, stops, payload.run_label)

        return RouteOptimizationResponse(
            result=OptimizationResultModel(**asdict(result)),
            stops=[RouteStopModel(**stop) for stop in route_stops(result, stops)],
            geocoding=geocoding,
            output_dir=str(output_dir) if output_dir else None,
        )

    def persist(self, result: OptimizationResult, stops: Sequence[DeliveryStop], run_label: str | None = None):
        label = re.sub(r"[^A-Za-z0-9_-]+", "-", run_label).strip("-") if run_label else ""
        prefix = f"route_{label}" if label else "route"
        run_dir = self.storage.make_run_directory(prefix=prefix)
        self.storage.write_json(run_dir / "summary.json", optimization_result_to_json(result, stops))
        self.storage.write_csv(run_dir / "route.csv", optimization_result_to_csv(result, stops))
        logger.info(f"Saved route outputs to {run_dir}")
        return run_dir
