"""Input and result checks around route optimization."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Sequence

from ...config import settings
from ...models.domain import DeliveryStop, OptimizationResult, VehicleConstraints
from ..geospatial import is_valid_coordinate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(slots=True)
class FeasibilityRules:
    """Soft tolerances applied when excluding deliveries before sequencing."""

    capacity_tolerance: float = settings.capacity_tolerance
    working_hours_buffer: timedelta = timedelta(hours=settings.working_hours_buffer_hours)
    arrival_estimate: timedelta = timedelta(hours=1)
    time_window_grace: timedelta = timedelta(hours=settings.time_window_grace_hours)


def validate_inputs(
    driver_location: Any,
    deliveries: Any,
    constraints: VehicleConstraints | None,
    max_deliveries: int | None = None,
) -> ValidationReport:
    max_deliveries = max_deliveries or settings.max_deliveries
    report = ValidationReport()

    if driver_location is None or isinstance(driver_location, (str, bytes)) or not hasattr(driver_location, "__len__"):
        report.errors.append("Invalid driver location")
    elif len(driver_location) != 2:
        report.errors.append("Invalid driver location")
    elif not is_valid_coordinate(driver_location):
        report.errors.append("Driver location coordinates out of valid range")

    if not isinstance(deliveries, (list, tuple)):
        report.errors.append("Deliveries must be a list")
    elif len(deliveries) > max_deliveries:
        report.errors.append(f"Too many deliveries (maximum {max_deliveries})")

    if constraints is None:
        report.errors.append("Vehicle constraints are required")
    else:
        if constraints.max_capacity <= 0:
            report.errors.append("Invalid vehicle capacity")
        if constraints.current_load < 0:
            report.errors.append("Invalid current load")
        if constraints.current_load > constraints.max_capacity:
            report.errors.append("Current load exceeds vehicle capacity")
        if constraints.working_hours.end < constraints.working_hours.start:
            report.errors.append("Working hours end before they start")

    return report


def split_by_coordinates(deliveries: Sequence[DeliveryStop]) -> tuple[list[int], list[int]]:
    """Partition input indices into (usable, missing-or-invalid coordinates)."""
    usable: list[int] = []
    rejected: list[int] = []
    for index, delivery in enumerate(deliveries):
        (usable if is_valid_coordinate(delivery.coordinates) else rejected).append(index)
    return usable, rejected


def is_feasible(
    delivery: DeliveryStop,
    constraints: VehicleConstraints,
    current_time: datetime,
    rules: FeasibilityRules,
) -> bool:
    if constraints.current_load + delivery.weight > constraints.max_capacity * rules.capacity_tolerance:
        return False

    hours = constraints.working_hours
    if current_time < hours.start - rules.working_hours_buffer:
        return False
    if current_time > hours.end + rules.working_hours_buffer:
        return False

    if delivery.time_window:
        estimated_arrival = current_time + rules.arrival_estimate
        if estimated_arrival > delivery.time_window.end + rules.time_window_grace:
            return False

    return True


def filter_feasible(
    deliveries: Sequence[DeliveryStop],
    indices: Sequence[int],
    constraints: VehicleConstraints,
    current_time: datetime,
    rules: FeasibilityRules | None = None,
) -> list[int]:
    rules = rules or FeasibilityRules()
    return [index for index in indices if is_feasible(deliveries[index], constraints, current_time, rules)]


def validate_result(result: OptimizationResult, expected_indices: Sequence[int]) -> OptimizationResult:
    """Check that ``result.route`` visits each expected index exactly once.

    Problems are recorded as errors and numeric totals are clamped; the
    result is always returned.
    """
    errors = list(result.errors)
    expected = set(expected_indices)

    if len(result.route) != len(expected):
        errors.append(f"Route missing deliveries: expected {len(expected)}, got {len(result.route)}")

    if len(set(result.route)) != len(result.route):
        errors.append("Route contains duplicate delivery indices")

    invalid = [index for index in result.route if index not in expected]
    if invalid:
        errors.append(f"Route contains invalid indices: {', '.join(str(i) for i in invalid)}")

    missing = sorted(expected.difference(result.route))
    if missing and len(result.route) == len(expected):
        errors.append(f"Route omits deliveries: {', '.join(str(i) for i in missing)}")

    total_distance = result.total_distance
    if math.isnan(total_distance) or total_distance < 0:
        errors.append("Invalid total distance")
        total_distance = 0.0

    total_time = result.total_time
    if math.isnan(total_time) or total_time < 0:
        errors.append("Invalid total time")
        total_time = 0.0

    if len(result.estimated_arrival_times) != len(result.route):
        errors.append("Arrival estimates do not match route length")

    if errors != result.errors:
        logger.warning(f"Route from {result.algorithm} failed integrity checks: {errors[len(result.errors):]}")

    return replace(
        result,
        total_distance=total_distance,
        total_time=total_time,
        is_valid=result.is_valid and not errors,
        errors=errors,
    )


def create_empty_result() -> OptimizationResult:
    return OptimizationResult(route=[], total_distance=0.0, total_time=0.0, algorithm="empty")


def create_error_result(errors: Sequence[str], warnings: Sequence[str] = ()) -> OptimizationResult:
    return OptimizationResult(
        route=[],
        total_distance=0.0,
        total_time=0.0,
        algorithm="error",
        is_valid=False,
        errors=list(errors),
        warnings=list(warnings),
    )
