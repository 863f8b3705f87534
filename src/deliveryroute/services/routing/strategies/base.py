"""Base classes for route sequencing strategy implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from ....models.domain import DeliveryStop, LatLon, OptimizationResult, Priority, VehicleConstraints
from ..estimator import TravelEstimator

PRIORITY_WEIGHTS: dict[Priority, float] = {
    Priority.URGENT: 4.0,
    Priority.HIGH: 2.0,
    Priority.NORMAL: 1.0,
    Priority.LOW: 0.5,
}

URGENCY_SCORES: dict[Priority, float] = {
    Priority.URGENT: 100.0,
    Priority.HIGH: 75.0,
    Priority.NORMAL: 50.0,
    Priority.LOW: 25.0,
}

# (hours to deadline, bonus), checked in order.
DEADLINE_BONUSES: tuple[tuple[float, float], ...] = ((1.0, 50.0), (2.0, 30.0), (4.0, 15.0))


class StrategyError(RuntimeError):
    """Raised by a strategy that cannot produce a route for its input."""


@dataclass(slots=True)
class StrategyContext:
    """Inputs shared by every strategy during one optimization call.

    ``deliveries`` all carry coordinates. Routes produced against a context
    index into ``deliveries``, not into the caller's original list.
    """

    driver_location: LatLon
    deliveries: Sequence[DeliveryStop]
    constraints: VehicleConstraints
    current_time: datetime
    estimator: TravelEstimator


def priority_weight(priority: Priority) -> float:
    return PRIORITY_WEIGHTS.get(priority, 1.0)


def urgency_score(delivery: DeliveryStop, current_time: datetime) -> float:
    """Priority tier score plus a bonus that escalates as the window deadline nears."""
    score = URGENCY_SCORES.get(delivery.priority, 0.0)
    if delivery.time_window:
        hours_to_deadline = (delivery.time_window.end - current_time).total_seconds() / 3600.0
        for limit, bonus in DEADLINE_BONUSES:
            if hours_to_deadline < limit:
                score += bonus
                break
    return score


class RouteAccumulator:
    """Running totals for a route built one stop at a time."""

    def __init__(self, context: StrategyContext) -> None:
        self._context = context
        self.route: list[int] = []
        self.total_distance = 0.0
        self.total_time = 0.0
        self.arrivals: list[datetime] = []
        self.traffic_adjustments: list[float] = []
        self.location: LatLon = context.driver_location
        self.clock: datetime = context.current_time
        self.load: float = context.constraints.current_load

    def visit(self, index: int) -> None:
        delivery = self._context.deliveries[index]
        estimator = self._context.estimator
        destination = delivery.coordinates
        distance = estimator.distance(self.location, destination)
        travel = estimator.dynamic_travel_time(self.location, destination, self.clock)

        arrival = self.clock + timedelta(minutes=travel)
        self.route.append(index)
        self.total_distance += distance
        self.total_time += travel + delivery.estimated_service_time
        self.arrivals.append(arrival)
        self.traffic_adjustments.append(estimator.traffic_factor(self.location, destination))
        self.clock = arrival + timedelta(minutes=delivery.estimated_service_time)
        self.location = destination
        self.load += delivery.weight

    def result(self, algorithm: str, iterations: int) -> OptimizationResult:
        return OptimizationResult(
            route=list(self.route),
            total_distance=self.total_distance,
            total_time=self.total_time,
            algorithm=algorithm,
            iterations=iterations,
            estimated_arrival_times=list(self.arrivals),
            traffic_adjustments=list(self.traffic_adjustments),
        )


class RoutingStrategy(ABC):
    """Contract for route sequencing strategies."""

    name: str = "strategy"

    def applies_to(self, context: StrategyContext) -> bool:
        return True

    async def run(self, context: StrategyContext) -> OptimizationResult:
        return self.build(context)

    @abstractmethod
    def build(self, context: StrategyContext) -> OptimizationResult:
        raise NotImplementedError
