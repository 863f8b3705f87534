"""Composite capacity, priority and distance scoring for small stop sets."""

from __future__ import annotations

from datetime import datetime, timedelta

from ....config import settings
from ....models.domain import DeliveryStop, LatLon, OptimizationResult
from .base import RouteAccumulator, RoutingStrategy, StrategyContext, StrategyError, priority_weight

ON_TIME_BONUS = 20.0
LATE_PENALTY = 50.0
CAPACITY_EFFICIENCY_BONUS = 10.0


class HybridStrategy(RoutingStrategy):
    """Greedy pick of the best-scoring stop at each step.

    Only attempted when the stop count is at most ``cluster_size_limit``.
    The running load starts at the vehicle's current load and a stop is
    skipped when its package would push the load over capacity.
    """

    name = "hybrid"

    def __init__(self, cluster_size_limit: int | None = None) -> None:
        self.cluster_size_limit = cluster_size_limit or settings.cluster_size_limit

    def applies_to(self, context: StrategyContext) -> bool:
        return len(context.deliveries) <= self.cluster_size_limit

    def score(
        self,
        context: StrategyContext,
        location: LatLon,
        delivery: DeliveryStop,
        departure: datetime,
        current_load: float,
    ) -> float:
        estimator = context.estimator
        distance = estimator.distance(location, delivery.coordinates)
        travel_time = estimator.dynamic_travel_time(location, delivery.coordinates, departure)

        score = 100.0
        score -= distance * 2
        score -= travel_time * 0.5
        score += priority_weight(delivery.priority) * 10

        if delivery.time_window:
            arrival = departure + timedelta(minutes=travel_time)
            score += ON_TIME_BONUS if arrival <= delivery.time_window.end else -LATE_PENALTY

        remaining_capacity = context.constraints.max_capacity - current_load
        if delivery.weight <= remaining_capacity * 0.5:
            score += CAPACITY_EFFICIENCY_BONUS

        return max(score, 0.0)

    def build(self, context: StrategyContext) -> OptimizationResult:
        deliveries = context.deliveries
        capacity = context.constraints.max_capacity
        accumulator = RouteAccumulator(context)
        remaining = list(range(len(deliveries)))

        while remaining:
            best_index = -1
            best_score = -1.0
            for index in remaining:
                delivery = deliveries[index]
                if accumulator.load + delivery.weight > capacity:
                    continue
                score = self.score(context, accumulator.location, delivery, accumulator.clock, accumulator.load)
                if score > best_score:
                    best_score = score
                    best_index = index
            if best_index == -1:
                raise StrategyError(
                    f"Vehicle capacity exhausted after {len(accumulator.route)} of {len(deliveries)} stops"
                )
            accumulator.visit(best_index)
            remaining.remove(best_index)

        return accumulator.result(self.name, iterations=len(deliveries))
