"""Greedy nearest-neighbour sequencing starting from the driver."""

from __future__ import annotations

import math

from ....models.domain import OptimizationResult
from .base import RouteAccumulator, RoutingStrategy, StrategyContext, StrategyError


class NearestNeighborStrategy(RoutingStrategy):
    """Always drive to the closest unvisited stop. Ties go to the earlier input."""

    name = "nearest_neighbor_from_driver"

    def build(self, context: StrategyContext) -> OptimizationResult:
        deliveries = context.deliveries
        estimator = context.estimator
        accumulator = RouteAccumulator(context)
        remaining = list(range(len(deliveries)))

        while remaining:
            nearest_index = -1
            nearest_distance = math.inf
            for index in remaining:
                distance = estimator.distance(accumulator.location, deliveries[index].coordinates)
                if distance < nearest_distance:
                    nearest_distance = distance
                    nearest_index = index
            if nearest_index == -1:
                raise StrategyError(f"No reachable stop after {len(accumulator.route)} visits")
            accumulator.visit(nearest_index)
            remaining.remove(nearest_index)

        return accumulator.result(self.name, iterations=len(deliveries))
