"""Input-order sequencing, used directly and as the last-resort fallback."""

from __future__ import annotations

from datetime import timedelta

from ....models.domain import OptimizationResult
from .base import RouteAccumulator, RoutingStrategy, StrategyContext


class SequentialStrategy(RoutingStrategy):
    """Visit stops in the order given.

    With ``minutes_per_stop`` set, timing is a flat per-stop estimate rather
    than a travel-time calculation; distance is still measured leg by leg.
    """

    name = "simple_sequential"

    def __init__(self, minutes_per_stop: float | None = None) -> None:
        self.minutes_per_stop = minutes_per_stop

    def build(self, context: StrategyContext) -> OptimizationResult:
        accumulator = RouteAccumulator(context)
        for index in range(len(context.deliveries)):
            accumulator.visit(index)
        result = accumulator.result(self.name, iterations=1)

        if self.minutes_per_stop is not None:
            step = timedelta(minutes=self.minutes_per_stop)
            count = len(result.route)
            result.total_time = count * self.minutes_per_stop
            result.estimated_arrival_times = [context.current_time + step * (n + 1) for n in range(count)]
            result.traffic_adjustments = [1.0] * count
        return result
