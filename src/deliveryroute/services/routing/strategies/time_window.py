"""Urgency-ordered sequencing."""

from __future__ import annotations

from ....models.domain import OptimizationResult
from .base import RouteAccumulator, RoutingStrategy, StrategyContext, urgency_score


class TimeWindowStrategy(RoutingStrategy):
    """Visit stops by descending urgency without any geographic reordering."""

    name = "time_window"

    def build(self, context: StrategyContext) -> OptimizationResult:
        scores = [urgency_score(delivery, context.current_time) for delivery in context.deliveries]
        # sorted() is stable, so equal scores keep input order.
        order = sorted(range(len(scores)), key=lambda index: -scores[index])

        accumulator = RouteAccumulator(context)
        for index in order:
            accumulator.visit(index)
        return accumulator.result(self.name, iterations=len(order))
