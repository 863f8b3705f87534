"""Route optimization engine: concurrent strategies, selection and repair."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import Sequence

from ...config import settings
from ...models.domain import DeliveryStop, LatLon, OptimizationResult, VehicleConstraints
from .estimator import TravelEstimator
from .local_search import improve_route
from .strategies import DEFAULT_STRATEGIES, RoutingStrategy, SequentialStrategy, StrategyContext, select_strategies
from .traffic import TrafficConditionCache
from .validation import (
    FeasibilityRules,
    create_empty_result,
    create_error_result,
    filter_feasible,
    split_by_coordinates,
    validate_inputs,
    validate_result,
)

logger = logging.getLogger(__name__)

FALLBACK_ALGORITHM = "fallback_sequential"


class RouteOptimizationEngine:
    """Sequence delivery stops for a single driver.

    ``optimize`` never raises: every failure mode ends in an
    ``OptimizationResult`` whose ``is_valid``/``errors``/``warnings`` fields
    describe what went wrong.
    """

    def __init__(
        self,
        estimator: TravelEstimator | None = None,
        traffic_cache: TrafficConditionCache | None = None,
        strategies: Sequence[RoutingStrategy] | None = None,
        strategy_names: tuple[str, ...] = DEFAULT_STRATEGIES,
        timeout_seconds: float | None = None,
        max_deliveries: int | None = None,
        cluster_size_limit: int | None = None,
        feasibility: FeasibilityRules | None = None,
        fallback_minutes_per_stop: float | None = None,
        enable_local_improvement: bool | None = None,
        two_opt_max_passes: int | None = None,
    ) -> None:
        if estimator is None:
            self.traffic_cache = traffic_cache if traffic_cache is not None else TrafficConditionCache()
            self.estimator = TravelEstimator(traffic_cache=self.traffic_cache)
        else:
            self.estimator = estimator
            self.traffic_cache = traffic_cache if traffic_cache is not None else estimator.traffic_cache
        self._strategies = list(strategies) if strategies is not None else None
        self.strategy_names = strategy_names
        self.timeout_seconds = timeout_seconds or settings.optimization_timeout_seconds
        self.max_deliveries = max_deliveries or settings.max_deliveries
        self.cluster_size_limit = cluster_size_limit or settings.cluster_size_limit
        self.feasibility = feasibility or FeasibilityRules()
        self.fallback_minutes_per_stop = fallback_minutes_per_stop or settings.fallback_minutes_per_stop
        self.enable_local_improvement = (
            enable_local_improvement if enable_local_improvement is not None else settings.enable_local_improvement
        )
        self.two_opt_max_passes = two_opt_max_passes or settings.two_opt_max_passes

    async def optimize(
        self,
        driver_location: LatLon,
        deliveries: Sequence[DeliveryStop],
        vehicle_constraints: VehicleConstraints,
        current_time: datetime | None = None,
        *,
        local_improvement: bool | None = None,
    ) -> OptimizationResult:
        if current_time is None:
            start = getattr(getattr(vehicle_constraints, "working_hours", None), "start", None)
            tz = start.tzinfo if isinstance(start, datetime) else None
            current_time = datetime.now(tz)
        started = time.perf_counter()
        count = len(deliveries) if isinstance(deliveries, (list, tuple)) else 0
        logger.info(f"Starting route optimization for {count} deliveries from {driver_location}")

        try:
            result = await self._optimize(
                driver_location, deliveries, vehicle_constraints, current_time, local_improvement
            )
        except Exception as exc:
            logger.exception(f"Route optimization failed: {exc}")
            result = self._recover(driver_location, deliveries, vehicle_constraints, current_time, str(exc))

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Optimization finished in {elapsed_ms:.0f}ms using {result.algorithm} "
            f"({len(result.route)} stops, {result.total_distance:.2f}km, valid={result.is_valid})"
        )
        return result

    async def _optimize(
        self,
        driver_location: LatLon,
        deliveries: Sequence[DeliveryStop],
        constraints: VehicleConstraints,
        current_time: datetime,
        local_improvement: bool | None,
    ) -> OptimizationResult:
        report = validate_inputs(driver_location, deliveries, constraints, self.max_deliveries)
        if not report.is_valid:
            logger.warning(f"Rejected optimization request: {report.errors}")
            return create_error_result(report.errors)

        if not deliveries:
            return create_empty_result()

        driver_location = (float(driver_location[0]), float(driver_location[1]))
        warnings: list[str] = []

        usable, rejected = split_by_coordinates(deliveries)
        if rejected:
            rejected_ids = ", ".join(deliveries[index].id for index in rejected)
            warnings.append(f"Filtered out {len(rejected)} deliveries with invalid coordinates: {rejected_ids}")
        if not usable:
            return create_error_result(["No valid deliveries with coordinates found"], warnings)

        if self.traffic_cache is not None:
            try:
                self.traffic_cache.refresh([driver_location, *(deliveries[i].coordinates for i in usable)])
            except Exception as exc:
                logger.warning(f"Traffic update failed: {exc}")
                warnings.append("Traffic data unavailable, using default estimates")

        feasible = filter_feasible(deliveries, usable, constraints, current_time, self.feasibility)
        if not feasible:
            warnings.append("No deliveries satisfy vehicle constraints; optimizing all valid deliveries")
            considered = usable
        else:
            if len(feasible) < len(usable):
                warnings.append(f"Excluded {len(usable) - len(feasible)} deliveries outside vehicle constraints")
            considered = feasible

        if len(considered) > constraints.max_deliveries:
            warnings.append(
                f"Route has {len(considered)} stops, above the vehicle limit of {constraints.max_deliveries}"
            )

        context = StrategyContext(
            driver_location=driver_location,
            deliveries=[deliveries[index] for index in considered],
            constraints=constraints,
            current_time=current_time,
            estimator=self.estimator,
        )
        strategies = self._strategies_for(context)
        attempted = [strategy.name for strategy in strategies]

        try:
            best = await asyncio.wait_for(self._run_strategies(strategies, context), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Optimization timed out after {self.timeout_seconds}s")
            local = self._fallback(context, f"Optimization timed out after {self.timeout_seconds:g}s")
        else:
            if best is None:
                local = self._fallback(context, "All optimization strategies failed")
            else:
                local = best

        result = replace(local, route=[considered[i] if 0 <= i < len(considered) else -1 for i in local.route])
        result = validate_result(result, considered)

        use_improvement = self.enable_local_improvement if local_improvement is None else local_improvement
        if use_improvement and result.is_valid and result.algorithm != FALLBACK_ALGORITHM:
            coordinates = {index: deliveries[index].coordinates for index in considered}
            result = improve_route(result, driver_location, coordinates, max_passes=self.two_opt_max_passes)

        result.warnings = [*warnings, *result.warnings]
        result.attempted_algorithms = attempted
        return result

    def _strategies_for(self, context: StrategyContext) -> list[RoutingStrategy]:
        if self._strategies is not None:
            return [strategy for strategy in self._strategies if strategy.applies_to(context)]
        return select_strategies(context, self.strategy_names, cluster_size_limit=self.cluster_size_limit)

    async def _run_strategies(
        self, strategies: Sequence[RoutingStrategy], context: StrategyContext
    ) -> OptimizationResult | None:
        tasks = [asyncio.create_task(strategy.run(context), name=strategy.name) for strategy in strategies]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        successful: list[OptimizationResult] = []
        for strategy, outcome in zip(strategies, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Strategy {strategy.name} failed: {outcome}")
                continue
            if not outcome.route:
                logger.warning(f"Strategy {strategy.name} produced an empty route")
                continue
            logger.debug(f"Strategy {strategy.name}: {outcome.total_distance:.2f}km, {outcome.total_time:.1f}min")
            successful.append(outcome)

        if not successful:
            return None
        # min() keeps the first strategy on equal distances.
        best = min(successful, key=lambda outcome: outcome.total_distance)
        logger.info(f"Best algorithm: {best.algorithm} with distance {best.total_distance:.2f}km")
        return best

    def _fallback(self, context: StrategyContext, reason: str) -> OptimizationResult:
        result = SequentialStrategy(minutes_per_stop=self.fallback_minutes_per_stop).build(context)
        return replace(
            result,
            algorithm=FALLBACK_ALGORITHM,
            is_valid=False,
            warnings=[reason, "Using fallback sequential routing"],
        )

    def _recover(
        self,
        driver_location: LatLon,
        deliveries: Sequence[DeliveryStop],
        constraints: VehicleConstraints,
        current_time: datetime,
        reason: str,
    ) -> OptimizationResult:
        """Sequential route over whatever is routable after an unexpected error."""
        try:
            usable, _ = split_by_coordinates(deliveries)
            context = StrategyContext(
                driver_location=(float(driver_location[0]), float(driver_location[1])),
                deliveries=[deliveries[index] for index in usable],
                constraints=constraints,
                current_time=current_time,
                estimator=self.estimator,
            )
            result = self._fallback(context, reason)
        except Exception as exc:
            logger.error(f"Fallback routing failed: {exc}")
            return create_error_result([reason, f"Fallback routing failed: {exc}"])
        return replace(result, route=[usable[i] for i in result.route])
