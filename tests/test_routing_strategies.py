import asyncio
from datetime import datetime, timedelta

import pytest

from deliveryroute.models.domain import (
    DeliveryStop,
    DeliveryWindow,
    Priority,
    VehicleConstraints,
    WorkingHours,
)
from deliveryroute.services.routing.estimator import TravelEstimator
from deliveryroute.services.routing.local_search import (
    STALE_ESTIMATES_WARNING,
    improve_route,
    route_distance,
    two_opt_swap,
)
from deliveryroute.services.routing.strategies import (
    HybridStrategy,
    NearestNeighborStrategy,
    SequentialStrategy,
    StrategyContext,
    StrategyError,
    TimeWindowStrategy,
    get_strategy,
    select_strategies,
)
from deliveryroute.services.routing.strategies.base import urgency_score

NOON = datetime(2024, 5, 6, 12, 0)
DEPOT = (43.6532, -79.3832)


def _stop(sid: str, lat: float, lon: float, **kwargs) -> DeliveryStop:
    return DeliveryStop(id=sid, coordinates=(lat, lon), **kwargs)


def _context(deliveries, capacity: float = 100.0, load: float = 0.0) -> StrategyContext:
    constraints = VehicleConstraints(
        max_capacity=capacity,
        current_load=load,
        max_deliveries=50,
        working_hours=WorkingHours(start=NOON - timedelta(hours=4), end=NOON + timedelta(hours=6)),
    )
    return StrategyContext(
        driver_location=DEPOT,
        deliveries=deliveries,
        constraints=constraints,
        current_time=NOON,
        estimator=TravelEstimator(),
    )


def test_nearest_neighbor_visits_closest_stop_first() -> None:
    deliveries = [_stop("far", 43.70, -79.40), _stop("near", 43.66, -79.38), _stop("mid", 43.68, -79.39)]
    result = NearestNeighborStrategy().build(_context(deliveries))

    assert result.route == [1, 2, 0]
    assert result.algorithm == "nearest_neighbor_from_driver"
    assert len(result.estimated_arrival_times) == 3
    assert result.estimated_arrival_times == sorted(result.estimated_arrival_times)


def test_nearest_neighbor_ties_go_to_input_order() -> None:
    deliveries = [_stop("a", 43.66, -79.38), _stop("b", 43.66, -79.38), _stop("c", 43.66, -79.38)]
    result = NearestNeighborStrategy().build(_context(deliveries))

    assert result.route == [0, 1, 2]


def test_two_stop_nearest_neighbor_matches_sequential_distance() -> None:
    deliveries = [_stop("a", 43.66, -79.38), _stop("b", 43.70, -79.40)]
    context = _context(deliveries)

    nearest = NearestNeighborStrategy().build(context)
    sequential = SequentialStrategy().build(context)

    assert nearest.total_distance == pytest.approx(sequential.total_distance)


def test_totals_include_service_time() -> None:
    deliveries = [_stop("a", 43.66, -79.38, estimated_service_time=10.0)]
    context = _context(deliveries)
    result = SequentialStrategy().build(context)

    travel = context.estimator.dynamic_travel_time(DEPOT, deliveries[0].coordinates, NOON)
    assert result.total_time == pytest.approx(travel + 10.0)
    assert result.estimated_arrival_times[0] == NOON + timedelta(minutes=travel)


def test_urgency_score_adds_deadline_bonus() -> None:
    def windowed(priority: Priority, hours: float) -> DeliveryStop:
        window = DeliveryWindow(start=NOON, end=NOON + timedelta(hours=hours))
        return _stop("x", 43.66, -79.38, priority=priority, time_window=window)

    assert urgency_score(_stop("x", 43.66, -79.38, priority=Priority.LOW), NOON) == 25
    assert urgency_score(windowed(Priority.NORMAL, 0.5), NOON) == 100
    assert urgency_score(windowed(Priority.HIGH, 1.5), NOON) == 105
    assert urgency_score(windowed(Priority.URGENT, 3), NOON) == 115
    assert urgency_score(windowed(Priority.URGENT, 6), NOON) == 100


def test_time_window_strategy_orders_by_urgency_stably() -> None:
    deliveries = [
        _stop("n1", 43.66, -79.38),
        _stop("u", 43.70, -79.40, priority=Priority.URGENT),
        _stop("n2", 43.67, -79.38),
        _stop(
            "due",
            43.68,
            -79.39,
            time_window=DeliveryWindow(start=NOON, end=NOON + timedelta(minutes=30)),
        ),
        _stop("low", 43.65, -79.37, priority=Priority.LOW),
    ]
    result = TimeWindowStrategy().build(_context(deliveries))

    # urgent=100, due=50+50=100 keeps input order; then the two normals in order.
    assert result.route == [1, 3, 0, 2, 4]
    assert result.algorithm == "time_window"


def test_hybrid_score_components() -> None:
    strategy = HybridStrategy()
    context = _context([])
    here = (43.66, -79.38)
    plain = _stop("plain", 43.66, -79.38)

    # zero distance, one-minute floor: 100 - 0.5 + 10 (normal) + 10 (capacity)
    assert strategy.score(context, here, plain, NOON, current_load=0.0) == pytest.approx(119.5)

    urgent = _stop("urgent", 43.66, -79.38, priority=Priority.URGENT)
    assert strategy.score(context, here, urgent, NOON, current_load=0.0) == pytest.approx(149.5)

    late = _stop("late", 43.66, -79.38, time_window=DeliveryWindow(start=NOON - timedelta(hours=2), end=NOON))
    on_time = _stop("ok", 43.66, -79.38, time_window=DeliveryWindow(start=NOON, end=NOON + timedelta(hours=2)))
    assert strategy.score(context, here, late, NOON, current_load=0.0) == pytest.approx(119.5 - 50)
    assert strategy.score(context, here, on_time, NOON, current_load=0.0) == pytest.approx(119.5 + 20)

    heavy = _stop("heavy", 43.66, -79.38, package_weight=60.0)
    assert strategy.score(context, here, heavy, NOON, current_load=0.0) == pytest.approx(109.5)


def test_hybrid_score_is_never_negative() -> None:
    strategy = HybridStrategy()
    context = _context([])
    distant = _stop("far", 45.0, -75.0, priority=Priority.LOW)

    assert strategy.score(context, DEPOT, distant, NOON, current_load=0.0) == 0.0


def test_hybrid_prefers_urgent_stop_and_respects_capacity() -> None:
    deliveries = [
        _stop("near", 43.66, -79.38),
        _stop("urgent", 43.70, -79.40, priority=Priority.URGENT),
    ]
    result = HybridStrategy().build(_context(deliveries))
    assert result.route == [1, 0]

    overweight = [_stop("a", 43.66, -79.38, package_weight=6.0), _stop("b", 43.67, -79.38, package_weight=6.0)]
    with pytest.raises(StrategyError):
        HybridStrategy().build(_context(overweight, capacity=10.0))


def test_hybrid_only_applies_to_small_clusters() -> None:
    small = _context([_stop(str(n), 43.66, -79.38) for n in range(8)])
    large = _context([_stop(str(n), 43.66, -79.38) for n in range(9)])

    assert HybridStrategy(cluster_size_limit=8).applies_to(small)
    assert not HybridStrategy(cluster_size_limit=8).applies_to(large)
    assert [s.name for s in select_strategies(large)] == ["nearest_neighbor_from_driver", "time_window"]


def test_sequential_fallback_timing_is_coarse() -> None:
    deliveries = [_stop("a", 43.66, -79.38), _stop("b", 43.70, -79.40)]
    result = SequentialStrategy(minutes_per_stop=30).build(_context(deliveries))

    assert result.route == [0, 1]
    assert result.total_time == 60
    assert result.estimated_arrival_times == [NOON + timedelta(minutes=30), NOON + timedelta(minutes=60)]
    assert result.traffic_adjustments == [1.0, 1.0]
    assert result.total_distance > 0


def test_get_strategy_rejects_unknown_names() -> None:
    assert get_strategy("simple_sequential", minutes_per_stop=5).minutes_per_stop == 5
    with pytest.raises(ValueError):
        get_strategy("genetic")


def test_strategies_run_as_coroutines() -> None:
    deliveries = [_stop("a", 43.66, -79.38)]
    result = asyncio.run(NearestNeighborStrategy().run(_context(deliveries)))

    assert result.route == [0]


def test_two_opt_swap_reverses_segment() -> None:
    assert two_opt_swap([0, 1, 2, 3, 4], 1, 3) == [0, 3, 2, 1, 4]


def test_improve_route_removes_crossing() -> None:
    coordinates = {0: (43.66, -79.38), 1: (43.70, -79.40), 2: (43.67, -79.38), 3: (43.71, -79.40)}
    zigzag = SequentialStrategy().build(_context([_stop(str(i), *coordinates[i]) for i in range(4)]))
    before = route_distance(DEPOT, zigzag.route, coordinates)

    improved = improve_route(zigzag, DEPOT, coordinates, max_passes=50)

    assert improved.total_distance < before
    assert improved.total_distance == pytest.approx(route_distance(DEPOT, improved.route, coordinates))
    assert sorted(improved.route) == [0, 1, 2, 3]
    assert improved.improvement >= 1
    assert improved.total_time == zigzag.total_time
    assert improved.estimated_arrival_times == zigzag.estimated_arrival_times
    assert STALE_ESTIMATES_WARNING in improved.warnings
    assert STALE_ESTIMATES_WARNING not in zigzag.warnings


def test_improve_route_keeps_optimal_route_untouched() -> None:
    coordinates = {0: (43.66, -79.38), 1: (43.70, -79.40)}
    result = NearestNeighborStrategy().build(_context([_stop("a", *coordinates[0]), _stop("b", *coordinates[1])]))

    assert improve_route(result, DEPOT, coordinates) is result
