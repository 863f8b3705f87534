import random
from datetime import datetime

import pytest

from deliveryroute.models.domain import CongestionLevel, TrafficCondition
from deliveryroute.services.geospatial import haversine_km, is_valid_coordinate, point_in_bbox
from deliveryroute.services.routing.estimator import TravelEstimator
from deliveryroute.services.routing.traffic import TrafficConditionCache

DEPOT = (43.6532, -79.3832)
NEARBY = (43.66, -79.38)
FAR = (43.70, -79.40)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_haversine_one_degree_of_longitude_at_equator() -> None:
    assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.195, abs=0.01)


def test_haversine_is_symmetric() -> None:
    assert haversine_km(*DEPOT, *FAR) == pytest.approx(haversine_km(*FAR, *DEPOT))
    assert haversine_km(*DEPOT, *DEPOT) == 0.0


@pytest.mark.parametrize(
    "value, expected",
    [
        ((43.65, -79.38), True),
        ([90, 180], True),
        ((91.0, 0.0), False),
        ((0.0, -180.5), False),
        ((float("nan"), 0.0), False),
        ((0.0, float("inf")), False),
        ((1.0,), False),
        (None, False),
        ("43.6,-79.3", False),
        (("a", "b"), False),
    ],
)
def test_is_valid_coordinate(value, expected) -> None:
    assert is_valid_coordinate(value) is expected


def test_point_in_bbox_includes_edges() -> None:
    bbox = (-80.5, 43.0, -78.5, 45.0)

    assert point_in_bbox(43.65, -79.38, bbox)
    assert point_in_bbox(43.0, -80.5, bbox)
    assert not point_in_bbox(45.5, -79.0, bbox)
    assert not point_in_bbox(43.65, -81.0, bbox)


def test_travel_time_uses_average_speed() -> None:
    estimator = TravelEstimator(average_speed_kmh=40)

    assert estimator.travel_time(40.0) == pytest.approx(60.0)
    assert estimator.travel_time(10.0) == pytest.approx(15.0)


@pytest.mark.parametrize(
    "hour, multiplier",
    [(8, 1.3), (17, 1.3), (19, 1.3), (12, 1.0), (20, 1.0), (23, 0.8), (3, 0.8), (6, 0.8), (10, 1.0)],
)
def test_time_of_day_multiplier(hour: int, multiplier: float) -> None:
    estimator = TravelEstimator()

    assert estimator.time_of_day_multiplier(datetime(2024, 5, 6, hour, 30)) == pytest.approx(multiplier)


def test_dynamic_travel_time_applies_rush_hour_and_floor() -> None:
    estimator = TravelEstimator(average_speed_kmh=40, minimum_minutes=1.0)
    base = estimator.travel_time(estimator.distance(DEPOT, FAR))

    assert estimator.dynamic_travel_time(DEPOT, FAR, datetime(2024, 5, 6, 8, 0)) == pytest.approx(base * 1.3)
    assert estimator.dynamic_travel_time(DEPOT, FAR, datetime(2024, 5, 6, 12, 0)) == pytest.approx(base)
    assert estimator.dynamic_travel_time(DEPOT, DEPOT, datetime(2024, 5, 6, 12, 0)) == 1.0


def test_cached_segment_factor_replaces_time_of_day_multiplier() -> None:
    cache = TrafficConditionCache()
    cache.set(DEPOT, FAR, TrafficCondition(segment_index=0, delay_factor=1.5, congestion_level=CongestionLevel.HEAVY))
    estimator = TravelEstimator(traffic_cache=cache, average_speed_kmh=40)
    base = estimator.travel_time(estimator.distance(DEPOT, FAR))

    rush = datetime(2024, 5, 6, 8, 0)
    assert estimator.dynamic_travel_time(DEPOT, FAR, rush) == pytest.approx(base * 1.5)
    assert estimator.traffic_factor(DEPOT, FAR) == 1.5
    assert estimator.traffic_factor(FAR, DEPOT) == 1.0
    assert estimator.dynamic_travel_time(FAR, DEPOT, rush) == pytest.approx(base * 1.3)


def test_traffic_cache_refreshes_only_when_stale() -> None:
    clock = FakeClock()
    cache = TrafficConditionCache(update_interval_seconds=300, rng=random.Random(7), clock=clock)

    assert cache.is_stale()
    assert cache.refresh([DEPOT, NEARBY, FAR]) is True
    # three locations give three unordered pairs, stored in both directions
    assert len(cache) == 6
    assert cache.get(DEPOT, FAR) is cache.get(FAR, DEPOT)

    clock.now += 299
    assert cache.refresh([DEPOT, NEARBY]) is False
    assert len(cache) == 6

    clock.now += 1
    assert cache.refresh([DEPOT, NEARBY]) is True
    assert len(cache) == 2
    assert cache.refresh([DEPOT, FAR], force=True) is True
    assert cache.get(DEPOT, NEARBY) is None


def test_traffic_cache_delay_factors_follow_segment_length() -> None:
    cache = TrafficConditionCache(rng=random.Random(3))
    short_hop = (43.6532, -79.3732)
    mid_hop = (43.70, -79.32)
    long_hop = (43.80, -79.20)
    cache.refresh([DEPOT, short_hop, mid_hop, long_hop])

    short = cache.get(DEPOT, short_hop)
    assert 1.0 <= short.delay_factor <= 1.2
    assert short.congestion_level is CongestionLevel.LIGHT

    mid = cache.get(DEPOT, mid_hop)
    assert 5 < haversine_km(*DEPOT, *mid_hop) <= 10
    assert 1.1 <= mid.delay_factor <= 1.5
    assert mid.congestion_level in (CongestionLevel.MODERATE, CongestionLevel.HEAVY)

    long = cache.get(DEPOT, long_hop)
    assert haversine_km(*DEPOT, *long_hop) > 10
    assert 1.2 <= long.delay_factor <= 1.5
    assert long.congestion_level is CongestionLevel.MODERATE


def test_traffic_cache_clear_marks_stale() -> None:
    cache = TrafficConditionCache()
    cache.refresh([DEPOT, FAR])
    cache.clear()

    assert len(cache) == 0
    assert cache.is_stale()


def test_traffic_refresh_swaps_in_a_complete_table() -> None:
    cache = TrafficConditionCache(rng=random.Random(1))
    manual = TrafficCondition(segment_index=0, delay_factor=2.0, congestion_level=CongestionLevel.HEAVY)
    cache.set(DEPOT, NEARBY, manual)
    assert cache.delay_factor(DEPOT, NEARBY) == 2.0

    cache.refresh([NEARBY, FAR])

    assert cache.get(DEPOT, NEARBY) is None
    assert cache.delay_factor(DEPOT, NEARBY) == 1.0
    assert len(cache) == 2
