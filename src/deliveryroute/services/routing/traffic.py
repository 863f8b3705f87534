"""Process-local traffic condition table refreshed on a fixed interval."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Sequence

from ...config import settings
from ...models.domain import CongestionLevel, LatLon, TrafficCondition
from ..geospatial import haversine_km

logger = logging.getLogger(__name__)


class TrafficConditionCache:
    """Delay factors keyed by ``"lat,lon-lat,lon"`` segment strings.

    Entries have no individual TTL. The whole table is considered stale once
    ``update_interval_seconds`` has elapsed since the last refresh. Owned by
    one event loop; a refresh swaps in a complete new table.
    """

    def __init__(
        self,
        update_interval_seconds: float | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.update_interval_seconds = (
            update_interval_seconds
            if update_interval_seconds is not None
            else settings.traffic_update_interval_seconds
        )
        self._rng = rng or random.Random()
        self._clock = clock
        self._conditions: dict[str, TrafficCondition] = {}
        self._last_update: float | None = None

    @staticmethod
    def segment_key(origin: LatLon, destination: LatLon) -> str:
        return f"{origin[0]},{origin[1]}-{destination[0]},{destination[1]}"

    def __len__(self) -> int:
        return len(self._conditions)

    def get(self, origin: LatLon, destination: LatLon) -> TrafficCondition | None:
        return self._conditions.get(self.segment_key(origin, destination))

    def delay_factor(self, origin: LatLon, destination: LatLon) -> float:
        condition = self.get(origin, destination)
        return condition.delay_factor if condition else 1.0

    def set(self, origin: LatLon, destination: LatLon, condition: TrafficCondition) -> None:
        self._conditions[self.segment_key(origin, destination)] = condition

    def is_stale(self) -> bool:
        if self._last_update is None:
            return True
        return self._clock() - self._last_update >= self.update_interval_seconds

    def clear(self) -> None:
        self._conditions = {}
        self._last_update = None

    def refresh(self, locations: Sequence[LatLon], *, force: bool = False) -> bool:
        """Recompute conditions for every pair of ``locations`` when stale.

        Returns True when the table was rebuilt.
        """
        if not force and not self.is_stale():
            return False

        conditions: dict[str, TrafficCondition] = {}
        for i, origin in enumerate(locations):
            for destination in locations[i + 1 :]:
                condition = self._simulate(i, origin, destination)
                conditions[self.segment_key(origin, destination)] = condition
                conditions[self.segment_key(destination, origin)] = condition

        self._conditions = conditions
        self._last_update = self._clock()
        logger.debug(f"Traffic table refreshed with {len(conditions)} segments")
        return True

    def _simulate(self, segment_index: int, origin: LatLon, destination: LatLon) -> TrafficCondition:
        # Longer segments cross more arterials, so they carry more delay.
        distance = haversine_km(origin[0], origin[1], destination[0], destination[1])
        if distance > 10:
            delay = 1.2 + self._rng.random() * 0.3
            level = CongestionLevel.MODERATE
        elif distance > 5:
            delay = 1.1 + self._rng.random() * 0.4
            level = CongestionLevel.HEAVY if self._rng.random() > 0.7 else CongestionLevel.MODERATE
        else:
            delay = 1.0 + self._rng.random() * 0.2
            level = CongestionLevel.LIGHT
        return TrafficCondition(segment_index=segment_index, delay_factor=delay, congestion_level=level)
