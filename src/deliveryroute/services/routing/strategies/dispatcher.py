"""Factory for route sequencing strategies."""

from __future__ import annotations

from typing import Any

from .base import RoutingStrategy, StrategyContext
from .hybrid import HybridStrategy
from .nearest_neighbor import NearestNeighborStrategy
from .sequential import SequentialStrategy
from .time_window import TimeWindowStrategy

DEFAULT_STRATEGIES: tuple[str, ...] = ("nearest_neighbor_from_driver", "time_window", "hybrid")


def get_strategy(name: str, **kwargs: Any) -> RoutingStrategy:
    match name:
        case "nearest_neighbor_from_driver":
            return NearestNeighborStrategy()
        case "time_window":
            return TimeWindowStrategy()
        case "hybrid":
            return HybridStrategy(cluster_size_limit=kwargs.get("cluster_size_limit"))
        case "simple_sequential":
            return SequentialStrategy(minutes_per_stop=kwargs.get("minutes_per_stop"))
        case _:
            raise ValueError(f"Unknown routing strategy '{name}'.")


def select_strategies(
    context: StrategyContext,
    names: tuple[str, ...] = DEFAULT_STRATEGIES,
    **kwargs: Any,
) -> list[RoutingStrategy]:
    """Instantiate the named strategies that apply to ``context``."""
    strategies = [get_strategy(name, **kwargs) for name in names]
    return [strategy for strategy in strategies if strategy.applies_to(context)]
