"""Route sequencing strategies."""

from .base import RoutingStrategy, StrategyContext, StrategyError
from .dispatcher import DEFAULT_STRATEGIES, get_strategy, select_strategies
from .hybrid import HybridStrategy
from .nearest_neighbor import NearestNeighborStrategy
from .sequential import SequentialStrategy
from .time_window import TimeWindowStrategy

__all__ = [
    "RoutingStrategy",
    "StrategyContext",
    "StrategyError",
    "DEFAULT_STRATEGIES",
    "get_strategy",
    "select_strategies",
    "NearestNeighborStrategy",
    "TimeWindowStrategy",
    "HybridStrategy",
    "SequentialStrategy",
]
