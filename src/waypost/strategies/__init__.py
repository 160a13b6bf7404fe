"""Strategy catalog, ranking and execution."""

from waypost.strategies.executor import StrategyExecutor
from waypost.strategies.ranking import (
    StrategyRanking,
    candidate_strategies,
    config_flavour,
    next_rank,
    rank_strategies,
)
from waypost.strategies.registry import DEFAULT_STRATEGIES, StrategyRegistry

__all__ = [
    "DEFAULT_STRATEGIES",
    "StrategyExecutor",
    "StrategyRanking",
    "StrategyRegistry",
    "candidate_strategies",
    "config_flavour",
    "next_rank",
    "rank_strategies",
]
