"""
Collection write strategies.

One strategy per collection materialization mode (replace, append, upsert,
merge), each producing the pipeline's output stage.
"""

from manifold.strategies.append import AppendStrategy
from manifold.strategies.base import Strategy
from manifold.strategies.merge import MergeStrategy
from manifold.strategies.replace import ReplaceStrategy
from manifold.strategies.upsert import UpsertStrategy

__all__ = [
    "Strategy",
    "ReplaceStrategy",
    "AppendStrategy",
    "UpsertStrategy",
    "MergeStrategy",
    "get_strategy",
]

# Strategy registry
STRATEGIES = {
    "replace": ReplaceStrategy,
    "append": AppendStrategy,
    "upsert": UpsertStrategy,
    "merge": MergeStrategy,
}


def get_strategy(strategy_name: str) -> Strategy:
    """Get strategy by mode name."""
    if strategy_name not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy_name}")
    return STRATEGIES[strategy_name]()
