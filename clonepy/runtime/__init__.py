"""Traversal state, strategy cache and the clone engine."""

from clonepy.runtime.traversal_state import MISSING, TraversalState
from clonepy.runtime.strategy_cache import CacheStats, StrategyCache
from clonepy.runtime.engine import (
    CloneArgumentError,
    CloneEngine,
    default_engine,
)
