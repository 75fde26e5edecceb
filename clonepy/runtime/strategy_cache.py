"""
Strategy Cache
==============

Process-wide ``type -> CopyStrategy`` table, populated lazily on first
use of each concrete type and never evicted.

Concurrency
-----------
Hits are a plain dict read without locking. A miss takes a lock that
belongs to that one type (created under a short global lock), re-checks
the table and only then compiles, so concurrent first uses of the same
type compile it once while other types proceed unhindered.

The cache remembers the version of the registry its strategies were
compiled against. When the registry changes, every strategy is dropped
on the next lookup.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from clonepy.analysis.type_registry import TypeRegistry

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics for a strategy cache."""
    hits: int = 0
    misses: int = 0
    compilations: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class StrategyCache:
    """
    Thread-safe, lazily populated strategy table.

    Usage:
        >>> cache = StrategyCache(registry)
        >>> strategy = cache.get_or_compile(Node, compiler.compile)
        >>> cache.get_or_compile(Node, compiler.compile) is strategy
        True
    """

    def __init__(self, registry: TypeRegistry):
        self.registry = registry
        self._strategies: Dict[type, Any] = {}
        self._type_locks: Dict[type, threading.Lock] = {}
        self._lock = threading.Lock()
        self._version = registry.version
        self.stats = CacheStats()

    def get(self, cls: type) -> Optional[Any]:
        """Return the cached strategy for ``cls`` without compiling."""
        if self.registry.version != self._version:
            self._refresh()
        return self._strategies.get(cls)

    def get_or_compile(self, cls: type, compile_fn: Callable[[type], Any]) -> Any:
        if self.registry.version != self._version:
            self._refresh()

        strategy = self._strategies.get(cls)
        if strategy is not None:
            self.stats.hits += 1
            return strategy

        with self._lock:
            type_lock = self._type_locks.get(cls)
            if type_lock is None:
                type_lock = self._type_locks[cls] = threading.Lock()

        with type_lock:
            strategy = self._strategies.get(cls)
            if strategy is not None:
                self.stats.hits += 1
                return strategy

            self.stats.misses += 1
            version = self.registry.version
            strategy = compile_fn(cls)
            self.stats.compilations += 1
            # A registry change during compilation leaves this result unstored
            if version == self.registry.version == self._version:
                self._strategies[cls] = strategy
        return strategy

    def _refresh(self):
        with self._lock:
            if self._version != self.registry.version:
                self._clear_locked()

    def invalidate(self):
        """Drop every strategy and adopt the registry's current version."""
        with self._lock:
            self._clear_locked()

    def _clear_locked(self):
        dropped = len(self._strategies)
        self._strategies.clear()
        self._type_locks.clear()
        self._version = self.registry.version
        self.stats.invalidations += 1
        logger.debug(f"Strategy cache invalidated ({dropped} strategies dropped)")

    def __contains__(self, cls: type) -> bool:
        return cls in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'strategies': len(self._strategies),
            'hits': self.stats.hits,
            'misses': self.stats.misses,
            'hit_rate': f"{self.stats.hit_rate:.1%}",
            'compilations': self.stats.compilations,
            'invalidations': self.stats.invalidations,
        }
