"""
Tests for the runtime modules: traversal state, strategy cache, strategy compiler.

Validates:
  - Identity map registration, keep-alive and stash side table
  - Cache hits, single compilation under concurrent misses
  - Cache invalidation on registry changes
  - Generated and interpreted walkers, guarded frozen dataclass builders
  - Frozen dataclass state beyond the declared fields
  - Runtime package exports
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from clonepy import runtime
from clonepy.analysis.type_classifier import Category
from clonepy.analysis.type_registry import TypeRegistry, default_registry
from clonepy.runtime.engine import CloneEngine
from clonepy.runtime.strategy_cache import StrategyCache
from clonepy.runtime.traversal_state import MISSING, TraversalState


class Node:
    def __init__(self, value=None, next=None):
        self.value = value
        self.next = next


class Pair:
    __slots__ = ('left', 'right')

    def __init__(self, left=None, right=None):
        self.left = left
        self.right = right


@dataclass(frozen=True)
class Point:
    x: int
    y: int


@dataclass(frozen=True)
class Labeled:
    label: str
    items: list


@dataclass(frozen=True)
class Tallied:
    items: list

    def __post_init__(self):
        object.__setattr__(self, 'count', len(self.items))


# ---------- Traversal State Tests ----------

class TestTraversalState:
    def setup_method(self):
        self.state = TraversalState()

    def test_register_and_lookup(self):
        original, copy = Node(), Node()
        self.state.register(original, copy)
        assert self.state.lookup(original) is copy
        assert original in self.state
        assert len(self.state) == 1

    def test_lookup_missing(self):
        assert self.state.lookup(Node()) is MISSING
        assert self.state.lookup(Node(), None) is None

    def test_memo_layout(self):
        original = Node()
        self.state.register(original, 'copy')
        memo = self.state.memo
        assert memo[id(original)] == 'copy'
        assert original in memo[id(memo)]

    def test_stash(self):
        target = Node()
        self.state.stash(target, ('payload',))
        assert self.state.unstash(target) == ('payload',)
        assert self.state.unstash(target, 'gone') == 'gone'


# ---------- Strategy Cache Tests ----------

class TestStrategyCache:
    def setup_method(self):
        self.registry = TypeRegistry()
        self.cache = StrategyCache(self.registry)
        self.compiled = []

    def compile(self, cls):
        self.compiled.append(cls)
        return object()

    def test_compiles_once(self):
        first = self.cache.get_or_compile(Node, self.compile)
        second = self.cache.get_or_compile(Node, self.compile)
        assert first is second
        assert self.compiled == [Node]
        assert self.cache.stats.hits == 1
        assert self.cache.stats.misses == 1
        assert Node in self.cache

    def test_get_without_compiling(self):
        assert self.cache.get(Node) is None
        strategy = self.cache.get_or_compile(Node, self.compile)
        assert self.cache.get(Node) is strategy

    def test_registry_change_invalidates(self):
        first = self.cache.get_or_compile(Node, self.compile)
        self.registry.share(Pair)
        second = self.cache.get_or_compile(Node, self.compile)
        assert first is not second
        assert self.cache.stats.invalidations == 1

    def test_explicit_invalidate(self):
        self.cache.get_or_compile(Node, self.compile)
        self.cache.invalidate()
        assert len(self.cache) == 0

    def test_concurrent_misses_compile_once(self):
        calls = []
        lock = threading.Lock()

        def slow_compile(cls):
            with lock:
                calls.append(cls)
            time.sleep(0.05)
            return object()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(
                lambda _: self.cache.get_or_compile(Node, slow_compile), range(16)))

        assert len(calls) == 1
        assert all(r is results[0] for r in results)

    def test_stats(self):
        self.cache.get_or_compile(Node, self.compile)
        self.cache.get_or_compile(Node, self.compile)
        stats = self.cache.get_stats()
        assert stats['strategies'] == 1
        assert stats['compilations'] == 1
        assert stats['hit_rate'] == '50.0%'


# ---------- Strategy Compiler Tests ----------

class TestStrategyCompiler:
    def setup_method(self):
        self.engine = CloneEngine(registry=default_registry().copy())

    def test_generated_walker(self):
        strategy = self.engine.strategy_for(Node)
        assert strategy.kind == 'generated'
        assert strategy.fill.__code__.co_filename.startswith('<clonepy-deep:')
        assert strategy.fill_shallow.__code__.co_filename.startswith('<clonepy-shallow:')

    def test_interpreted_walker(self):
        engine = CloneEngine(registry=default_registry().copy(), codegen=False)
        strategy = engine.strategy_for(Pair)
        assert strategy.kind == 'interpreted'

        original = Pair([1], 'x')
        copy = engine.clone(original)
        assert copy.left == [1] and copy.left is not original.left
        assert copy.right == 'x'

    def test_strategy_is_cached(self):
        assert self.engine.strategy_for(Node) is self.engine.strategy_for(Node)
        assert self.engine.classify(Node) == Category.REFERENCE_AGGREGATE
        assert self.engine.classify(Node) == self.engine.classify(Node)

    def test_frozen_builder_guard(self):
        strategy = self.engine.strategy_for(Point)
        assert strategy.kind == 'frozen'
        assert strategy.split.__code__.co_filename.startswith('<clonepy-frozen:')
        point = Point(1, 2)
        assert strategy.split(point) is None
        assert self.engine.clone(point) is point

    def test_frozen_builder_guard_failure(self):
        # Declared int, holding a list
        odd = Point([1], 2)
        copy = self.engine.clone(odd)
        assert copy is not odd
        assert copy.x == [1] and copy.x is not odd.x

    def test_frozen_builder_copies_mutable_fields(self):
        original = Labeled('a', [1, 2])
        copy = self.engine.clone(original)
        assert copy == original
        assert copy is not original
        assert copy.items is not original.items

    def test_frozen_builder_shares_unchanged(self):
        original = Labeled('a', ())
        assert self.engine.clone(original) is original

    def test_frozen_builder_keeps_extra_state(self):
        original = Tallied([1, 2])
        for engine in (self.engine, CloneEngine(registry=default_registry().copy(), codegen=False)):
            copy = engine.clone(original)
            assert copy is not original
            assert copy.count == 2
            assert copy.items == [1, 2] and copy.items is not original.items

    def test_interpreted_frozen_builder(self):
        engine = CloneEngine(registry=default_registry().copy(), codegen=False)
        strategy = engine.strategy_for(Labeled)
        assert strategy.kind == 'frozen'
        assert not strategy.split.__code__.co_filename.startswith('<clonepy-')
        point = Point(1, 2)
        assert engine.clone(point) is point
        original = Labeled('a', [1])
        copy = engine.clone(original)
        assert copy == original and copy.items is not original.items
        unchanged = Labeled('a', ())
        assert engine.clone(unchanged) is unchanged

    def test_compiler_stats(self):
        self.engine.strategy_for(Node)
        self.engine.strategy_for(Pair)
        stats = self.engine.compiler.get_stats()
        assert stats['compiled'] >= 2
        assert stats['generated'] >= 2
        assert stats['codegen_failures'] == 0


# ---------- Package Exports ----------

class TestRuntimePackage:
    def test_exports(self):
        assert runtime.TraversalState is TraversalState
        assert runtime.StrategyCache is StrategyCache
        assert runtime.CloneEngine is CloneEngine
        assert runtime.default_engine() is runtime.default_engine()
