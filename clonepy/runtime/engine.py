"""
Clone Engine
============

Iterative deep copy of arbitrary object graphs.

Every reference-typed object is allocated and registered in the
``TraversalState`` before its own contents are looked at. Its contents
are then filled from an explicit work list instead of by recursion, so
shared children are copied once, cycles close onto the copies, and
arbitrarily long chains never grow the Python stack.

Usage:
    >>> from clonepy import clone
    >>> a = Node(); a.next = a
    >>> b = clone(a)
    >>> b is not a and b.next is b
    True

    >>> engine = CloneEngine(enable_logging=True)
    >>> engine.copy_into(src, dst, deep=False)
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional

from clonepy.analysis.type_classifier import Category, TypeClassifier
from clonepy.analysis.type_registry import TypeRegistry, default_registry
from clonepy.compiler.copy_strategy import CopyStrategy, WorkItem
from clonepy.compiler.strategy_compiler import StrategyCompiler
from clonepy.runtime.strategy_cache import StrategyCache
from clonepy.runtime.traversal_state import MISSING, TraversalState

logger = logging.getLogger(__name__)

_SAFE = Category.SAFE_SHARE
_IGNORED = Category.ALWAYS_IGNORED
_VALUE = Category.VALUE_AGGREGATE
_FUNCTION = Category.FUNCTION_REFERENCE


class CloneArgumentError(ValueError):
    """Invalid arguments to ``copy_into``."""


class CloneEngine:
    """
    Deep-copy engine with a per-type strategy cache.

    Engines are safe to share between threads: each call owns its
    traversal state and work list, and the strategy cache is the only
    shared mutable structure.
    """

    def __init__(
        self,
        registry: Optional[TypeRegistry] = None,
        cache: Optional[StrategyCache] = None,
        enable_logging: bool = False,
        codegen: Optional[bool] = None,
    ):
        if enable_logging:
            logging.basicConfig(level=logging.DEBUG)
        self.registry = registry if registry is not None else default_registry()
        self.classifier = TypeClassifier(self.registry)
        self.compiler = StrategyCompiler(self.classifier, self, codegen=codegen)
        self.cache = cache if cache is not None else StrategyCache(self.registry)
        self.stats = {
            'clones': 0,
            'copy_into': 0,
            'shallow_clones': 0,
            'objects_copied': 0,
        }
        logger.debug(f"CloneEngine ready ({self.registry!r}, codegen={self.compiler.codegen})")

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, cls: type) -> Category:
        return self.strategy_for(cls).category

    def strategy_for(self, cls: type) -> CopyStrategy:
        return self.cache.get_or_compile(cls, self.compiler.compile)

    # ------------------------------------------------------------------
    # Linking (called by strategies)
    # ------------------------------------------------------------------

    def _link(self, value: Any, strategy: CopyStrategy, state: TraversalState, stack: List[WorkItem]) -> Any:
        category = strategy.category
        if category is _SAFE:
            return value
        if category is _IGNORED:
            return None

        known = state.lookup(value)
        if known is not MISSING:
            return known

        if category is _VALUE:
            if strategy.assemble is not None:
                return self._build_value(value, strategy, state, stack)
            result = strategy.build_value(value, state, stack)
            if result is not value:
                state.register(value, result)
            return result

        if strategy.allocate is None:
            return value
        target = strategy.allocate(value, state)
        state.register(value, target)
        if target is not value and strategy.fill is not None:
            stack.append(WorkItem(value, target, strategy.fill))
        return target

    def _build_value(self, root: Any, strategy: CopyStrategy, state: TraversalState,
                     stack: List[WorkItem], register_root: bool = True) -> Any:
        """
        Rebuild nested value aggregates bottom-up on an explicit stack.

        Each frame holds a value whose children are being copied. A child
        that is itself a rebuildable value opens a new frame instead of a
        recursive call; any other child is linked, which at most pushes
        work. When a frame runs out of children its value is assembled
        and handed to the parent frame.
        """
        children = strategy.split(root)
        if children is None:
            return root
        frames = [(root, strategy, iter(children), [])]
        result = root
        while frames:
            source, current, items, copies = frames[-1]
            keep_functions = current.kind == 'frozen'
            opened = False
            for item in items:
                child = self.strategy_for(type(item))
                category = child.category
                if category is _VALUE and child.assemble is not None:
                    known = state.lookup(item)
                    if known is not MISSING:
                        copies.append(known)
                        continue
                    grandchildren = child.split(item)
                    if grandchildren is None:
                        copies.append(item)
                        continue
                    frames.append((item, child, iter(grandchildren), []))
                    opened = True
                    break
                if category is _FUNCTION and keep_functions:
                    copies.append(item)
                else:
                    copies.append(self._link(item, child, state, stack))
            if opened:
                continue

            frames.pop()
            result = current.assemble(source, copies)
            if result is not source:
                if frames or register_root:
                    state.register(source, result)
                if current.fill is not None:
                    stack.append(WorkItem(source, result, current.fill))
            if frames:
                frames[-1][3].append(result)
        return result

    def link(self, value: Any, state: TraversalState, stack: List[WorkItem]) -> Any:
        """Copy for an element slot: registered, allocated or pushed."""
        return self._link(value, self.strategy_for(type(value)), state, stack)

    def link_field(self, value: Any, state: TraversalState, stack: List[WorkItem]) -> Any:
        """Copy for an object field. Function references are kept as-is."""
        strategy = self.strategy_for(type(value))
        if strategy.category is _FUNCTION:
            return value
        return self._link(value, strategy, state, stack)

    def materialize(self, value: Any, state: TraversalState) -> Any:
        """
        Fully copy ``value`` before returning it.

        Used wherever a copy is consumed immediately: frozenset elements
        (hashed on construction) and reduce constructor arguments.
        """
        local: List[WorkItem] = []
        result = self.link(value, state, local)
        self._drain(local, state)
        return result

    def shallow_value(self, value: Any) -> Any:
        if self.strategy_for(type(value)).category is _IGNORED:
            return None
        return value

    @staticmethod
    def _drain(stack: List[WorkItem], state: TraversalState):
        pop = stack.pop
        while stack:
            source, target, fill = pop()
            fill(source, target, state, stack)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def clone(self, root: Any) -> Any:
        """Deep copy of ``root`` and everything reachable from it."""
        if root is None:
            return None
        self.stats['clones'] += 1
        state = TraversalState()
        stack: List[WorkItem] = []
        # Root closures are copied; link_field would keep them as-is
        result = self.link(root, state, stack)
        self._drain(stack, state)
        self.stats['objects_copied'] += len(state)
        return result

    def clone_value(self, value: Any) -> Any:
        """
        Deep copy of a value aggregate. The root itself never enters the
        identity map; its reference children share one traversal.
        """
        if value is None:
            return None
        strategy = self.strategy_for(type(value))
        if strategy.category is not _VALUE:
            return self.clone(value)
        self.stats['clones'] += 1
        state = TraversalState()
        stack: List[WorkItem] = []
        if strategy.assemble is not None:
            result = self._build_value(value, strategy, state, stack, register_root=False)
        else:
            result = strategy.build_value(value, state, stack)
        self._drain(stack, state)
        self.stats['objects_copied'] += len(state)
        return result

    def copy_into(self, source: Any, destination: Any, deep: bool = True) -> Any:
        """
        Overwrite the contents of an existing ``destination`` with those
        of ``source`` and return ``destination``.

        In deep mode ``source`` maps to ``destination`` in the identity
        map, so references back to the source root land on the
        destination. ``copy_into(x, x)`` leaves ``x``'s contents in place
        (deep mode replaces its children with copies).
        """
        if destination is None:
            return None
        if source is None:
            raise CloneArgumentError("copy_into() source must not be None")
        if isinstance(source, str):
            raise CloneArgumentError("copy_into() cannot copy into a string")
        if not isinstance(destination, type(source)):
            raise CloneArgumentError(
                f"copy_into() destination of type {type(destination).__name__} "
                f"is not compatible with source type {type(source).__name__}"
            )
        strategy = self.strategy_for(type(source))
        if not strategy.supports_copy_into:
            raise CloneArgumentError(
                f"copy_into() does not support {type(source).__name__} "
                f"({strategy.category.name}, {strategy.kind})"
            )
        if strategy.check_target is not None and not strategy.check_target(source, destination):
            raise CloneArgumentError(
                f"copy_into() destination {destination!r} does not match the "
                f"shape of source {source!r}"
            )

        self.stats['copy_into'] += 1
        if not deep:
            strategy.fill_shallow(source, destination)
            return destination

        state = TraversalState()
        stack: List[WorkItem] = []
        state.register(source, destination)
        strategy.fill(source, destination, state, stack)
        self._drain(stack, state)
        self.stats['objects_copied'] += len(state)
        return destination

    def shallow_clone(self, root: Any) -> Any:
        """
        New top-level object holding the same references as ``root``.
        Event fields are cleared and ignored values become None.
        """
        if root is None:
            return None
        strategy = self.strategy_for(type(root))
        category = strategy.category
        if category is _IGNORED:
            return None
        if category in (_SAFE, _VALUE, _FUNCTION):
            return root
        self.stats['shallow_clones'] += 1
        if strategy.fill_shallow is None:
            return copy.copy(root)
        target = strategy.allocate(root, None)
        strategy.fill_shallow(root, target)
        return target

    def get_stats(self) -> Dict[str, Any]:
        result = dict(self.stats)
        result['cache'] = self.cache.get_stats()
        result['compiler'] = self.compiler.get_stats()
        return result


_default_engine: Optional[CloneEngine] = None
_default_lock = threading.Lock()


def default_engine() -> CloneEngine:
    """Process-wide engine over the default registry."""
    global _default_engine
    if _default_engine is None:
        with _default_lock:
            if _default_engine is None:
                _default_engine = CloneEngine()
    return _default_engine


def clone(root: Any) -> Any:
    return default_engine().clone(root)


def clone_value(value: Any) -> Any:
    return default_engine().clone_value(value)


def copy_into(source: Any, destination: Any, deep: bool = True) -> Any:
    return default_engine().copy_into(source, destination, deep)


def shallow_clone(root: Any) -> Any:
    return default_engine().shallow_clone(root)
