"""
ClonePy: Strategy-Compiled Deep Copy for Python Object Graphs
=============================================================

ClonePy copies arbitrary object graphs while preserving their shape:
shared references stay shared, cycles close onto the copies, and long
chains are walked iteratively instead of recursively.

Core Components:
    - analysis: type registry and type classification
    - compiler: per-type copy strategies, generated on first use
    - runtime: traversal state, strategy cache and the clone engine
    - structures: offset-indexed arrays and observable events

Usage:
    >>> import clonepy
    >>> graph = {'a': [1, 2], 'b': None}
    >>> graph['b'] = graph['a']
    >>> copy = clonepy.clone(graph)
    >>> copy['a'] is copy['b'] and copy['a'] is not graph['a']
    True

    >>> @clonepy.register_safe
    ... class Config:
    ...     ...
"""

__version__ = "1.0.0"
__author__ = "ClonePy Team"

from clonepy.analysis.type_registry import (
    TypeRegistry,
    default_registry,
    register_ignored,
    register_safe,
)
from clonepy.analysis.type_classifier import Category, TypeClassifier
from clonepy.compiler.copy_strategy import CopyStrategy
from clonepy.compiler.strategy_compiler import StrategyCompiler
from clonepy.runtime.traversal_state import TraversalState
from clonepy.runtime.strategy_cache import StrategyCache
from clonepy.runtime.engine import (
    CloneArgumentError,
    CloneEngine,
    clone,
    clone_value,
    copy_into,
    default_engine,
    shallow_clone,
)
from clonepy.structures.events import Event, EventHandlers
from clonepy.structures.offset_array import OffsetArray

__all__ = [
    'TypeRegistry',
    'default_registry',
    'register_ignored',
    'register_safe',
    'Category',
    'TypeClassifier',
    'CopyStrategy',
    'StrategyCompiler',
    'TraversalState',
    'StrategyCache',
    'CloneArgumentError',
    'CloneEngine',
    'clone',
    'clone_value',
    'copy_into',
    'default_engine',
    'shallow_clone',
    'Event',
    'EventHandlers',
    'OffsetArray',
]
