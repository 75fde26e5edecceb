"""
Builtin Strategies
==================

Hand-written strategies for the storage kinds whose layout the field
walker cannot see: sequences, numpy-backed arrays, dicts and sets,
tuples and frozensets, and function references.

Each factory takes the ``TypeDescriptor`` of the concrete type, the
linker (the engine, providing ``link``/``link_field``/``materialize``/
``shallow_value``) and, for subclasses carrying instance attributes,
the attribute walker pair built by the ``StrategyCompiler``. The walker
runs after the element fill.

Dicts and sets link their keys on the work list and insert them in a
follow-up item queued underneath, so every key is complete before it is
hashed. Fills read the whole source before touching the target, which
keeps ``copy_into(x, x)`` intact.
"""

import array
import collections
import functools
import types
from typing import Callable, Optional, Tuple

import numpy as np

from clonepy.analysis.type_classifier import TypeDescriptor
from clonepy.compiler.copy_strategy import CopyStrategy, WorkItem
from clonepy.structures.offset_array import OffsetArray

Walker = Tuple[Optional[Callable], Optional[Callable]]

_NO_WALKER: Walker = (None, None)

# Most derived first; the first base in a type's MRO decides its init.
_DICT_BASES = (collections.defaultdict, collections.OrderedDict, collections.Counter, dict)


def _compose(primary: Callable, extra: Optional[Callable]) -> Callable:
    if extra is None:
        return primary

    def composed(*args):
        primary(*args)
        extra(*args)

    return composed


def _new(cls: type) -> Callable:
    new = cls.__new__

    def allocate(source, state):
        return new(cls)

    return allocate


def _strategy(descriptor, kind, allocate, fill, fill_shallow, walker, check_target=None):
    walk, walk_shallow = walker
    return CopyStrategy(
        descriptor=descriptor,
        kind=kind,
        allocate=allocate,
        fill=_compose(fill, walk),
        fill_shallow=_compose(fill_shallow, walk_shallow),
        check_target=check_target,
    )


# ---------------------------------------------------------------------------
# Arrays
# ---------------------------------------------------------------------------

def list_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    link = linker.link
    shallow = linker.shallow_value

    def fill(source, target, state, stack):
        target[:] = [link(item, state, stack) for item in source]

    def fill_shallow(source, target):
        target[:] = [shallow(item) for item in source]

    return _strategy(descriptor, 'list', _new(descriptor.cls), fill, fill_shallow, walker)


def deque_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    cls = descriptor.cls
    link = linker.link
    shallow = linker.shallow_value
    init = collections.deque.__init__

    def allocate(source, state):
        target = cls.__new__(cls)
        init(target, (), source.maxlen)
        return target

    def fill(source, target, state, stack):
        items = [link(item, state, stack) for item in source]
        target.clear()
        target.extend(items)

    def fill_shallow(source, target):
        items = [shallow(item) for item in source]
        target.clear()
        target.extend(items)

    def check_target(source, target):
        return source.maxlen == target.maxlen

    return _strategy(descriptor, 'deque', allocate, fill, fill_shallow, walker, check_target)


def bytearray_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    def fill(source, target, state, stack):
        target[:] = source

    def fill_shallow(source, target):
        target[:] = source

    return _strategy(descriptor, 'bytearray', _new(descriptor.cls), fill, fill_shallow, walker)


def typed_array_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    """``array.array``: the typecode is fixed at construction."""
    cls = descriptor.cls
    new = array.array.__new__

    def allocate(source, state):
        return new(cls, source.typecode)

    def fill(source, target, state, stack):
        target[:] = source

    def fill_shallow(source, target):
        target[:] = source

    def check_target(source, target):
        return source.typecode == target.typecode

    return _strategy(descriptor, 'array', allocate, fill, fill_shallow, walker, check_target)


def ndarray_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    """
    ``numpy.ndarray`` of any rank. Numeric storage is copied in bulk,
    object storage element by element in row-major order.
    """
    link = linker.link

    def allocate(source, state):
        return np.empty_like(source, subok=True)

    def fill(source, target, state, stack):
        if not source.dtype.hasobject:
            np.copyto(target, source)
            return
        for index in np.ndindex(source.shape):
            target[index] = link(source[index], state, stack)

    def fill_shallow(source, target):
        np.copyto(target, source)

    def check_target(source, target):
        return source.shape == target.shape and source.dtype == target.dtype

    return _strategy(descriptor, 'ndarray', allocate, fill, fill_shallow, walker, check_target)


def offset_array_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    """``OffsetArray``: bounds are preserved and indices stay absolute."""
    cls = descriptor.cls
    link = linker.link

    def allocate(source, state):
        return cls.empty_like(source)

    def fill(source, target, state, stack):
        if not source.dtype.hasobject:
            np.copyto(target.data, source.data)
            return
        for index in source.indices():
            target[index] = link(source[index], state, stack)

    def fill_shallow(source, target):
        np.copyto(target.data, source.data)

    def check_target(source, target):
        return (source.shape == target.shape
                and source.lower_bounds == target.lower_bounds
                and source.dtype == target.dtype)

    return _strategy(descriptor, 'offset_array', allocate, fill, fill_shallow, walker, check_target)


def array_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    """Pick the storage strategy from the descriptor's element kind."""
    cls = descriptor.cls
    kind = descriptor.element_kind
    if kind == 'dtype':
        factory = offset_array_strategy if issubclass(cls, OffsetArray) else ndarray_strategy
    elif kind == 'bulk':
        factory = bytearray_strategy if issubclass(cls, bytearray) else typed_array_strategy
    elif kind == 'object':
        factory = list_strategy if issubclass(cls, list) else deque_strategy
    else:
        raise TypeError(f"No array strategy for {descriptor.name} (element kind {kind!r})")
    return factory(descriptor, linker, walker)


# ---------------------------------------------------------------------------
# Associative containers
# ---------------------------------------------------------------------------

def dict_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    cls = descriptor.cls
    link = linker.link
    shallow = linker.shallow_value
    base = next(klass for klass in cls.__mro__ if klass in _DICT_BASES)
    is_default = base is collections.defaultdict

    def allocate(source, state):
        target = cls.__new__(cls)
        if is_default:
            base.__init__(target, source.default_factory)
        else:
            base.__init__(target)
        return target

    def insert(pairs, target, state, stack):
        target.clear()
        for key, value in pairs:
            target[key] = value

    def fill(source, target, state, stack):
        mark = len(stack)
        pairs = [(link(key, state, stack), link(value, state, stack)) for key, value in source.items()]
        if is_default:
            target.default_factory = source.default_factory
        # Runs once everything linked above has been filled
        stack.insert(mark, WorkItem(pairs, target, insert))

    def fill_shallow(source, target):
        pairs = [(key, shallow(value)) for key, value in source.items()]
        if is_default:
            target.default_factory = source.default_factory
        target.clear()
        for key, value in pairs:
            target[key] = value

    return _strategy(descriptor, 'dict', allocate, fill, fill_shallow, walker)


def set_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    cls = descriptor.cls
    link = linker.link
    shallow = linker.shallow_value

    def allocate(source, state):
        target = cls.__new__(cls)
        set.__init__(target)
        return target

    def insert(items, target, state, stack):
        target.clear()
        target.update(items)

    def fill(source, target, state, stack):
        mark = len(stack)
        items = [link(item, state, stack) for item in source]
        stack.insert(mark, WorkItem(items, target, insert))

    def fill_shallow(source, target):
        items = [shallow(item) for item in source]
        target.clear()
        target.update(items)

    return _strategy(descriptor, 'set', allocate, fill, fill_shallow, walker)


def container_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    if issubclass(descriptor.cls, dict):
        return dict_strategy(descriptor, linker, walker)
    return set_strategy(descriptor, linker, walker)


# ---------------------------------------------------------------------------
# Immutable sequences
# ---------------------------------------------------------------------------

def tuple_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    """
    Tuples are rebuilt only when one of their items changed identity,
    so a tuple of safe values comes back as the very same object. The
    engine copies the items and nested tuples bottom-up; instance
    attributes of tuple subclasses are filled afterwards.
    """
    cls = descriptor.cls
    walk = walker[0]
    exact = cls is tuple

    def split(source):
        return source

    def assemble(source, copies):
        if walk is None and all(new is old for new, old in zip(copies, source)):
            return source
        return tuple(copies) if exact else tuple.__new__(cls, copies)

    return CopyStrategy(descriptor=descriptor, kind='tuple', fill=walk, split=split, assemble=assemble)


def frozenset_strategy(descriptor: TypeDescriptor, linker, walker: Walker = _NO_WALKER) -> CopyStrategy:
    """Elements are hashed on construction, so each is fully copied first."""
    cls = descriptor.cls
    materialize = linker.materialize
    walk = walker[0]
    exact = cls is frozenset

    def build_value(source, state, stack):
        items = [(item, materialize(item, state)) for item in source]
        if walk is None and all(new is old for old, new in items):
            return source
        copied = [new for _, new in items]
        result = frozenset(copied) if exact else frozenset.__new__(cls, copied)
        if walk is not None:
            walk(source, result, state, stack)
        return result

    return CopyStrategy(descriptor=descriptor, kind='frozenset', build_value=build_value)


# ---------------------------------------------------------------------------
# Function references
# ---------------------------------------------------------------------------

def closure_strategy(descriptor: TypeDescriptor, linker) -> CopyStrategy:
    """
    Plain functions. One without captured variables is shared; a closure
    gets a new function object over new cells, and cells shared between
    closures stay shared between their copies.
    """
    link = linker.link
    link_field = linker.link_field

    def allocate(source, state):
        closure = source.__closure__
        if not closure:
            return source
        cells = []
        for cell in closure:
            copy = state.lookup(cell, None)
            if copy is None:
                copy = types.CellType()
                state.register(cell, copy)
            cells.append(copy)
        func = types.FunctionType(
            source.__code__,
            source.__globals__,
            source.__name__,
            source.__defaults__,
            tuple(cells),
        )
        func.__qualname__ = source.__qualname__
        func.__module__ = source.__module__
        func.__doc__ = source.__doc__
        if source.__kwdefaults__ is not None:
            func.__kwdefaults__ = dict(source.__kwdefaults__)
        return func

    def fill(source, target, state, stack):
        for old, new in zip(source.__closure__, target.__closure__):
            try:
                contents = old.cell_contents
            except ValueError:
                # Unbound free variable
                continue
            new.cell_contents = link(contents, state, stack)
        attributes = target.__dict__
        for name, value in source.__dict__.items():
            attributes[name] = link_field(value, state, stack)

    return CopyStrategy(descriptor=descriptor, kind='closure', allocate=allocate, fill=fill)


def partial_strategy(descriptor: TypeDescriptor, linker) -> CopyStrategy:
    """``functools.partial``: bound arguments are part of its state."""
    cls = descriptor.cls
    link = linker.link
    link_field = linker.link_field
    new = functools.partial.__new__

    def allocate(source, state):
        return new(cls, source.func)

    def fill(source, target, state, stack):
        namespace = source.__dict__
        target.__setstate__((
            link_field(source.func, state, stack),
            tuple(link(arg, state, stack) for arg in source.args),
            {key: link(value, state, stack) for key, value in source.keywords.items()},
            {key: link_field(value, state, stack) for key, value in namespace.items()} if namespace else None,
        ))

    return CopyStrategy(descriptor=descriptor, kind='partial', allocate=allocate, fill=fill)


def function_strategy(descriptor: TypeDescriptor, linker) -> CopyStrategy:
    cls = descriptor.cls
    if issubclass(cls, functools.partial):
        return partial_strategy(descriptor, linker)
    if issubclass(cls, types.FunctionType):
        return closure_strategy(descriptor, linker)
    # Bound methods: the receiver is not part of the copied graph
    return CopyStrategy(descriptor=descriptor, kind='method')
