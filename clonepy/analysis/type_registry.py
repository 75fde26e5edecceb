"""
Type Registry
=============

The classification policy tables consulted by the clone engine.

Two tables are kept:

  - *ignored* types: values that cannot be meaningfully copied
    (synchronization primitives, OS handles, frames, native pointers).
    Cloning one yields ``None``.
  - *safe* types: immutable values or values that are safe to alias
    (numbers, strings, classes, enum members, loggers). Cloning one
    returns the very same object.

Each table holds exact types plus a tuple of base classes whose
subclasses are matched as well. The registry carries a ``version``
counter bumped on every mutation so that strategy caches built on top
of it know when their compiled strategies are stale.

Usage:
    >>> registry = TypeRegistry()
    >>> registry.share(int, str)
    >>> registry.is_safe(int)
    True
    >>> registry.ignore(socket.socket, subclasses=True)
"""

import asyncio
import datetime
import decimal
import enum
import fractions
import io
import logging
import mmap
import pathlib
import re
import socket
import threading
import types
import uuid
import weakref
from typing import Iterable, Set, Tuple

import cffi
import numpy as np


class TypeRegistry:
    """
    Thread-safe set of {ignored types, safe-to-share types}.

    Lookups are plain set/tuple membership tests and do not lock;
    mutations are serialized and bump ``version``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ignored: Set[type] = set()
        self._ignored_bases: Tuple[type, ...] = ()
        self._safe: Set[type] = set()
        self._safe_bases: Tuple[type, ...] = ()
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def ignore(self, *types_: type, subclasses: bool = False):
        """Declare types whose instances clone to ``None``."""
        with self._lock:
            if subclasses:
                self._ignored_bases = _merge_bases(self._ignored_bases, types_)
            else:
                self._ignored.update(types_)
            self._version += 1

    def share(self, *types_: type, subclasses: bool = False):
        """Declare types whose instances are returned as-is by a clone."""
        with self._lock:
            if subclasses:
                self._safe_bases = _merge_bases(self._safe_bases, types_)
            else:
                self._safe.update(types_)
            self._version += 1

    def discard(self, *types_: type):
        """Remove types from both tables (exact and base entries)."""
        with self._lock:
            for t in types_:
                self._ignored.discard(t)
                self._safe.discard(t)
            self._ignored_bases = tuple(b for b in self._ignored_bases if b not in types_)
            self._safe_bases = tuple(b for b in self._safe_bases if b not in types_)
            self._version += 1

    def is_ignored(self, cls: type) -> bool:
        if cls in self._ignored:
            return True
        return bool(self._ignored_bases) and issubclass(cls, self._ignored_bases)

    def is_safe(self, cls: type) -> bool:
        if cls in self._safe:
            return True
        return bool(self._safe_bases) and issubclass(cls, self._safe_bases)

    @property
    def exact_safe_types(self) -> frozenset:
        """Snapshot of the exact safe table, used by generated type guards."""
        return frozenset(self._safe)

    def copy(self) -> 'TypeRegistry':
        """Return an independent registry with the same tables."""
        other = TypeRegistry()
        with self._lock:
            other._ignored = set(self._ignored)
            other._ignored_bases = self._ignored_bases
            other._safe = set(self._safe)
            other._safe_bases = self._safe_bases
        return other

    def __repr__(self):
        return (
            f"TypeRegistry(ignored={len(self._ignored)}+{len(self._ignored_bases)}, "
            f"safe={len(self._safe)}+{len(self._safe_bases)}, version={self._version})"
        )


def _merge_bases(current: Tuple[type, ...], new: Iterable[type]) -> Tuple[type, ...]:
    merged = list(current)
    for t in new:
        if t not in merged:
            merged.append(t)
    return tuple(merged)


_ffi = cffi.FFI()


def populate_defaults(registry: TypeRegistry) -> TypeRegistry:
    """Fill ``registry`` with the default policy tables."""
    # Synchronization primitives and OS / interpreter handles
    registry.ignore(
        type(threading.Lock()),
        type(threading.RLock()),
        threading.Condition,
        threading.Semaphore,
        threading.BoundedSemaphore,
        threading.Event,
        threading.Barrier,
        mmap.mmap,
        memoryview,
        types.GeneratorType,
        types.CoroutineType,
        types.AsyncGeneratorType,
        types.FrameType,
        types.TracebackType,
        _ffi.CData,
        _ffi.CType,
    )
    registry.ignore(
        threading.Thread,
        socket.socket,
        io.IOBase,
        asyncio.AbstractEventLoop,
        subclasses=True,
    )

    registry.share(
        type(None),
        type(Ellipsis),
        type(NotImplemented),
        bool,
        int,
        float,
        complex,
        str,
        bytes,
        range,
        slice,
        property,
        types.BuiltinFunctionType,
        types.MethodDescriptorType,
        types.WrapperDescriptorType,
        types.MethodWrapperType,
        types.GetSetDescriptorType,
        types.MemberDescriptorType,
        types.CodeType,
        types.MappingProxyType,
        decimal.Decimal,
        fractions.Fraction,
        datetime.date,
        datetime.time,
        datetime.datetime,
        datetime.timedelta,
        datetime.timezone,
        uuid.UUID,
        re.Pattern,
        weakref.ProxyType,
        weakref.CallableProxyType,
    )
    registry.share(
        type,
        types.ModuleType,
        enum.Enum,
        pathlib.PurePath,
        weakref.ref,
        logging.Logger,
        np.generic,
        np.dtype,
        subclasses=True,
    )
    return registry


_default_registry = populate_defaults(TypeRegistry())


def default_registry() -> TypeRegistry:
    """The process-wide registry used by the module-level clone functions."""
    return _default_registry


def register_safe(cls: type) -> type:
    """
    Class decorator: instances of ``cls`` are shared, never copied.

    Usage:
        @register_safe
        class Color:
            ...
    """
    _default_registry.share(cls)
    return cls


def register_ignored(cls: type) -> type:
    """Class decorator: instances of ``cls`` clone to ``None``."""
    _default_registry.ignore(cls)
    return cls
