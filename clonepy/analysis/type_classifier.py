"""
Type Classifier
===============

Maps a concrete runtime type to the category that decides how its
instances are copied, and derives the ``TypeDescriptor`` the strategy
compiler works from.

Decision order (first match wins):

  1. ALWAYS_IGNORED         registry ignore table          -> None
  2. SAFE_SHARE             registry safe table            -> same object
  3. VALUE_AGGREGATE        tuple, frozenset, frozen dataclass
  4. FUNCTION_REFERENCE     function, bound method, functools.partial
  5. ARRAY                  list, deque, bytearray, array.array,
                            numpy.ndarray, OffsetArray
  6. ASSOCIATIVE_CONTAINER  dict, set
  7. REFERENCE_AGGREGATE    everything else (field walk)

A list subclass is an array first and an attribute holder second.

Field enumeration
-----------------
Slot members are discovered through their member descriptors along the
MRO of classes that declare ``__slots__``, which also yields the
mangled names of private slots. Classes defined in ``builtins`` and the
array layout bases are runtime-reserved: their internal layout is never
walked. Instance ``__dict__`` contents are walked per instance.
"""

import array
import collections
import copyreg
import dataclasses
import functools
import types
import typing
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, FrozenSet, Optional, Tuple

import numpy as np

from clonepy.analysis.type_registry import TypeRegistry, default_registry
from clonepy.structures.events import Event
from clonepy.structures.offset_array import OffsetArray


class Category(IntEnum):
    ALWAYS_IGNORED = 0
    SAFE_SHARE = 1
    VALUE_AGGREGATE = 2
    FUNCTION_REFERENCE = 3
    REFERENCE_AGGREGATE = 4
    ARRAY = 5
    ASSOCIATIVE_CONTAINER = 6


class CopyHook:
    """How a ReferenceAggregate is constructed when it is not field-walked."""
    NONE = None
    DEEPCOPY = 'deepcopy'   # type defines __deepcopy__
    REDUCE = 'reduce'       # pickle reduce protocol / copyreg


@dataclass(frozen=True)
class FieldDescriptor:
    """A single declared field of a class."""
    name: str
    owner: type
    kind: str  # 'slot' | 'dataclass'
    declared_type: Optional[type] = None
    member: Any = None


@dataclass(frozen=True)
class TypeDescriptor:
    """Immutable facts about a concrete type, derived once and cached."""
    cls: type
    category: Category
    fields: Tuple[FieldDescriptor, ...] = ()
    has_dict: bool = False
    event_fields: FrozenSet[str] = frozenset()
    element_kind: Optional[str] = None
    hook: Optional[str] = None
    frozen: bool = False

    @property
    def slot_fields(self) -> Tuple[FieldDescriptor, ...]:
        return tuple(f for f in self.fields if f.kind == 'slot')

    @property
    def dataclass_fields(self) -> Tuple[FieldDescriptor, ...]:
        return tuple(f for f in self.fields if f.kind == 'dataclass')

    @property
    def has_fields(self) -> bool:
        return self.has_dict or bool(self.slot_fields)

    @property
    def name(self) -> str:
        return f"{self.cls.__module__}.{self.cls.__qualname__}"


_FUNCTION_TYPES = (types.FunctionType, types.MethodType, functools.partial)

# element_kind per rank-1 array base: 'object' elements are cloned one by
# one, 'bulk' storage only ever holds plain numbers.
_RANK1_ARRAYS = (
    (list, 'object'),
    (collections.deque, 'object'),
    (bytearray, 'bulk'),
    (array.array, 'bulk'),
)
_RANKN_ARRAYS = (np.ndarray, OffsetArray)
_CONTAINERS = (dict, set)

# Classes whose storage is opaque to the field walker.
_LAYOUT_BASES = frozenset({OffsetArray, np.ndarray})


def is_frozen_dataclass(cls: type) -> bool:
    if not dataclasses.is_dataclass(cls):
        return False
    params = getattr(cls, '__dataclass_params__', None)
    return bool(params is not None and params.frozen)


def _is_reserved(klass: type) -> bool:
    return klass.__module__ == 'builtins' or klass in _LAYOUT_BASES


def _resolve_hints(cls: type) -> Dict[str, type]:
    try:
        hints = typing.get_type_hints(cls)
    except Exception:
        # Unresolvable forward references; fields stay untyped
        return {}
    return {name: hint for name, hint in hints.items() if isinstance(hint, type)}


def _has_instance_dict(cls: type) -> bool:
    return any('__dict__' in vars(klass) for klass in cls.__mro__)


def _slot_fields(cls: type, hints: Dict[str, type]) -> Tuple[FieldDescriptor, ...]:
    found = []
    seen = set()
    for klass in cls.__mro__:
        # Only classes declaring __slots__ in Python own writable slot members
        if _is_reserved(klass) or '__slots__' not in vars(klass):
            continue
        for name, member in vars(klass).items():
            if isinstance(member, types.MemberDescriptorType) and name not in seen:
                seen.add(name)
                found.append(FieldDescriptor(
                    name=name,
                    owner=klass,
                    kind='slot',
                    declared_type=hints.get(name),
                    member=member,
                ))
    return tuple(found)


def _event_fields(cls: type) -> FrozenSet[str]:
    """
    Names of fields backing an event.

    Convention-based: a field is event-backing when any class in the MRO
    declares an ``Event`` descriptor under the same name or lists the
    name in ``__events__``.
    """
    names = set()
    for klass in cls.__mro__:
        if _is_reserved(klass):
            continue
        declared = vars(klass).get('__events__', ())
        if isinstance(declared, str):
            declared = (declared,)
        names.update(declared)
        for name, member in vars(klass).items():
            if isinstance(member, Event):
                names.add(name)
    return frozenset(names)


def _copy_hook(cls: type) -> Optional[str]:
    if getattr(cls, '__deepcopy__', None) is not None:
        return CopyHook.DEEPCOPY
    if cls in copyreg.dispatch_table:
        return CopyHook.REDUCE
    if (getattr(cls, '__reduce_ex__', None) is not object.__reduce_ex__
            or getattr(cls, '__reduce__', None) is not object.__reduce__):
        return CopyHook.REDUCE
    if getattr(cls, '__getstate__', None) is not getattr(object, '__getstate__', None):
        return CopyHook.REDUCE
    if hasattr(cls, '__setstate__') or hasattr(cls, '__getnewargs_ex__') or hasattr(cls, '__getnewargs__'):
        return CopyHook.REDUCE
    return CopyHook.NONE


class TypeClassifier:
    """
    Pure ``type -> Category`` function over a ``TypeRegistry``.

    Usage:
        >>> classifier = TypeClassifier()
        >>> classifier.classify(list)
        <Category.ARRAY: 5>
        >>> classifier.describe(MyNode).fields
    """

    def __init__(self, registry: Optional[TypeRegistry] = None):
        self.registry = registry if registry is not None else default_registry()

    def classify(self, cls: type) -> Category:
        registry = self.registry
        if registry.is_ignored(cls):
            return Category.ALWAYS_IGNORED
        if registry.is_safe(cls):
            return Category.SAFE_SHARE
        if issubclass(cls, (tuple, frozenset)) or is_frozen_dataclass(cls):
            return Category.VALUE_AGGREGATE
        if issubclass(cls, _FUNCTION_TYPES):
            return Category.FUNCTION_REFERENCE
        if issubclass(cls, _RANKN_ARRAYS):
            return Category.ARRAY
        for base, _ in _RANK1_ARRAYS:
            if issubclass(cls, base):
                return Category.ARRAY
        if issubclass(cls, _CONTAINERS):
            return Category.ASSOCIATIVE_CONTAINER
        return Category.REFERENCE_AGGREGATE

    def describe(self, cls: type) -> TypeDescriptor:
        category = self.classify(cls)
        if category in (Category.ALWAYS_IGNORED, Category.SAFE_SHARE):
            return TypeDescriptor(cls=cls, category=category)

        if category == Category.FUNCTION_REFERENCE:
            return TypeDescriptor(
                cls=cls,
                category=category,
                has_dict=_has_instance_dict(cls),
            )

        hints = _resolve_hints(cls)
        fields = _slot_fields(cls, hints)
        frozen = category == Category.VALUE_AGGREGATE and is_frozen_dataclass(cls)
        if frozen:
            # Slot members stay alongside the declared fields; they hold
            # the same values for slotted dataclasses and any extras.
            fields += tuple(
                FieldDescriptor(
                    name=f.name,
                    owner=cls,
                    kind='dataclass',
                    declared_type=hints.get(f.name),
                )
                for f in dataclasses.fields(cls)
            )

        element_kind = None
        if category == Category.ARRAY:
            if issubclass(cls, _RANKN_ARRAYS):
                element_kind = 'dtype'
            else:
                element_kind = next(kind for base, kind in _RANK1_ARRAYS if issubclass(cls, base))

        hook = None
        if category == Category.REFERENCE_AGGREGATE:
            hook = _copy_hook(cls)

        return TypeDescriptor(
            cls=cls,
            category=category,
            fields=fields,
            has_dict=_has_instance_dict(cls),
            event_fields=_event_fields(cls),
            element_kind=element_kind,
            hook=hook,
            frozen=frozen,
        )
