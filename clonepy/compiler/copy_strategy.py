"""
Copy Strategy
=============

The compiled, per-type recipe the clone engine executes. Every slot is
an optional callable; which ones are present depends on the category:

  allocate(source, state) -> target
      Produce the uninitialized shell for a reference-typed source.
  fill(source, target, state, stack)
      Populate ``target`` from ``source``. References are linked through
      the engine, which pushes unseen children onto ``stack``.
  fill_shallow(source, target)
      Same as ``fill`` but references are copied as-is.
  split(source) -> children or None
      Value aggregates rebuilt post-order: the child values to copy, or
      None when the source can be shared without looking further.
  assemble(source, copies) -> value
      Build the value from the copied children, or hand back ``source``
      when every child copied to itself.
  build_value(source, state, stack) -> value
      Value aggregates built in one step (frozensets).
  check_target(source, target) -> bool
      Whether ``target`` has the shape/bounds ``copy_into`` requires.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple, Optional

from clonepy.analysis.type_classifier import Category, TypeDescriptor


@dataclass(frozen=True)
class CopyStrategy:
    descriptor: TypeDescriptor
    kind: str
    allocate: Optional[Callable] = None
    fill: Optional[Callable] = None
    fill_shallow: Optional[Callable] = None
    split: Optional[Callable] = None
    assemble: Optional[Callable] = None
    build_value: Optional[Callable] = None
    check_target: Optional[Callable] = None
    category: Category = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, 'category', self.descriptor.category)

    @property
    def supports_copy_into(self) -> bool:
        return self.fill is not None and self.fill_shallow is not None

    def __repr__(self):
        return f"CopyStrategy({self.descriptor.name}, kind={self.kind!r})"


class WorkItem(NamedTuple):
    """An allocated copy whose contents are still to be filled."""
    source: Any
    target: Any
    fill: Callable
