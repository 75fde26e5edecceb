"""
Traversal State
===============

Per-call identity map ``{id(original) -> copy}``.

Every reference-typed object reached during one clone call is
registered here *before* its own fields or elements are processed, so a
later reference to the same original (a shared child or a back edge to
an ancestor) resolves to the already-allocated copy instead of being
copied again.

The map uses the same layout as the ``memo`` of the standard library
``copy`` module, including the keep-alive list stored under
``id(memo)``. Objects implementing ``__deepcopy__`` receive it as their
memo and may call ``copy.deepcopy(child, memo)`` themselves; both sides
then see each other's registrations.
"""

from typing import Any, Dict, List

MISSING = object()


class TraversalState:
    """
    Identity map scoped to one top-level clone call.

    Originals are kept alive until the state is discarded, so their
    ``id()`` values cannot be recycled for temporaries created during
    the traversal (reduce tuples, state dicts).
    """

    __slots__ = ('_memo', '_keep_alive', '_pending')

    def __init__(self):
        self._memo: Dict[int, Any] = {}
        self._keep_alive: List[Any] = []
        self._memo[id(self._memo)] = self._keep_alive
        self._pending: Dict[int, Any] = {}

    def register(self, original: Any, copy: Any):
        self._memo[id(original)] = copy
        self._keep_alive.append(original)

    def lookup(self, original: Any, default: Any = MISSING) -> Any:
        return self._memo.get(id(original), default)

    def stash(self, target: Any, payload: Any):
        """Park data produced during allocation until ``target`` is filled."""
        self._pending[id(target)] = payload

    def unstash(self, target: Any, default: Any = None) -> Any:
        return self._pending.pop(id(target), default)

    @property
    def memo(self) -> Dict[int, Any]:
        return self._memo

    def __contains__(self, original: Any) -> bool:
        return id(original) in self._memo

    def __len__(self) -> int:
        return len(self._memo) - 1

    def __repr__(self):
        return f"TraversalState({len(self)} registered)"
