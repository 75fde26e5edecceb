"""
Offset Array
============

An N-dimensional array whose dimensions may start at any lower bound,
backed by a single ``numpy.ndarray``.

``OffsetArray((2, 3), lower_bounds=(1, -1))`` has valid indices
``(1..2, -1..1)``. Indexing always takes absolute index vectors; the
translation to zero-based storage offsets happens on every access.

Usage:
    >>> grid = OffsetArray((2, 2), lower_bounds=(10, 20))
    >>> grid[10, 21] = 'x'
    >>> grid[10, 21]
    'x'
    >>> list(grid.indices())
    [(10, 20), (10, 21), (11, 20), (11, 21)]
"""

import itertools
from typing import Any, Iterator, Optional, Sequence, Tuple

import numpy as np


class OffsetArray:
    """
    Fixed-shape array with arbitrary per-dimension lower bounds.
    """

    __slots__ = ('_data', '_lower_bounds')

    def __init__(
        self,
        shape: Sequence[int],
        lower_bounds: Optional[Sequence[int]] = None,
        dtype: Any = object,
    ):
        shape = tuple(int(n) for n in shape)
        if lower_bounds is None:
            lower_bounds = (0,) * len(shape)
        lower_bounds = tuple(int(b) for b in lower_bounds)
        if len(lower_bounds) != len(shape):
            raise ValueError(
                f"Got {len(lower_bounds)} lower bounds for a rank-{len(shape)} array"
            )
        if any(n < 0 for n in shape):
            raise ValueError(f"Negative dimension in shape {shape}")

        self._data = np.empty(shape, dtype=dtype) if np.dtype(dtype).hasobject \
            else np.zeros(shape, dtype=dtype)
        self._lower_bounds = lower_bounds

    @classmethod
    def from_array(cls, data: Any, lower_bounds: Optional[Sequence[int]] = None) -> 'OffsetArray':
        """Wrap a copy of ``data`` with the given lower bounds."""
        source = np.asarray(data)
        result = cls(source.shape, lower_bounds, dtype=source.dtype)
        np.copyto(result._data, source)
        return result

    @classmethod
    def empty_like(cls, other: 'OffsetArray') -> 'OffsetArray':
        """Same shape, bounds and dtype; object slots hold None, numeric slots zero."""
        result = cls.__new__(cls)
        result._data = np.empty_like(other._data) if other.dtype.hasobject \
            else np.zeros_like(other._data)
        result._lower_bounds = other._lower_bounds
        return result

    @property
    def data(self) -> np.ndarray:
        """Zero-based storage. Writes go through to the array."""
        return self._data

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._data.shape

    @property
    def rank(self) -> int:
        return self._data.ndim

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def lower_bounds(self) -> Tuple[int, ...]:
        return self._lower_bounds

    @property
    def upper_bounds(self) -> Tuple[int, ...]:
        """Inclusive upper bound per dimension."""
        return tuple(lb + n - 1 for lb, n in zip(self._lower_bounds, self._data.shape))

    def indices(self) -> Iterator[Tuple[int, ...]]:
        """Every valid index vector, last dimension varying fastest."""
        return itertools.product(*(
            range(lb, lb + n) for lb, n in zip(self._lower_bounds, self._data.shape)
        ))

    def _offset(self, index: Any) -> Tuple[int, ...]:
        if not isinstance(index, tuple):
            index = (index,)
        if len(index) != self._data.ndim:
            raise IndexError(
                f"Expected {self._data.ndim} indices, got {len(index)}"
            )
        offsets = []
        for dim, (i, lb, n) in enumerate(zip(index, self._lower_bounds, self._data.shape)):
            if not (lb <= i < lb + n):
                raise IndexError(
                    f"index {i} out of range [{lb}, {lb + n}) in dimension {dim}"
                )
            offsets.append(i - lb)
        return tuple(offsets)

    def __getitem__(self, index: Any) -> Any:
        return self._data[self._offset(index)]

    def __setitem__(self, index: Any, value: Any):
        self._data[self._offset(index)] = value

    def __len__(self) -> int:
        return int(self._data.size)

    def __iter__(self) -> Iterator[Any]:
        for index in self.indices():
            yield self[index]

    def __repr__(self):
        bounds = ', '.join(f"{lb}..{ub}" for lb, ub in zip(self._lower_bounds, self.upper_bounds))
        return f"OffsetArray([{bounds}], dtype={self._data.dtype})"
