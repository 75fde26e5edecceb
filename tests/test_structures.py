"""
Tests for the supporting structures and helpers.

Validates:
  - OffsetArray indexing with arbitrary lower bounds
  - OffsetArray construction errors and index range checks
  - Event subscription, invocation and assignment rules
  - Timing and formatting helpers
"""

import numpy as np
import pytest

from clonepy.structures.events import Event, EventHandlers
from clonepy.structures.offset_array import OffsetArray
from clonepy.utils.helpers import Timer, format_ns, format_ratio, measure


class TestOffsetArray:
    def setup_method(self):
        self.grid = OffsetArray((2, 3), lower_bounds=(1, -1))

    def test_bounds(self):
        assert self.grid.lower_bounds == (1, -1)
        assert self.grid.upper_bounds == (2, 1)
        assert self.grid.shape == (2, 3)
        assert self.grid.rank == 2
        assert len(self.grid) == 6

    def test_absolute_indexing(self):
        self.grid[2, 1] = 'corner'
        assert self.grid[2, 1] == 'corner'
        assert self.grid.data[1, 2] == 'corner'

    def test_object_slots_start_empty(self):
        assert all(value is None for value in self.grid)

    def test_indices_order(self):
        assert list(self.grid.indices())[:3] == [(1, -1), (1, 0), (1, 1)]

    @pytest.mark.parametrize('index', [(0, 0), (3, 0), (1, -2), (1, 2)])
    def test_out_of_range(self, index):
        with pytest.raises(IndexError):
            self.grid[index]

    def test_wrong_rank(self):
        with pytest.raises(IndexError):
            self.grid[1]

    def test_bounds_rank_mismatch(self):
        with pytest.raises(ValueError):
            OffsetArray((2, 2), lower_bounds=(1,))

    def test_negative_dimension(self):
        with pytest.raises(ValueError):
            OffsetArray((-1,))

    def test_rank_one_scalar_index(self):
        vector = OffsetArray((3,), lower_bounds=(10,))
        vector[12] = 'last'
        assert vector[12] == 'last'

    def test_numeric_dtype(self):
        grid = OffsetArray((2,), lower_bounds=(1,), dtype=np.int64)
        assert list(grid) == [0, 0]

    def test_from_array(self):
        grid = OffsetArray.from_array([[1, 2], [3, 4]], lower_bounds=(0, 5))
        assert grid[1, 6] == 4
        assert grid.dtype.kind == 'i'

    def test_empty_like(self):
        source = OffsetArray.from_array(np.ones(3), lower_bounds=(2,))
        empty = OffsetArray.empty_like(source)
        assert empty.lower_bounds == (2,)
        assert empty.dtype == source.dtype
        assert not empty.data.any()

    def test_repr(self):
        assert repr(self.grid) == "OffsetArray([1..2, -1..1], dtype=object)"


class Button:
    clicked = Event()


class TestEvents:
    def test_class_access(self):
        assert isinstance(Button.clicked, Event)
        assert Button.clicked.name == 'clicked'

    def test_subscribe_and_call(self):
        button = Button()
        calls = []
        button.clicked += lambda *args: calls.append(('first', args))
        button.clicked += lambda *args: calls.append(('second', args))
        button.clicked(1)
        assert calls == [('first', (1,)), ('second', (1,))]

    def test_unsubscribe(self):
        button = Button()
        calls = []
        button.clicked += calls.append
        button.clicked -= calls.append
        button.clicked('x')
        assert calls == []
        assert len(button.clicked) == 0

    def test_per_instance(self):
        a, b = Button(), Button()
        a.clicked += print
        assert len(b.clicked) == 0

    def test_stored_under_own_name(self):
        button = Button()
        handlers = button.clicked
        assert button.__dict__['clicked'] is handlers
        assert isinstance(handlers, EventHandlers)

    def test_rejects_other_values(self):
        with pytest.raises(TypeError):
            Button().clicked = print


class TestHelpers:
    def test_timer(self):
        with Timer() as t:
            sum(range(1000))
        assert t.elapsed_ns >= 0
        assert t.elapsed_ms == t.elapsed_ns / 1_000_000.0

    def test_measure(self):
        stats = measure(sum, range(100), iterations=5, warmup=1)
        assert stats['iterations'] == 5
        assert stats['min_ns'] <= stats['median_ns'] <= stats['p95_ns']

    def test_measure_rejects_zero_iterations(self):
        with pytest.raises(ValueError):
            measure(sum, [], iterations=0)

    @pytest.mark.parametrize('ns, text', [
        (500, '500 ns'),
        (1_500, '1.5 µs'),
        (2_500_000, '2.50 ms'),
        (3_000_000_000, '3.000 s'),
    ])
    def test_format_ns(self, ns, text):
        assert format_ns(ns) == text

    def test_format_ratio(self):
        assert format_ratio(300, 100) == '3.00x faster'
        assert format_ratio(100, 200) == '2.00x slower'
