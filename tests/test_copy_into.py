"""
Tests for copy_into.

Validates:
  - Argument validation (None, strings, incompatible and immutable types)
  - Shape, bounds and typecode checks for array destinations
  - Validation happens before any mutation
  - Deep mode maps the source root onto the destination
  - Shallow mode keeps the source's references
  - Copying an object onto itself keeps its contents
"""

import array
import collections

import numpy as np
import pytest

from clonepy import CloneArgumentError, Event, OffsetArray, copy_into


class Node:
    def __init__(self, value=None, next=None):
        self.value = value
        self.next = next


class SubNode(Node):
    pass


class Slotted:
    __slots__ = ('x', 'y', '__secret')

    def __init__(self, x=None, y=None, secret=None):
        self.x = x
        self.y = y
        self.__secret = secret

    @property
    def secret(self):
        return self.__secret


class Observable:
    changed = Event()

    def __init__(self, value=0):
        self.value = value


def make_counter():
    count = [0]

    def increment():
        count[0] += 1
        return count[0]

    return increment


class TestValidation:
    def test_none_destination(self):
        assert copy_into(Node(), None) is None

    def test_none_source(self):
        with pytest.raises(CloneArgumentError):
            copy_into(None, Node())

    def test_error_is_value_error(self):
        assert issubclass(CloneArgumentError, ValueError)

    def test_string_source(self):
        with pytest.raises(CloneArgumentError):
            copy_into('abc', 'def')

    def test_incompatible_destination(self):
        with pytest.raises(CloneArgumentError):
            copy_into(Node(), [])

    def test_supertype_destination_rejected(self):
        with pytest.raises(CloneArgumentError):
            copy_into(SubNode(), Node())

    @pytest.mark.parametrize('source, destination', [
        (5, 6),
        ((1,), (2,)),
        (frozenset({1}), frozenset({2})),
    ])
    def test_immutable_source(self, source, destination):
        with pytest.raises(CloneArgumentError):
            copy_into(source, destination)

    def test_function_source(self):
        with pytest.raises(CloneArgumentError):
            copy_into(make_counter(), make_counter())

    def test_ndarray_shape_mismatch(self):
        destination = np.zeros(4)
        with pytest.raises(CloneArgumentError):
            copy_into(np.ones(3), destination)
        assert not destination.any()

    def test_ndarray_dtype_mismatch(self):
        with pytest.raises(CloneArgumentError):
            copy_into(np.ones(3), np.zeros(3, dtype=np.int32))

    def test_offset_array_bounds_mismatch(self):
        source = OffsetArray((2,), lower_bounds=(1,))
        with pytest.raises(CloneArgumentError):
            copy_into(source, OffsetArray((2,), lower_bounds=(0,)))

    def test_typed_array_typecode_mismatch(self):
        with pytest.raises(CloneArgumentError):
            copy_into(array.array('i', [1]), array.array('d', [1.0]))

    def test_deque_maxlen_mismatch(self):
        with pytest.raises(CloneArgumentError):
            copy_into(collections.deque(maxlen=2), collections.deque(maxlen=3))


class TestDeepCopyInto:
    def test_returns_destination(self):
        destination = Node()
        assert copy_into(Node(1), destination) is destination
        assert destination.value == 1

    def test_back_reference_lands_on_destination(self):
        source = Node([1])
        source.next = source
        destination = Node()
        copy_into(source, destination)
        assert destination.next is destination
        assert destination.value == [1]
        assert destination.value is not source.value

    def test_subclass_destination(self):
        destination = SubNode()
        copy_into(Node('v'), destination)
        assert destination.value == 'v'

    def test_slots(self):
        destination = Slotted()
        copy_into(Slotted(1, [2], 's'), destination)
        assert destination.x == 1
        assert destination.y == [2]
        assert destination.secret == 's'

    def test_events_cleared(self):
        destination = Observable()
        destination.changed += print
        copy_into(Observable(5), destination)
        assert destination.value == 5
        assert len(destination.changed) == 0

    def test_list(self):
        source = [1, [2]]
        destination = ['old', 'contents', 'here']
        copy_into(source, destination)
        assert destination == [1, [2]]
        assert destination[1] is not source[1]

    def test_dict(self):
        destination = {'b': 2}
        copy_into({'a': [1]}, destination)
        assert destination == {'a': [1]}

    def test_ndarray(self):
        destination = np.zeros(3)
        copy_into(np.arange(3.0), destination)
        assert np.array_equal(destination, [0.0, 1.0, 2.0])

    def test_offset_array(self):
        source = OffsetArray((2,), lower_bounds=(3,))
        source[3] = [1]
        source[4] = 'x'
        destination = OffsetArray((2,), lower_bounds=(3,))
        copy_into(source, destination)
        assert destination[3] == [1] and destination[3] is not source[3]
        assert destination[4] == 'x'


class TestShallowCopyInto:
    def test_references_kept(self):
        source = Node([1], Node())
        destination = Node()
        copy_into(source, destination, deep=False)
        assert destination.value is source.value
        assert destination.next is source.next

    def test_list(self):
        inner = [1]
        destination = []
        copy_into([inner], destination, deep=False)
        assert destination[0] is inner

    def test_set(self):
        destination = {9}
        copy_into({1, 2}, destination, deep=False)
        assert destination == {1, 2}


class TestSelfCopyInto:
    """Copying an object onto itself keeps its contents."""

    @pytest.mark.parametrize('deep', [True, False])
    @pytest.mark.parametrize('make', [
        lambda: {'a': 1, 'b': 2},
        lambda: collections.OrderedDict([('b', 1), ('a', 2)]),
        lambda: {1, 2, 3},
        lambda: collections.deque([1, 2], maxlen=5),
        lambda: [1, 2],
        lambda: bytearray(b'ab'),
        lambda: array.array('i', [1, 2]),
    ], ids=['dict', 'ordered_dict', 'set', 'deque', 'list', 'bytearray', 'typed_array'])
    def test_contents_kept(self, make, deep):
        target = make()
        assert copy_into(target, target, deep=deep) is target
        assert target == make()

    def test_deep_replaces_children_with_copies(self):
        inner = [1]
        target = {'a': inner}
        copy_into(target, target)
        assert target == {'a': [1]}
        assert target['a'] is not inner

    def test_object_with_back_reference(self):
        node = Node([1])
        node.next = node
        copy_into(node, node)
        assert node.value == [1]
        assert node.next is node
