"""
Benchmarks for the clone engine (pytest-benchmark).

Validates:
  - Generated walkers are correct under repeated timing runs
  - Cached strategies are reused across benchmark rounds
"""

import numpy as np

from clonepy import CloneEngine, default_registry


class Node:
    def __init__(self, value=None, next=None):
        self.value = value
        self.next = next


def build_chain(length):
    head = Node(0)
    current = head
    for i in range(1, length):
        current.next = Node([i])
        current = current.next
    return head


def build_tree(depth):
    if depth == 0:
        return {'leaf': [1, 2, 3]}
    return {'left': build_tree(depth - 1), 'right': build_tree(depth - 1), 'tag': (depth, 'x')}


class TestCloneBenchmarks:
    def setup_method(self):
        self.engine = CloneEngine(registry=default_registry().copy())

    def test_chain(self, benchmark):
        head = build_chain(2_000)
        copy = benchmark(self.engine.clone, head)
        assert copy is not head
        assert copy.next.value == [1]

    def test_tree(self, benchmark):
        tree = build_tree(8)
        copy = benchmark(self.engine.clone, tree)
        assert copy['tag'] == (8, 'x')
        assert copy['left'] is not tree['left']

    def test_numeric_array(self, benchmark):
        data = np.random.default_rng(0).random((256, 256))
        copy = benchmark(self.engine.clone, data)
        assert np.array_equal(copy, data)
        assert self.engine.get_stats()['cache']['compilations'] == 1
