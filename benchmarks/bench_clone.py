"""
ClonePy Benchmark Runner
========================

Times ``clonepy.clone`` against ``copy.deepcopy`` on a set of object
graphs and prints a comparison table.

Usage:
    python benchmarks/bench_clone.py
"""

import copy
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from clonepy import CloneEngine, OffsetArray
from clonepy.utils.helpers import format_ns, format_ratio, measure


ITERATIONS = 20      # Benchmark iterations
WARMUP = 3           # Warmup iterations


class Node:
    def __init__(self, value=None, next=None):
        self.value = value
        self.next = next


class Point:
    __slots__ = ('x', 'y', 'tags')

    def __init__(self, x, y):
        self.x = x
        self.y = y
        self.tags = ['p']


def chain(length: int) -> Node:
    head = Node(0)
    current = head
    for i in range(1, length):
        current.next = Node(i)
        current = current.next
    return head


def cyclic_ring(length: int) -> Node:
    head = chain(length)
    tail = head
    while tail.next is not None:
        tail = tail.next
    tail.next = head
    return head


def records(count: int) -> List[Dict[str, Any]]:
    shared = {'unit': 'ms'}
    return [{'id': i, 'point': Point(i, -i), 'meta': shared, 'pair': (i, [i])} for i in range(count)]


def object_grid(n: int) -> OffsetArray:
    grid = OffsetArray((n, n), lower_bounds=(1, 1))
    for index in grid.indices():
        grid[index] = [index[0] * index[1]]
    return grid


def get_workloads() -> List[Tuple[str, Callable[[], Any]]]:
    return [
        ('chain_500', lambda: chain(500)),
        ('ring_500', lambda: cyclic_ring(500)),
        ('records_1k', lambda: records(1_000)),
        ('ndarray_512', lambda: np.random.default_rng(0).random((512, 512))),
        ('offset_grid_40', lambda: object_grid(40)),
    ]


def run(engine: CloneEngine) -> List[Dict[str, Any]]:
    results = []
    for name, build in get_workloads():
        graph = build()
        baseline = measure(copy.deepcopy, graph, iterations=ITERATIONS, warmup=WARMUP)
        candidate = measure(engine.clone, graph, iterations=ITERATIONS, warmup=WARMUP)
        results.append({
            'name': name,
            'deepcopy_ns': baseline['median_ns'],
            'clone_ns': candidate['median_ns'],
        })
    return results


def print_summary(results: List[Dict[str, Any]], engine: CloneEngine):
    print(f"\n{'='*72}")
    print(f"  CLONEPY BENCHMARK SUMMARY")
    print(f"  Python {sys.version.split()[0]} | {sys.platform}")
    print(f"{'='*72}")
    print(f"  {'Workload':<20} {'deepcopy':>12} {'clone':>12} {'Ratio':>16}")
    print(f"  {'-'*64}")
    for r in results:
        print(
            f"  {r['name']:<20} {format_ns(r['deepcopy_ns']):>12} "
            f"{format_ns(r['clone_ns']):>12} {format_ratio(r['deepcopy_ns'], r['clone_ns']):>16}"
        )
    cache = engine.get_stats()['cache']
    print(f"\n  Strategies compiled: {cache['compilations']} | cache hit rate: {cache['hit_rate']}")


def main():
    engine = CloneEngine()
    print("ClonePy Benchmark Suite")
    print(f"Python {sys.version}")
    print()
    results = run(engine)
    print_summary(results, engine)


if __name__ == '__main__':
    main()
