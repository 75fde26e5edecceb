"""Timing helpers for clone benchmarks."""

import time
from typing import Any, Callable, Dict


class Timer:
    """Context manager measuring wall time in nanoseconds."""

    def __init__(self):
        self.start_ns = 0
        self.end_ns = 0

    def __enter__(self):
        self.start_ns = time.perf_counter_ns()
        return self

    def __exit__(self, *exc):
        self.end_ns = time.perf_counter_ns()

    @property
    def elapsed_ns(self) -> int:
        return self.end_ns - self.start_ns

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_ns / 1_000_000.0


def measure(func: Callable, *args: Any, iterations: int = 20, warmup: int = 3) -> Dict[str, Any]:
    """
    Run ``func(*args)`` repeatedly and summarize the timings.

    Usage:
        >>> stats = measure(clone, graph, iterations=50)
        >>> format_ns(stats['median_ns'])
        '412.3 µs'
    """
    if iterations < 1:
        raise ValueError("iterations must be at least 1")
    for _ in range(warmup):
        func(*args)

    times = []
    for _ in range(iterations):
        with Timer() as t:
            func(*args)
        times.append(t.elapsed_ns)

    times.sort()
    return {
        'median_ns': times[len(times) // 2],
        'mean_ns': sum(times) / len(times),
        'p95_ns': times[min(int(len(times) * 0.95), len(times) - 1)],
        'min_ns': times[0],
        'iterations': iterations,
    }


def format_ns(ns: float) -> str:
    """Format nanoseconds into a human-readable string."""
    if ns < 1_000:
        return f"{ns:.0f} ns"
    elif ns < 1_000_000:
        return f"{ns / 1_000:.1f} µs"
    elif ns < 1_000_000_000:
        return f"{ns / 1_000_000:.2f} ms"
    else:
        return f"{ns / 1_000_000_000:.3f} s"


def format_ratio(baseline_ns: float, candidate_ns: float) -> str:
    """How the candidate compares to the baseline, e.g. ``'3.10x faster'``."""
    if candidate_ns <= 0:
        return "∞x faster"
    ratio = baseline_ns / candidate_ns
    if ratio >= 1:
        return f"{ratio:.2f}x faster"
    return f"{1 / ratio:.2f}x slower"
