# src/llmgate/observability/histogram.py
"""
Fixed-capacity latency histogram.

Samples are written into a circular buffer of ``capacity`` slots, so memory
stays bounded no matter how many observations arrive. Running count, sum,
min and max cover every observation; percentiles are computed on demand
over the samples still held in the buffer, using linear interpolation
between the two closest ranks.

Thread Safety:
    ``add`` and ``snapshot`` serialize on a single lock. ``snapshot`` copies
    the buffer under the lock and sorts the copy outside of it.

Usage:
    >>> h = Histogram(capacity=1000)
    >>> for v in (100.0, 200.0, 300.0):
    ...     h.add(v)
    >>> h.snapshot().p50_latency_ms
    200.0
"""

from __future__ import annotations

import math
import threading
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .snapshots import LatencyMetrics

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_HISTOGRAM_CAPACITY = 1000

REPORTED_PERCENTILES = (50, 75, 90, 95, 99)


def calculate_percentile(sorted_samples: Sequence[float], percentile: float) -> float:
    """
    Linear-interpolated percentile of already sorted samples.

    Args:
        sorted_samples: Samples in ascending order.
        percentile: Percentile in [0, 100]. Values outside are clamped.

    Returns:
        The percentile value, or 0.0 for an empty sequence.
    """
    if not sorted_samples:
        return 0.0
    if percentile <= 0:
        return sorted_samples[0]
    if percentile >= 100:
        return sorted_samples[-1]

    rank = percentile / 100.0 * (len(sorted_samples) - 1)
    lower = math.floor(rank)
    upper = min(lower + 1, len(sorted_samples) - 1)
    weight = rank - lower
    return sorted_samples[lower] + weight * (sorted_samples[upper] - sorted_samples[lower])


class Histogram:
    """
    Circular-buffer histogram of positive durations in milliseconds.

    Args:
        capacity: Number of samples retained for percentile calculation.
            Non-positive values fall back to the default capacity.
    """

    def __init__(self, capacity: int = DEFAULT_HISTOGRAM_CAPACITY):
        if capacity <= 0:
            capacity = DEFAULT_HISTOGRAM_CAPACITY
        self._capacity = capacity
        self._samples: List[float] = [0.0] * capacity
        self._index = 0
        self._count = 0
        self._sum = 0.0
        self._min = 0.0
        self._max = 0.0
        self._last_updated: Optional[datetime] = None
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def count(self) -> int:
        """Total observations, including those evicted from the buffer."""
        with self._lock:
            return self._count

    def add(self, value_ms: float) -> None:
        """Record one observation."""
        with self._lock:
            self._samples[self._index] = value_ms
            self._index = (self._index + 1) % self._capacity
            if self._count == 0 or value_ms < self._min:
                self._min = value_ms
            if value_ms > self._max:
                self._max = value_ms
            self._count += 1
            self._sum += value_ms
            self._last_updated = datetime.now(timezone.utc)

    def percentile(self, percentile: float) -> float:
        """Percentile over the buffered samples."""
        return calculate_percentile(self._sorted_samples(), percentile)

    def snapshot(self) -> LatencyMetrics:
        """Return count, sum, average, min, max and P50/P75/P90/P95/P99."""
        with self._lock:
            count = self._count
            total = self._sum
            minimum = self._min
            maximum = self._max
            last_updated = self._last_updated
            valid = self._samples[: min(count, self._capacity)]

        if count == 0:
            return LatencyMetrics()

        ordered = sorted(valid)
        p50, p75, p90, p95, p99 = (calculate_percentile(ordered, p) for p in REPORTED_PERCENTILES)
        return LatencyMetrics(
            total_requests=count,
            total_latency_ms=total,
            average_latency_ms=total / count,
            min_latency_ms=minimum,
            max_latency_ms=maximum,
            p50_latency_ms=p50,
            p75_latency_ms=p75,
            p90_latency_ms=p90,
            p95_latency_ms=p95,
            p99_latency_ms=p99,
            last_updated=last_updated,
        )

    def reset(self) -> None:
        with self._lock:
            self._samples = [0.0] * self._capacity
            self._index = 0
            self._count = 0
            self._sum = 0.0
            self._min = 0.0
            self._max = 0.0
            self._last_updated = None

    def _sorted_samples(self) -> List[float]:
        with self._lock:
            valid = self._samples[: min(self._count, self._capacity)]
        return sorted(valid)
