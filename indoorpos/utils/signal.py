"""
Signal conditioning for scalar sensor magnitudes.

Provides:
    - low_pass_filter: first-order exponential smoothing
    - median, quartiles, stddev: robust statistics over a window
    - clamp: scalar bound
    - SlidingWindow: fixed-capacity ring buffer with O(1) push/evict

All statistics return None on empty input rather than raising, so callers
(adaptive thresholding in step detection) can fall back to base values.

Quartile method:
    Index-based on the ascending sort: q1 = s[int(0.25 n)], q3 = s[int(0.75 n)].
    The same rule is used for odd and even lengths. A tighter spread of the
    window always yields a smaller IQR, which is all adaptive thresholding
    relies on.
"""

from typing import Iterable, Optional, Tuple

import numpy as np


def low_pass_filter(current: float, previous: float, alpha: float) -> float:
    """
    First-order low-pass filter.

    filtered = alpha * current + (1 - alpha) * previous

    Args:
        current: New raw value.
        previous: Previous filtered value.
        alpha: Smoothing coefficient in (0, 1]. Lower = more smoothing.

    Returns:
        Filtered value.
    """
    return alpha * current + (1.0 - alpha) * previous


def clamp(value: float, min_value: float, max_value: float) -> float:
    """Clamp value to [min_value, max_value]."""
    return max(min_value, min(value, max_value))


def _as_array(values: Iterable[float]) -> np.ndarray:
    if isinstance(values, np.ndarray):
        return values.astype(float).ravel()
    return np.asarray(list(values), dtype=float)


def median(values: Iterable[float]) -> Optional[float]:
    """
    Median of a collection (mean of the two middle values for even length).

    Returns:
        Median, or None for an empty collection.
    """
    arr = _as_array(values)
    if arr.size == 0:
        return None
    return float(np.median(arr))


def quartiles(values: Iterable[float]) -> Optional[Tuple[float, float]]:
    """
    First and third quartiles (index-based, see module docstring).

    Returns:
        (q1, q3), or None for an empty collection.

    Example:
        >>> quartiles([1.0, 2.0, 3.0, 4.0])
        (2.0, 4.0)
    """
    arr = _as_array(values)
    n = arr.size
    if n == 0:
        return None
    s = np.sort(arr)
    q1 = s[int(n * 0.25)]
    q3 = s[min(int(n * 0.75), n - 1)]
    return float(q1), float(q3)


def stddev(values: Iterable[float]) -> Optional[float]:
    """
    Population standard deviation.

    Returns:
        Standard deviation, or None for an empty collection.
    """
    arr = _as_array(values)
    if arr.size == 0:
        return None
    return float(np.std(arr))


class SlidingWindow:
    """
    Fixed-capacity ring buffer of floats.

    Pushing into a full window overwrites the oldest sample. Storage is a
    preallocated NumPy array plus a head index, so push and evict are O(1).

    Attributes:
        capacity: Maximum number of samples held.

    Example:
        >>> w = SlidingWindow(3)
        >>> for v in [1.0, 2.0, 3.0, 4.0]:
        ...     w.push(v)
        >>> w.values()
        array([2., 3., 4.])
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._buffer = np.zeros(capacity, dtype=float)
        self._head = 0
        self._size = 0

    def push(self, value: float) -> None:
        self._buffer[self._head] = value
        self._head = (self._head + 1) % self.capacity
        if self._size < self.capacity:
            self._size += 1

    def values(self) -> np.ndarray:
        """Samples in insertion order, oldest first (copy)."""
        if self._size < self.capacity:
            return self._buffer[:self._size].copy()
        return np.concatenate((self._buffer[self._head:], self._buffer[:self._head]))

    def clear(self) -> None:
        self._head = 0
        self._size = 0

    def is_full(self) -> bool:
        return self._size == self.capacity

    def __len__(self) -> int:
        return self._size
