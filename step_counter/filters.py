"""Magnitude filtering and the sliding history of filtered values."""

import math
from collections import deque
from typing import Deque, List


class HistoryBuffer:
    """Fixed-size FIFO of the most recent filtered magnitudes."""

    def __init__(self, capacity: int = 10):
        self.capacity = capacity
        self._values: Deque[float] = deque(maxlen=capacity)

    def push(self, value: float) -> None:
        self._values.append(value)

    def clear(self) -> None:
        self._values.clear()

    def last(self, n: int) -> List[float]:
        """Return the newest ``n`` entries in chronological order."""
        if n <= 0:
            return []
        return list(self._values)[-n:]

    @property
    def newest(self) -> float:
        return self._values[-1]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self):
        return iter(self._values)


class MagnitudeFilter:
    """Gravity removal followed by a first-order low-pass filter."""

    def __init__(self, alpha: float = 0.8):
        self.alpha = alpha

    @staticmethod
    def magnitude(x: float, y: float, z: float) -> float:
        return math.sqrt(x * x + y * y + z * z)

    def low_pass(self, current: float, previous: float) -> float:
        return previous + self.alpha * (current - previous)

    def apply(self, raw_magnitude: float, baseline: float, history: HistoryBuffer) -> float:
        """Filter one raw magnitude against the newest history entry.

        With an empty history the filter has no memory and returns the
        denoised value unchanged.
        """
        denoised = abs(raw_magnitude - baseline)
        if not len(history):
            return denoised
        return self.low_pass(denoised, history.newest)
