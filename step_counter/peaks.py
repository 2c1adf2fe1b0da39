"""Peak detection and walking-pattern validation over the history buffer."""

from .filters import HistoryBuffer

PEAK_WINDOW = 4


class PeakDetector:
    """Strict local-maximum test with a one-sample lag.

    The candidate is the second-newest entry; it is confirmed once a lower
    sample follows it.
    """

    def is_peak(self, history: HistoryBuffer, threshold: float) -> bool:
        if len(history) < PEAK_WINDOW:
            return False

        before_before, before, candidate, current = history.last(PEAK_WINDOW)
        return (
            candidate > current
            and candidate > before
            and candidate > before_before
            and candidate > threshold
        )


class PatternValidator:
    """Rejects peaks whose recent variation does not look like locomotion."""

    def __init__(
        self,
        window: int = 5,
        min_variation: float = 0.3,
        max_variation: float = 10.0,
    ):
        self.window = window
        self.min_variation = min_variation
        self.max_variation = max_variation

    def average_variation(self, history: HistoryBuffer) -> float:
        recent = history.last(self.window)
        diffs = [abs(b - a) for a, b in zip(recent, recent[1:])]
        return sum(diffs) / len(diffs)

    def is_valid(self, history: HistoryBuffer) -> bool:
        # Too little data to judge the shape yet
        if len(history) < self.window:
            return True

        avg_variation = self.average_variation(history)
        return self.min_variation < avg_variation < self.max_variation
