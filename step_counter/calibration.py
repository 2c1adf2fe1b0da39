"""Auto-calibration of the gravity baseline and trigger threshold."""

import math
from typing import List, Optional

import numpy as np
import structlog

logger = structlog.get_logger(__name__)


class CalibrationState:
    """Raw magnitudes collected until the baseline is frozen."""

    def __init__(self, baseline: float):
        self.samples: List[float] = []
        self.count = 0
        self.baseline = baseline
        self.std_dev = 0.0
        self.is_calibrated = False


class Calibrator:
    """Consumes the first samples to establish baseline and threshold.

    Calibration is single-shot: once ``target_samples`` magnitudes have been
    collected the state is frozen until :meth:`reset`.
    """

    def __init__(
        self,
        target_samples: int = 50,
        min_threshold: float = 1.5,
        std_multiplier: float = 2.0,
        gravity: float = 9.81,
    ):
        self.target_samples = target_samples
        self.min_threshold = min_threshold
        self.std_multiplier = std_multiplier
        self.gravity = gravity
        self.state = CalibrationState(gravity)

    @property
    def is_calibrated(self) -> bool:
        return self.state.is_calibrated

    @property
    def baseline(self) -> float:
        return self.state.baseline

    def consume(self, x: float, y: float, z: float) -> Optional[float]:
        """Record one calibration sample.

        Returns the calibrated threshold on the sample that completes
        calibration, None otherwise.
        """
        state = self.state
        state.samples.append(math.sqrt(x * x + y * y + z * z))
        state.count += 1

        if state.count < self.target_samples:
            return None

        magnitudes = np.asarray(state.samples, dtype=float)
        state.baseline = float(np.mean(magnitudes))
        state.std_dev = float(np.std(magnitudes))  # population (ddof=0)
        state.is_calibrated = True
        state.samples = []

        threshold = max(self.min_threshold, self.std_multiplier * state.std_dev)
        logger.info(
            "Step detector calibrated",
            baseline=round(state.baseline, 2),
            std_dev=round(state.std_dev, 3),
            threshold=round(threshold, 2),
        )
        return threshold

    def reset(self) -> None:
        self.state = CalibrationState(self.gravity)
