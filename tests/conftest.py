"""Global test configuration and fixtures."""

import pytest

from step_counter.sources import PushSensorSource
from step_counter.step_detector import StepDetector

GRAVITY = 9.81


class SampleFeeder:
    """Pushes vertical-axis samples into a source on a fixed clock."""

    def __init__(self, source: PushSensorSource, interval_ms: float = 50.0, start_ms: float = 1000.0):
        self.source = source
        self.interval_ms = interval_ms
        self.now_ms = start_ms

    def push(self, magnitude: float, gap_ms: float = None) -> None:
        self.now_ms += self.interval_ms if gap_ms is None else gap_ms
        self.source.push(0.0, 0.0, magnitude, self.now_ms)

    def push_offsets(self, offsets) -> None:
        """Push magnitudes given as offsets above gravity."""
        for offset in offsets:
            self.push(GRAVITY + offset)

    def calibrate(self, count: int = 50, magnitude: float = GRAVITY) -> None:
        for _ in range(count):
            self.push(magnitude)


@pytest.fixture()
def source():
    """Sensor source that grants permission and is available."""
    return PushSensorSource()


@pytest.fixture()
def feeder(source):
    return SampleFeeder(source)


@pytest.fixture()
def step_times():
    """Timestamps (ms) at which the step callback fired."""
    return []


@pytest.fixture()
def detector(source, feeder, step_times):
    """Started detector recording the feeder clock on every step."""

    def on_step(increment):
        assert increment == 1
        step_times.append(feeder.now_ms)

    detector = StepDetector(on_step, source)
    detector.start()
    yield detector
    detector.stop()


@pytest.fixture()
def calibrated_detector(detector, feeder):
    """Detector calibrated on a motionless 9.81 m/s² signal."""
    feeder.calibrate()
    assert detector.calibrator.is_calibrated
    return detector
