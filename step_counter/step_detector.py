"""Step detection algorithm for accelerometer data."""

import math
import threading
from enum import Enum
from typing import Callable, Optional, Union

import structlog

from .calibration import Calibrator
from .config import Settings, settings as default_settings
from .errors import PermissionDenied, SourceUnavailable
from .filters import HistoryBuffer, MagnitudeFilter
from .models import DetectorStats
from .motion import MotionPhase, MotionState, TimingGate
from .peaks import PatternValidator, PeakDetector
from .profiles import ActivityMode, DetectorConfig
from .sources import PermissionStatus, SensorSource, SubscriptionHandle

logger = structlog.get_logger(__name__)

StepCallback = Callable[[int], None]


class DetectorPhase(str, Enum):
    CALIBRATING = "calibrating"
    IDLE = "idle"
    WALKING = "walking"


class StepDetector:
    """Detects individual steps from a stream of accelerometer samples.

    Every sample runs through calibration, magnitude filtering, the history
    buffer, peak detection, pattern validation and the timing gate. Accepted
    steps are reported to ``on_step`` with an increment of 1.

    Public operations are serialized through one re-entrant lock, so samples
    may be delivered on a different thread than control calls.
    """

    def __init__(
        self,
        on_step: StepCallback,
        source: SensorSource,
        settings: Optional[Settings] = None,
    ):
        settings = settings or default_settings
        self.on_step = on_step
        self.source = source
        self.sample_interval_ms = settings.sample_interval_ms
        self.max_sample_magnitude = settings.max_sample_magnitude_ms2

        self.calibrator = Calibrator(
            target_samples=settings.calibration_sample_count,
            min_threshold=settings.min_calibrated_threshold,
            std_multiplier=settings.threshold_std_multiplier,
            gravity=settings.gravity_ms2,
        )
        self.filter = MagnitudeFilter(alpha=settings.low_pass_alpha)
        self.history = HistoryBuffer(capacity=settings.history_size)
        self.config = DetectorConfig(settings.default_activity_mode)
        self.motion = MotionState()
        self.timing = TimingGate(self.config, self.motion)
        self.peak_detector = PeakDetector()
        self.pattern_validator = PatternValidator(
            window=settings.pattern_window,
            min_variation=settings.min_pattern_variation,
            max_variation=settings.max_pattern_variation,
        )

        self.last_sample_time: Optional[float] = None
        self.rejected_samples = 0
        self.subscription: Optional[SubscriptionHandle] = None
        self.is_running = False
        self._lock = threading.RLock()

    @property
    def phase(self) -> DetectorPhase:
        if not self.calibrator.is_calibrated:
            return DetectorPhase.CALIBRATING
        if self.motion.phase is MotionPhase.WALKING:
            return DetectorPhase.WALKING
        return DetectorPhase.IDLE

    def start(self) -> None:
        """Attach to the sensor source and begin detecting steps."""
        with self._lock:
            if self.is_running:
                logger.info("Step detector already running")
                return

            try:
                if self.source.request_permission() != PermissionStatus.GRANTED:
                    raise PermissionDenied("Accelerometer permission denied")
                if not self.source.is_available():
                    raise SourceUnavailable("Accelerometer not available on this device")

                self.source.set_sample_interval(self.sample_interval_ms)
                self.subscription = self.source.subscribe(self.process_sample)
            except Exception as e:
                logger.error("Failed to start step detector", error=str(e))
                raise

            self.is_running = True
            logger.info("Step detector started", sample_interval_ms=self.sample_interval_ms)

    def stop(self) -> None:
        """Detach from the sensor source; all detection state is kept."""
        with self._lock:
            if not self.is_running:
                return

            if self.subscription is not None:
                self.source.unsubscribe(self.subscription)
                self.subscription = None

            self.is_running = False
            logger.info("Step detector stopped")

    def process_sample(self, x: float, y: float, z: float, timestamp_ms: float) -> bool:
        """Run one sample through the pipeline. Returns True if a step fired."""
        with self._lock:
            raw_magnitude = self._checked_magnitude(x, y, z, timestamp_ms)
            if raw_magnitude is None:
                return False

            # An idle gap invalidates the shape of the previous motion window
            if (
                self.last_sample_time is not None
                and timestamp_ms - self.last_sample_time > self.config.max_step_timeout_ms
            ):
                self.history.clear()
            self.last_sample_time = timestamp_ms

            if not self.calibrator.is_calibrated:
                threshold = self.calibrator.consume(x, y, z)
                if threshold is not None:
                    self.config.threshold = threshold
                return False

            filtered = self.filter.apply(raw_magnitude, self.calibrator.baseline, self.history)
            self.history.push(filtered)

            stepped = (
                self.peak_detector.is_peak(self.history, self.config.threshold)
                and self.timing.allows(timestamp_ms)
                and self.pattern_validator.is_valid(self.history)
            )
            if stepped:
                self.timing.accept(timestamp_ms)
                logger.debug(
                    "Step detected",
                    consecutive_peaks=self.motion.consecutive_peaks,
                    timestamp_ms=timestamp_ms,
                )
                self.on_step(1)

            self.timing.expire(timestamp_ms)
            return stepped

    def _checked_magnitude(self, x: float, y: float, z: float, timestamp_ms: float) -> Optional[float]:
        reason = None
        magnitude = None
        if not all(math.isfinite(v) for v in (x, y, z, timestamp_ms)):
            reason = "non-finite value"
        else:
            magnitude = self.filter.magnitude(x, y, z)
            if magnitude > self.max_sample_magnitude:
                reason = "magnitude out of range"
            elif self.last_sample_time is not None and timestamp_ms < self.last_sample_time:
                reason = "timestamp out of order"

        if reason is None:
            return magnitude

        self.rejected_samples += 1
        logger.warning(
            "Rejected accelerometer sample",
            reason=reason,
            x=x,
            y=y,
            z=z,
            timestamp_ms=timestamp_ms,
        )
        return None

    def expire_idle(self, now_ms: float) -> bool:
        """Apply the walking→idle timeout without a new sample."""
        with self._lock:
            return self.timing.expire(now_ms)

    def set_activity_mode(self, mode: Union[ActivityMode, str]) -> ActivityMode:
        with self._lock:
            selected = self.config.apply(mode)
            logger.info(
                "Activity mode changed",
                requested=str(mode),
                mode=selected.value,
                threshold=self.config.threshold,
            )
            return selected

    def reset(self) -> None:
        """Clear motion and history; calibration and config are kept."""
        with self._lock:
            self.history.clear()
            self.motion.reset()
            self.last_sample_time = None

    def full_reset(self) -> None:
        """Reset and also discard calibration, forcing recalibration."""
        with self._lock:
            self.reset()
            self.calibrator.reset()
            logger.info("Step detector fully reset")

    def get_stats(self) -> DetectorStats:
        with self._lock:
            return DetectorStats(
                is_calibrated=self.calibrator.is_calibrated,
                threshold=self.config.threshold,
                baseline=self.calibrator.baseline,
                is_walking=self.motion.is_walking,
                consecutive_peaks=self.motion.consecutive_peaks,
                history_length=len(self.history),
                is_running=self.is_running,
                phase=self.phase.value,
                activity_mode=self.config.mode,
                step_timeout_ms=self.config.step_timeout_ms,
                max_step_timeout_ms=self.config.max_step_timeout_ms,
                rejected_samples=self.rejected_samples,
            )
