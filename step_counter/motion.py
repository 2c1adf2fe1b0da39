"""Walking/idle state machine and the step timing gate."""

from enum import Enum
from typing import Optional

import structlog

from .profiles import DetectorConfig

logger = structlog.get_logger(__name__)


class MotionPhase(str, Enum):
    IDLE = "idle"
    WALKING = "walking"


class MotionState:
    """Timing of accepted steps.

    ``last_step_time`` is None until the first step is ever accepted.
    """

    def __init__(self):
        self.last_step_time: Optional[float] = None
        self.phase = MotionPhase.IDLE
        self.consecutive_peaks = 0

    @property
    def is_walking(self) -> bool:
        return self.phase is MotionPhase.WALKING

    def reset(self) -> None:
        self.last_step_time = None
        self.phase = MotionPhase.IDLE
        self.consecutive_peaks = 0


class TimingGate:
    """Debounce and cadence rules deciding whether a peak becomes a step."""

    def __init__(self, config: DetectorConfig, state: MotionState):
        self.config = config
        self.state = state

    def allows(self, now_ms: float) -> bool:
        """Check a confirmed peak at ``now_ms`` against the step timing rules."""
        state = self.state
        if state.last_step_time is None:
            return True

        elapsed = now_ms - state.last_step_time
        if elapsed <= self.config.step_timeout_ms:
            return False
        return (
            elapsed < self.config.max_step_timeout_ms
            or state.phase is MotionPhase.IDLE
        )

    def accept(self, now_ms: float) -> None:
        state = self.state
        state.last_step_time = now_ms
        state.consecutive_peaks += 1
        state.phase = MotionPhase.WALKING

    def expire(self, now_ms: float) -> bool:
        """Drop back to idle after ``max_step_timeout_ms`` without a step.

        Returns True when the transition happened.
        """
        state = self.state
        if not state.is_walking:
            return False
        if now_ms - state.last_step_time <= self.config.max_step_timeout_ms:
            return False

        logger.info(
            "Walking state reset due to inactivity",
            consecutive_peaks=state.consecutive_peaks,
        )
        state.phase = MotionPhase.IDLE
        state.consecutive_peaks = 0
        return True
