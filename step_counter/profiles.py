"""Activity profiles: named threshold/timeout bundles per locomotion style."""

from enum import Enum
from typing import Dict, NamedTuple, Union


class ActivityMode(str, Enum):
    """Selectable activity profiles."""
    WALKING = "walking"
    RUNNING = "running"
    HIKING = "hiking"
    DEFAULT = "default"


class ActivityProfile(NamedTuple):
    threshold: float
    step_timeout_ms: float
    max_step_timeout_ms: float


PROFILES: Dict[ActivityMode, ActivityProfile] = {
    ActivityMode.WALKING: ActivityProfile(1.5, 400, 2000),
    ActivityMode.RUNNING: ActivityProfile(2.5, 200, 1000),
    ActivityMode.HIKING: ActivityProfile(2.0, 500, 3000),
    ActivityMode.DEFAULT: ActivityProfile(1.8, 250, 2000),
}


def resolve_mode(mode: Union[ActivityMode, str, None]) -> ActivityMode:
    """Map a mode name onto a known profile, falling back to default."""
    if isinstance(mode, ActivityMode):
        return mode
    try:
        return ActivityMode(str(mode).strip().lower())
    except ValueError:
        return ActivityMode.DEFAULT


class DetectorConfig:
    """Mutable detection parameters, overwritten by profile selection."""

    def __init__(self, mode: Union[ActivityMode, str] = ActivityMode.DEFAULT):
        self.mode = ActivityMode.DEFAULT
        self.threshold = 0.0
        self.step_timeout_ms = 0.0
        self.max_step_timeout_ms = 0.0
        self.apply(mode)

    def apply(self, mode: Union[ActivityMode, str, None]) -> ActivityMode:
        """Overwrite threshold and timeouts from the named profile."""
        self.mode = resolve_mode(mode)
        profile = PROFILES[self.mode]
        self.threshold = profile.threshold
        self.step_timeout_ms = profile.step_timeout_ms
        self.max_step_timeout_ms = profile.max_step_timeout_ms
        return self.mode
