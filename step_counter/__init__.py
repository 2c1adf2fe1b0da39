"""
Step Counter - pedometer step detection for Loom accelerometer streams
"""

__version__ = "1.0.0"

from step_counter.errors import PermissionDenied, SourceUnavailable, StepCounterError
from step_counter.profiles import ActivityMode
from step_counter.sources import PermissionStatus, PushSensorSource, SensorSource
from step_counter.step_detector import DetectorPhase, StepDetector

__all__ = [
    "ActivityMode",
    "DetectorPhase",
    "PermissionDenied",
    "PermissionStatus",
    "PushSensorSource",
    "SensorSource",
    "SourceUnavailable",
    "StepCounterError",
    "StepDetector",
]
