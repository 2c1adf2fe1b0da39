"""Data models for step counting."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .profiles import ActivityMode


class AccelerometerReading(BaseModel):
    """Accelerometer reading from Kafka."""
    schema_version: str
    timestamp: datetime
    device_id: str
    x: float
    y: float
    z: float
    accuracy: Optional[int] = None

    @property
    def timestamp_ms(self) -> float:
        return self.timestamp.timestamp() * 1000.0


class StepEvent(BaseModel):
    """Step event to be published."""
    schema_version: str = Field(default="1.0.0")
    timestamp: datetime
    device_id: str
    message_id: str = Field(description="Unique message identifier")

    step_count: int = Field(ge=1, description="Steps accepted by this event")
    total_steps: int = Field(ge=0, description="Steps since the detector was created")
    daily_steps: int = Field(ge=0, description="Steps since UTC midnight")

    activity_mode: ActivityMode = Field(
        default=ActivityMode.DEFAULT, description="Profile active when the step fired"
    )


class DetectorStats(BaseModel):
    """Read-only snapshot of a step detector."""
    is_calibrated: bool
    threshold: float
    baseline: float
    is_walking: bool
    consecutive_peaks: int
    history_length: int
    is_running: bool

    phase: str = Field(description="calibrating, idle or walking")
    activity_mode: ActivityMode
    step_timeout_ms: float
    max_step_timeout_ms: float
    rejected_samples: int = 0


class ActivityModeUpdate(BaseModel):
    """Request body for switching activity profile."""
    mode: str = Field(description="walking, running, hiking or default")
    device_id: Optional[str] = Field(
        default=None, description="Apply to one device only; all devices when omitted"
    )
