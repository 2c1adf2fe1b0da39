"""Sensor sources that push accelerometer samples into a detector."""

import itertools
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

from .models import AccelerometerReading

SampleCallback = Callable[[float, float, float, float], None]


class PermissionStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


class SubscriptionHandle:
    """Opaque token returned by :meth:`SensorSource.subscribe`."""

    _ids = itertools.count(1)

    def __init__(self):
        self.id = next(self._ids)

    def __repr__(self) -> str:
        return f"SubscriptionHandle({self.id})"


class SensorSource(Protocol):
    """Capability interface the detector uses to attach to a sensor."""

    def request_permission(self) -> PermissionStatus: ...

    def is_available(self) -> bool: ...

    def set_sample_interval(self, interval_ms: int) -> None: ...

    def subscribe(self, callback: SampleCallback) -> SubscriptionHandle: ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...


class PushSensorSource:
    """In-memory source; samples are pushed by the owner and fanned out.

    Samples pushed while nobody is subscribed are dropped.
    """

    def __init__(self, permission: PermissionStatus = PermissionStatus.GRANTED, available: bool = True):
        self.permission = permission
        self.available = available
        self.sample_interval_ms: Optional[int] = None
        self._subscribers: Dict[SubscriptionHandle, SampleCallback] = {}

    def request_permission(self) -> PermissionStatus:
        return self.permission

    def is_available(self) -> bool:
        return self.available

    def set_sample_interval(self, interval_ms: int) -> None:
        self.sample_interval_ms = interval_ms

    def subscribe(self, callback: SampleCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle()
        self._subscribers[handle] = callback
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self._subscribers.pop(handle, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def push(self, x: float, y: float, z: float, timestamp_ms: float) -> None:
        # Copy so callbacks may unsubscribe while being notified
        for callback in list(self._subscribers.values()):
            callback(x, y, z, timestamp_ms)


class DeviceSensorSource(PushSensorSource):
    """Source for one device, fed readings from the accelerometer topic."""

    def __init__(self, device_id: str, units: str = "ms2", gravity: float = 9.81):
        super().__init__()
        self.device_id = device_id
        self.scale = gravity if units.lower() == "g" else 1.0
        self.last_reading: Optional[AccelerometerReading] = None

    def push_reading(self, reading: AccelerometerReading) -> None:
        self.last_reading = reading
        self.push(
            reading.x * self.scale,
            reading.y * self.scale,
            reading.z * self.scale,
            reading.timestamp_ms,
        )
