"""Errors raised when starting step detection."""


class StepCounterError(Exception):
    """Base class for step counter errors."""


class PermissionDenied(StepCounterError):
    """Access to the accelerometer was refused."""


class SourceUnavailable(StepCounterError):
    """The accelerometer cannot be acquired on this device."""
