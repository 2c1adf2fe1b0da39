"""Prometheus metrics for the step counter."""

from prometheus_client import Counter, Gauge

SAMPLES_PROCESSED = Counter(
    "step_counter_samples_processed_total",
    "Accelerometer readings accepted by step detectors",
)
SAMPLES_REJECTED = Counter(
    "step_counter_samples_rejected_total",
    "Accelerometer messages that failed parsing or were rejected by a detector",
)
STEPS_DETECTED = Counter(
    "step_counter_steps_detected_total",
    "Steps accepted across all devices",
)
DEVICES_TRACKED = Gauge(
    "step_counter_devices_tracked",
    "Devices with an active step detector",
)
