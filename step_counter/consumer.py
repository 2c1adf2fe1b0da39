"""Kafka consumer for step counting."""

import json
import signal
import sys
import threading
import time
import uuid
from datetime import date, datetime, timezone
from functools import partial
from typing import Dict, Optional, Union

import structlog
from kafka import KafkaConsumer, KafkaProducer
from pydantic import ValidationError

from . import metrics
from .config import settings
from .logging_setup import setup_logging
from .models import AccelerometerReading, DetectorStats, StepEvent
from .profiles import ActivityMode, resolve_mode
from .sources import DeviceSensorSource
from .step_detector import StepDetector

logger = structlog.get_logger(__name__)


def _utc_date(timestamp: datetime) -> date:
    if timestamp.tzinfo is None:
        return timestamp.date()
    return timestamp.astimezone(timezone.utc).date()


class DeviceTally:
    """Running step counts for one device."""

    def __init__(self):
        self.total_steps = 0
        self.daily_steps = 0
        self.day: Optional[date] = None

    def add(self, steps: int, day: date) -> None:
        # Reset daily counter if new day
        if day != self.day:
            self.daily_steps = 0
            self.day = day
        self.total_steps += steps
        self.daily_steps += steps


class StepCounterConsumer:
    """Consumes accelerometer data and counts steps."""

    def __init__(self):
        self.consumer: Optional[KafkaConsumer] = None
        self.producer: Optional[KafkaProducer] = None
        # One source, detector and tally per device
        self.sources: Dict[str, DeviceSensorSource] = {}
        self.detectors: Dict[str, StepDetector] = {}
        self.tallies: Dict[str, DeviceTally] = {}
        self.activity_mode = resolve_mode(settings.default_activity_mode)
        self.running = False
        self._devices_lock = threading.Lock()

    def start(self):
        """Start consuming messages."""
        try:
            self.consumer = KafkaConsumer(
                settings.kafka_input_topic,
                bootstrap_servers=settings.kafka_bootstrap_servers,
                group_id=settings.kafka_consumer_group_id,
                value_deserializer=lambda m: json.loads(m.decode("utf-8")),
                auto_offset_reset=settings.kafka_auto_offset_reset,
                enable_auto_commit=True,
                max_poll_records=settings.kafka_max_poll_records,
            )

            self.producer = KafkaProducer(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
                compression_type="lz4",
            )

            logger.info(
                "Started step counter consumer",
                topic=settings.kafka_input_topic,
                output_topic=settings.kafka_output_topic,
            )

            self.running = True
            self._consume_messages()

        except Exception as e:
            logger.error("Failed to start consumer", error=str(e))
            raise

    def _consume_messages(self):
        """Main message consumption loop."""
        message_count = 0
        step_count = 0

        while self.running:
            try:
                message_batch = self.consumer.poll(timeout_ms=1000)
                active = set()

                for topic_partition, messages in message_batch.items():
                    for message in messages:
                        message_count += 1

                        # Skip old data structure messages
                        if "data" in message.value:
                            continue

                        step_count += self._process_message(message.value)
                        device_id = message.value.get("device_id")
                        if device_id is not None:
                            active.add(device_id)

                        if message_count % 1000 == 0:
                            logger.info(
                                "Consumer progress",
                                messages=message_count,
                                steps=step_count,
                                devices=len(self.detectors),
                            )

                self.expire_idle_devices(time.time() * 1000, skip=active)

            except KeyboardInterrupt:
                logger.info("Received interrupt signal")
                break
            except Exception as e:
                logger.error("Error in consumption loop", error=str(e))

    def _process_message(self, message_data: dict) -> int:
        """Feed one accelerometer reading to its device. Returns steps accepted."""
        try:
            reading = AccelerometerReading(**message_data)
        except (ValidationError, TypeError) as e:
            metrics.SAMPLES_REJECTED.inc()
            logger.error("Failed to parse accelerometer reading", error=str(e), data=message_data)
            return 0

        detector = self.get_or_create_detector(reading.device_id)
        tally = self.tallies[reading.device_id]
        steps_before = tally.total_steps
        rejected_before = detector.rejected_samples

        self.sources[reading.device_id].push_reading(reading)

        if detector.rejected_samples > rejected_before:
            metrics.SAMPLES_REJECTED.inc()
        else:
            metrics.SAMPLES_PROCESSED.inc()

        return tally.total_steps - steps_before

    def expire_idle_devices(self, now_ms: float, skip=()) -> int:
        """Drop walking devices that have gone silent back to idle.

        Returns the number of devices that changed state.
        """
        with self._devices_lock:
            detectors = [
                detector
                for device_id, detector in self.detectors.items()
                if device_id not in skip
            ]

        expired = 0
        for detector in detectors:
            if detector.expire_idle(now_ms):
                expired += 1
        return expired

    def get_or_create_detector(self, device_id: str) -> StepDetector:
        with self._devices_lock:
            detector = self.detectors.get(device_id)
            if detector is not None:
                return detector

            source = DeviceSensorSource(
                device_id, units=settings.sample_units, gravity=settings.gravity_ms2
            )
            detector = StepDetector(partial(self._on_step, device_id), source)
            detector.set_activity_mode(self.activity_mode)
            detector.start()

            self.sources[device_id] = source
            self.tallies[device_id] = DeviceTally()
            self.detectors[device_id] = detector
            metrics.DEVICES_TRACKED.set(len(self.detectors))

        logger.info("Created step detector for device", device_id=device_id)
        return detector

    def _on_step(self, device_id: str, increment: int) -> None:
        """Step callback: update counts and publish a step event."""
        reading = self.sources[device_id].last_reading
        timestamp = reading.timestamp if reading else datetime.now(timezone.utc)

        tally = self.tallies[device_id]
        tally.add(increment, _utc_date(timestamp))
        metrics.STEPS_DETECTED.inc(increment)

        event = StepEvent(
            timestamp=timestamp,
            device_id=device_id,
            message_id=str(uuid.uuid4()),
            step_count=increment,
            total_steps=tally.total_steps,
            daily_steps=tally.daily_steps,
            activity_mode=self.detectors[device_id].config.mode,
        )
        self._publish(event)

    def _publish(self, event: StepEvent) -> None:
        if self.producer is None:
            return

        try:
            self.producer.send(
                settings.kafka_output_topic,
                key=event.device_id.encode("utf-8"),
                value=event.model_dump(mode="json"),
            )
        except Exception as e:
            logger.error("Failed to publish step event", device_id=event.device_id, error=str(e))
            return

        logger.debug(
            "Published step event",
            device_id=event.device_id,
            total_steps=event.total_steps,
        )

    def set_activity_mode(
        self, mode: Union[ActivityMode, str], device_id: Optional[str] = None
    ) -> Optional[ActivityMode]:
        """Switch profile for one device, or for every device when none is given.

        Returns None when ``device_id`` is unknown.
        """
        if device_id is not None:
            detector = self.detectors.get(device_id)
            if detector is None:
                return None
            return detector.set_activity_mode(mode)

        # New devices pick up self.activity_mode under the same lock
        with self._devices_lock:
            self.activity_mode = resolve_mode(mode)
            for detector in self.detectors.values():
                detector.set_activity_mode(self.activity_mode)
            return self.activity_mode

    def reset_device(self, device_id: str, full: bool = False) -> bool:
        """Reset a device's detector; a full reset also zeroes its step counts."""
        detector = self.detectors.get(device_id)
        if detector is None:
            return False

        if full:
            detector.full_reset()
            self.tallies[device_id] = DeviceTally()
        else:
            detector.reset()

        logger.info("Reset step detector", device_id=device_id, full=full)
        return True

    def device_stats(self, device_id: str) -> Optional[DetectorStats]:
        detector = self.detectors.get(device_id)
        if detector is None:
            return None
        return detector.get_stats()

    def cleanup(self):
        """Clean up resources."""
        self.running = False

        for detector in list(self.detectors.values()):
            detector.stop()

        if self.consumer:
            try:
                self.consumer.close()
                logger.info("Closed Kafka consumer")
            except Exception as e:
                logger.error("Error closing consumer", error=str(e))

        if self.producer:
            try:
                self.producer.close()
                logger.info("Closed Kafka producer")
            except Exception as e:
                logger.error("Error closing producer", error=str(e))


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    logger.info("Received signal", signum=signum)
    sys.exit(0)


def main():
    """Main entry point."""
    setup_logging(settings.service_name, settings)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    consumer = StepCounterConsumer()

    try:
        consumer.start()
    except Exception as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)
    finally:
        consumer.cleanup()


if __name__ == "__main__":
    main()
