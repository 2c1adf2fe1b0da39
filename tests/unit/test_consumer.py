"""Unit tests for the Kafka step counter consumer."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from prometheus_client import REGISTRY

from step_counter.config import settings
from step_counter.consumer import DeviceTally, StepCounterConsumer
from step_counter.profiles import ActivityMode

START = datetime(2025, 6, 1, 8, 0, 0, tzinfo=timezone.utc)


def reading(device_id, index, z=9.81):
    """Accelerometer message as it arrives from Kafka, 50ms apart."""
    return {
        "schema_version": "1.0",
        "timestamp": (START + timedelta(milliseconds=50 * index)).isoformat(),
        "device_id": device_id,
        "x": 0.0,
        "y": 0.0,
        "z": z,
    }


@pytest.fixture()
def consumer():
    consumer = StepCounterConsumer()
    consumer.producer = MagicMock()
    yield consumer
    consumer.cleanup()


def feed(consumer, device_id, offsets, start_index=0):
    steps = 0
    for i, offset in enumerate(offsets):
        steps += consumer._process_message(reading(device_id, start_index + i, 9.81 + offset))
    return steps


def calibrate(consumer, device_id):
    assert feed(consumer, device_id, [0.0] * 50) == 0
    return 50


class TestMessageProcessing:
    """Test readings flowing through per-device detectors."""

    def test_creates_detector_per_device(self, consumer):
        consumer._process_message(reading("phone-1", 0))
        consumer._process_message(reading("watch-1", 0))

        assert set(consumer.detectors) == {"phone-1", "watch-1"}
        assert consumer.detectors["phone-1"].is_running is True
        assert consumer.detectors["phone-1"].calibrator.state.count == 1

    def test_publishes_step_event(self, consumer):
        """Test an accepted step is published keyed by device."""
        index = calibrate(consumer, "phone-1")

        steps = feed(consumer, "phone-1", [0.0, 0.0, 0.0, 6.0, 0.0], start_index=index)

        assert steps == 1
        consumer.producer.send.assert_called_once()
        args, kwargs = consumer.producer.send.call_args
        assert args[0] == settings.kafka_output_topic
        assert kwargs["key"] == b"phone-1"
        event = kwargs["value"]
        assert event["device_id"] == "phone-1"
        assert event["step_count"] == 1
        assert event["total_steps"] == 1
        assert event["daily_steps"] == 1
        assert event["activity_mode"] == "default"

    def test_counts_accumulate(self, consumer):
        index = calibrate(consumer, "phone-1")
        feed(consumer, "phone-1", [0.0, 0.0, 0.0, 6.0, 0.0, 0.0, 0.0, 0.0, 0.0, 6.0, 0.0], start_index=index)

        assert consumer.tallies["phone-1"].total_steps == 2
        assert consumer.producer.send.call_count == 2

    def test_invalid_message_skipped(self, consumer):
        """Test a malformed reading is logged and dropped."""
        assert consumer._process_message({"device_id": "phone-1", "x": "abc"}) == 0
        assert consumer.detectors == {}

    def test_publish_failure_does_not_raise(self, consumer):
        consumer.producer.send.side_effect = Exception("broker down")
        index = calibrate(consumer, "phone-1")

        assert feed(consumer, "phone-1", [0.0, 0.0, 0.0, 6.0, 0.0], start_index=index) == 1

    def test_g_units(self, consumer, monkeypatch):
        """Test readings in g are converted before detection."""
        monkeypatch.setattr(settings, "sample_units", "g")
        for i in range(50):
            consumer._process_message({**reading("phone-1", i), "z": 1.0})

        gravity = settings.gravity_ms2
        steps = 0
        for i, offset in enumerate([0.0, 0.0, 0.0, 6.0, 0.0]):
            message = {**reading("phone-1", 50 + i), "z": 1.0 + offset / gravity}
            steps += consumer._process_message(message)

        assert consumer.sources["phone-1"].scale == gravity
        assert consumer.device_stats("phone-1").baseline == pytest.approx(gravity)
        assert steps == 1
        consumer.producer.send.assert_called_once()

    def test_detector_rejections_counted(self, consumer):
        """Test out-of-order readings count as rejected, not processed."""
        processed = REGISTRY.get_sample_value("step_counter_samples_processed_total")
        rejected = REGISTRY.get_sample_value("step_counter_samples_rejected_total")

        consumer._process_message(reading("phone-1", 5))
        consumer._process_message(reading("phone-1", 2))

        assert consumer.device_stats("phone-1").rejected_samples == 1
        assert REGISTRY.get_sample_value("step_counter_samples_processed_total") == processed + 1
        assert REGISTRY.get_sample_value("step_counter_samples_rejected_total") == rejected + 1


class TestControl:
    """Test activity mode, reset and stats operations."""

    def test_set_activity_mode_all_devices(self, consumer):
        consumer._process_message(reading("phone-1", 0))

        assert consumer.set_activity_mode("running") is ActivityMode.RUNNING
        assert consumer.detectors["phone-1"].config.mode is ActivityMode.RUNNING

        consumer._process_message(reading("watch-1", 0))
        assert consumer.detectors["watch-1"].config.mode is ActivityMode.RUNNING

    def test_set_activity_mode_one_device(self, consumer):
        consumer._process_message(reading("phone-1", 0))
        consumer._process_message(reading("watch-1", 0))

        assert consumer.set_activity_mode("hiking", device_id="watch-1") is ActivityMode.HIKING
        assert consumer.detectors["phone-1"].config.mode is ActivityMode.DEFAULT

    def test_set_activity_mode_unknown_device(self, consumer):
        assert consumer.set_activity_mode("hiking", device_id="missing") is None

    def test_set_activity_mode_holds_device_lock(self, consumer, monkeypatch):
        """Test a global switch cannot interleave with device creation."""
        consumer._process_message(reading("phone-1", 0))
        detector = consumer.detectors["phone-1"]
        held = []
        original = detector.set_activity_mode

        def record(mode):
            held.append(consumer._devices_lock.locked())
            return original(mode)

        monkeypatch.setattr(detector, "set_activity_mode", record)
        consumer.set_activity_mode("running")

        assert held == [True]
        assert consumer.activity_mode is ActivityMode.RUNNING

    def test_reset_device(self, consumer):
        index = calibrate(consumer, "phone-1")
        feed(consumer, "phone-1", [0.0, 0.0, 0.0, 6.0, 0.0], start_index=index)

        assert consumer.reset_device("phone-1") is True
        stats = consumer.device_stats("phone-1")
        assert stats.is_calibrated is True
        assert stats.history_length == 0
        assert consumer.tallies["phone-1"].total_steps == 1

    def test_full_reset_device(self, consumer):
        index = calibrate(consumer, "phone-1")
        feed(consumer, "phone-1", [0.0, 0.0, 0.0, 6.0, 0.0], start_index=index)

        assert consumer.reset_device("phone-1", full=True) is True
        assert consumer.device_stats("phone-1").is_calibrated is False
        assert consumer.tallies["phone-1"].total_steps == 0

    def test_unknown_device(self, consumer):
        assert consumer.reset_device("missing") is False
        assert consumer.device_stats("missing") is None


class TestDeviceTally:
    """Test running step counts."""

    def test_daily_rollover(self):
        tally = DeviceTally()
        tally.add(1, date(2025, 6, 1))
        tally.add(1, date(2025, 6, 1))
        tally.add(1, date(2025, 6, 2))

        assert tally.total_steps == 3
        assert tally.daily_steps == 1


class TestLifecycle:
    """Test Kafka client setup and teardown."""

    def test_start(self):
        with patch("step_counter.consumer.KafkaConsumer") as mock_consumer, patch(
            "step_counter.consumer.KafkaProducer"
        ) as mock_producer, patch.object(StepCounterConsumer, "_consume_messages"):
            consumer = StepCounterConsumer()
            consumer.start()

        assert consumer.running is True
        args, kwargs = mock_consumer.call_args
        assert args[0] == settings.kafka_input_topic
        assert kwargs["group_id"] == settings.kafka_consumer_group_id
        mock_producer.assert_called_once()

    def test_start_failure_propagates(self):
        with patch("step_counter.consumer.KafkaConsumer", side_effect=Exception("no broker")):
            consumer = StepCounterConsumer()
            with pytest.raises(Exception, match="no broker"):
                consumer.start()

        assert consumer.running is False

    def test_cleanup(self):
        consumer = StepCounterConsumer()
        consumer.consumer = MagicMock()
        consumer.producer = MagicMock()
        consumer._process_message(reading("phone-1", 0))

        consumer.cleanup()

        assert consumer.running is False
        consumer.consumer.close.assert_called_once()
        consumer.producer.close.assert_called_once()
        assert consumer.detectors["phone-1"].is_running is False

    def test_consume_loop_processes_batches(self):
        consumer = StepCounterConsumer()
        consumer.consumer = MagicMock()
        message = MagicMock()
        message.value = reading("phone-1", 0)
        legacy = MagicMock()
        legacy.value = {"data": {}}

        def poll(timeout_ms):
            consumer.running = False
            return {"partition": [message, legacy]}

        consumer.consumer.poll.side_effect = poll
        consumer.running = True
        consumer._consume_messages()

        assert list(consumer.detectors) == ["phone-1"]

    def test_idle_polls_expire_walking(self):
        """Test a silent device drops out of walking between polls."""
        consumer = StepCounterConsumer()
        index = calibrate(consumer, "phone-1")
        feed(consumer, "phone-1", [0.0, 0.0, 0.0, 6.0, 0.0], start_index=index)
        assert consumer.device_stats("phone-1").is_walking is True

        polls = []

        def poll(timeout_ms):
            polls.append(timeout_ms)
            if len(polls) == 3:
                consumer.running = False
            return {}

        consumer.consumer = MagicMock()
        consumer.consumer.poll.side_effect = poll
        consumer.running = True
        consumer._consume_messages()

        stats = consumer.device_stats("phone-1")
        assert stats.is_walking is False
        assert stats.consecutive_peaks == 0

    def test_expire_skips_active_devices(self):
        consumer = StepCounterConsumer()
        index = calibrate(consumer, "phone-1")
        feed(consumer, "phone-1", [0.0, 0.0, 0.0, 6.0, 0.0], start_index=index)
        now_ms = START.timestamp() * 1000 + 60_000

        assert consumer.expire_idle_devices(now_ms, skip={"phone-1"}) == 0
        assert consumer.device_stats("phone-1").is_walking is True
        assert consumer.expire_idle_devices(now_ms) == 1
        assert consumer.device_stats("phone-1").is_walking is False
