"""Configuration for step counter service."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with LOOM_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="LOOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Service settings
    service_name: str = "step-counter"
    host: str = "0.0.0.0"
    port: int = 8014
    log_level: str = "INFO"
    log_format: str = "json"
    environment: str = "development"

    # Kafka settings
    kafka_bootstrap_servers: str = "kafka:29092"
    kafka_consumer_group_id: str = "step-counter"
    kafka_input_topic: str = "device.sensor.accelerometer.raw"
    kafka_output_topic: str = "device.health.steps.raw"
    kafka_auto_offset_reset: str = "earliest"
    kafka_max_poll_records: int = 100

    # Calibration settings
    calibration_sample_count: int = 50
    min_calibrated_threshold: float = 1.5  # m/s²
    threshold_std_multiplier: float = 2.0
    gravity_ms2: float = 9.81  # Baseline before calibration

    # Filtering settings
    history_size: int = 10
    low_pass_alpha: float = 0.8

    # Walking pattern settings
    pattern_window: int = 5
    min_pattern_variation: float = 0.3
    max_pattern_variation: float = 10.0

    # Sensor settings
    sample_interval_ms: int = 16  # ~60Hz
    sample_units: str = "ms2"  # "ms2" or "g"
    max_sample_magnitude_ms2: float = 156.96  # 16g, larger readings are rejected

    default_activity_mode: str = "default"


settings = Settings()
