"""Configuration models for InkMic.

This module contains all configuration-related Pydantic models used throughout the application.
"""

import socket

from pydantic import BaseModel, Field, field_validator

from inkmic.audio.models import CaptureConfig, SourceKind


class LoggingConfig(BaseModel):
    """Structlog-based logging configuration."""

    level: str = "INFO"
    json_logs: bool | None = None  # None = auto-detect based on environment
    include_caller: bool = False  # Include file:line info (useful for debugging)
    extra_fields: dict[str, str] = Field(default_factory=lambda: {"service": "inkmic"})


class CaptureConfigModel(BaseModel):
    """One entry of the capture fallback list."""

    source: SourceKind = SourceKind.DEFAULT
    sample_rate: int = 44100
    channels: int = 1
    minimal_buffer: bool = False

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, v: int) -> int:
        """Sample rates must be positive."""
        if v <= 0:
            raise ValueError(f"Invalid sample rate {v}")
        return v

    def to_capture_config(self) -> CaptureConfig:
        """Convert to the runtime capture configuration."""
        return CaptureConfig(
            source=self.source,
            sample_rate=self.sample_rate,
            channels=self.channels,
            minimal_buffer=self.minimal_buffer,
        )


def _default_capture_configs() -> list[CaptureConfigModel]:
    return [
        CaptureConfigModel(source=SourceKind.DEFAULT, sample_rate=44100),
        CaptureConfigModel(source=SourceKind.MICROPHONE, sample_rate=44100),
        CaptureConfigModel(source=SourceKind.MICROPHONE, sample_rate=16000, minimal_buffer=True),
    ]


class MicConfig(BaseModel):
    """Configuration settings for the InkMic application."""

    config_version: str = "1.0.0"

    # Discovery
    device_name: str = Field(default_factory=socket.gethostname)
    broadcast_port: int = 12346  # Advertised port, also the handshake listening port
    service_type: str = "_androidmic._udp.local."
    listener_poll_interval: float = 0.25  # Seconds between cancellation checks

    # Audio Configuration
    audio_device_index: int = -1  # -1 = system default input
    capture_configs: list[CaptureConfigModel] = Field(default_factory=_default_capture_configs)
    buffer_multiplier: int = 4  # Read buffer size as a multiple of the hardware minimum

    # Streaming
    send_queue_size: int = 64

    # Visualization
    visualization_size: int = 100
    smoothing_window: int = 3
    max_fft_size: int = 1024
    tick_interval_ms: int = 100

    # Logging settings
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("broadcast_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate the advertised port."""
        if not 1 <= v <= 65535:
            raise ValueError(f"Port {v} is outside 1-65535")
        return v

    @field_validator("buffer_multiplier")
    @classmethod
    def validate_buffer_multiplier(cls, v: int) -> int:
        """Buffers must be at least twice the hardware minimum."""
        if v < 2:
            raise ValueError("buffer_multiplier must be at least 2")
        return v

    @field_validator("max_fft_size")
    @classmethod
    def validate_fft_size(cls, v: int) -> int:
        """The FFT only supports power-of-two lengths."""
        if v < 1 or v & (v - 1):
            raise ValueError(f"max_fft_size must be a power of two, got {v}")
        return v

    @field_validator("capture_configs")
    @classmethod
    def validate_capture_configs(cls, v: list[CaptureConfigModel]) -> list[CaptureConfigModel]:
        """At least one capture configuration is required."""
        if not v:
            raise ValueError("capture_configs must not be empty")
        return v

    def fallback_configs(self) -> list[CaptureConfig]:
        """Runtime capture configurations in fallback order."""
        return [entry.to_capture_config() for entry in self.capture_configs]

    @property
    def tick_interval(self) -> float:
        """Elapsed-time tick interval in seconds."""
        return self.tick_interval_ms / 1000.0
