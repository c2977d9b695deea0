import logging
from dataclasses import asdict, dataclass

import sounddevice as sd

logger = logging.getLogger(__name__)


@dataclass
class AudioDevice:
    """Represents an audio input device."""

    name: str
    index: int
    host_api_index: int
    max_input_channels: int
    default_low_input_latency: float
    default_samplerate: float
    is_default: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)


class AudioDeviceService:
    """Service for discovering audio input devices."""

    def discover_input_devices(self) -> list[AudioDevice]:
        """Discovers available audio input devices and returns them as AudioDevice instances."""
        logger.debug("Discovering audio input devices...")

        devices = sd.query_devices()
        default_input = sd.default.device[0]
        input_devices: list[AudioDevice] = []

        for device in devices:
            if device["max_input_channels"] > 0:  # type: ignore[index]
                input_devices.append(
                    AudioDevice(
                        name=device["name"],  # type: ignore[index]
                        index=device["index"],  # type: ignore[index]
                        host_api_index=device["hostapi"],  # type: ignore[index]
                        max_input_channels=device["max_input_channels"],  # type: ignore[index]
                        default_low_input_latency=device[  # type: ignore[index]
                            "default_low_input_latency"
                        ],
                        default_samplerate=device["default_samplerate"],  # type: ignore[index]
                        is_default=device["index"] == default_input,  # type: ignore[index]
                    )
                )
        logger.debug("Found %d input device(s).", len(input_devices))
        return input_devices

    def has_input_device(self) -> bool:
        """Return True if the host currently exposes at least one usable input.

        Used as the permission-check primitive on desktop hosts, where access to
        the microphone is granted or revoked at the audio-system level.
        """
        try:
            return bool(self.discover_input_devices())
        except sd.PortAudioError as e:
            logger.warning("Could not query audio devices: %s", e)
            return False
