"""Data models for the audio capture domain."""

from dataclasses import dataclass, replace
from enum import Enum


class SourceKind(Enum):
    """Which input the capture stream is opened on."""

    DEFAULT = "default"  # Whatever the host audio system routes to input
    MICROPHONE = "microphone"  # An explicitly resolved input device


class SampleFormat(Enum):
    """PCM sample encodings understood by the capture backends."""

    PCM_16BIT = "int16"

    @property
    def bytes_per_sample(self) -> int:
        """Size of one sample in bytes."""
        return 2


@dataclass(frozen=True)
class CaptureConfig:
    """One candidate hardware configuration in the fallback list.

    ``buffer_size`` is the read buffer size in bytes. Zero means "not yet
    sized"; the capture engine fills it in from the hardware-reported minimum
    before opening the stream.
    """

    source: SourceKind = SourceKind.DEFAULT
    sample_rate: int = 44100
    channels: int = 1
    sample_format: SampleFormat = SampleFormat.PCM_16BIT
    buffer_size: int = 0
    minimal_buffer: bool = False  # Size at the 2x floor instead of the configured multiplier

    @property
    def bytes_per_frame(self) -> int:
        """Bytes occupied by one sample across all channels."""
        return self.channels * self.sample_format.bytes_per_sample

    def with_buffer_size(self, buffer_size: int) -> "CaptureConfig":
        """Return a copy of this configuration with ``buffer_size`` set."""
        return replace(self, buffer_size=buffer_size)

    def describe(self) -> str:
        """Short human-readable description used in logs and errors."""
        return (
            f"{self.source.value}@{self.sample_rate}Hz/"
            f"{self.channels}ch/{self.sample_format.value}"
        )


@dataclass(frozen=True)
class PcmFrame:
    """A block of captured PCM audio.

    ``data`` is always an independent copy of exactly ``length`` valid bytes
    taken out of the reusable capture buffer, so consumers may keep it.
    """

    data: bytes
    length: int
    sample_rate: int = 44100

    @classmethod
    def from_buffer(cls, buffer: bytearray, length: int, sample_rate: int) -> "PcmFrame":
        """Copy the first ``length`` bytes of a reusable buffer into a new frame."""
        return cls(data=bytes(buffer[:length]), length=length, sample_rate=sample_rate)

    @property
    def payload(self) -> bytes:
        """The valid bytes only, with any stale tail trimmed."""
        if len(self.data) == self.length:
            return self.data
        return self.data[: self.length]
