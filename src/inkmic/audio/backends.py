"""Hardware seam for audio capture.

The capture engine only talks to ``CaptureBackend``/``CaptureHandle``. The
production implementation in ``sounddevice_backend`` wraps PortAudio; tests
supply their own backend.
"""

from abc import ABC, abstractmethod
from enum import IntEnum

from inkmic.audio.models import CaptureConfig


class ReadStatus(IntEnum):
    """Negative status codes a ``CaptureHandle.read_into`` call may return."""

    ERROR = -1
    ERROR_BAD_VALUE = -2
    ERROR_INVALID_OPERATION = -3
    ERROR_DEAD_OBJECT = -6

    @classmethod
    def describe(cls, code: int) -> str:
        """Return a readable name for a read status code."""
        try:
            return cls(code).name
        except ValueError:
            return f"UNKNOWN({code})"


class CaptureHandle(ABC):
    """An opened, not yet started, hardware capture stream."""

    @property
    @abstractmethod
    def initialized(self) -> bool:
        """Whether the hardware accepted the configuration."""

    @abstractmethod
    def start(self) -> None:
        """Begin recording into the hardware buffer."""

    @abstractmethod
    def read_into(self, buffer: bytearray) -> int:
        """Block until data is available and copy it into ``buffer``.

        Returns:
            Number of valid bytes written at the start of ``buffer``, or a
            negative ``ReadStatus`` code on a device error.
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop recording. Safe to call on a stream that never started."""

    @abstractmethod
    def release(self) -> None:
        """Release the hardware resource. The handle is unusable afterwards."""


class CaptureBackend(ABC):
    """Factory for capture handles plus the hardware's buffer-size query."""

    @abstractmethod
    def min_buffer_size(self, config: CaptureConfig) -> int:
        """Return the minimum read buffer size in bytes for ``config``.

        Raises:
            InvalidCaptureParameters: If the hardware rejects the combination.
        """

    @abstractmethod
    def open(self, config: CaptureConfig) -> CaptureHandle:
        """Open a capture handle for a fully sized ``config``."""
