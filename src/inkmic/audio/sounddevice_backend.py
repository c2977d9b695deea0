"""PortAudio capture backend built on sounddevice."""

import logging
import math

import sounddevice as sd

from inkmic.audio.backends import CaptureBackend, CaptureHandle, ReadStatus
from inkmic.audio.models import CaptureConfig, SourceKind
from inkmic.errors import InvalidCaptureParameters

logger = logging.getLogger(__name__)

MIN_BLOCK_FRAMES = 256


class SoundDeviceHandle(CaptureHandle):
    """Blocking int16 capture through a ``sounddevice.RawInputStream``."""

    def __init__(self, config: CaptureConfig, device: int | None) -> None:
        self.config = config
        self.device = device
        self._stream: sd.RawInputStream | None = None
        try:
            self._stream = sd.RawInputStream(
                device=device,
                samplerate=config.sample_rate,
                channels=config.channels,
                dtype=config.sample_format.value,
                blocksize=config.buffer_size // config.bytes_per_frame,
            )
        except (sd.PortAudioError, ValueError) as e:
            logger.warning("RawInputStream rejected %s: %s", config.describe(), e)
            self._stream = None

    @property
    def initialized(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        if self._stream is None:
            raise RuntimeError("Capture stream was not initialized")
        self._stream.start()

    def read_into(self, buffer: bytearray) -> int:
        if self._stream is None or self._stream.closed:
            return ReadStatus.ERROR_INVALID_OPERATION
        frames = len(buffer) // self.config.bytes_per_frame
        try:
            data, overflowed = self._stream.read(frames)
        except sd.PortAudioError as e:
            logger.error("PortAudio read failed: %s", e)
            return ReadStatus.ERROR_DEAD_OBJECT
        if overflowed:
            logger.warning("Audio input overflow, samples were dropped")
        chunk = bytes(data)
        buffer[: len(chunk)] = chunk
        return len(chunk)

    def stop(self) -> None:
        if self._stream is not None and self._stream.active:
            self._stream.stop()

    def release(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class SoundDeviceBackend(CaptureBackend):
    """PortAudio capture backend.

    ``SourceKind.DEFAULT`` lets PortAudio pick the default input.
    ``SourceKind.MICROPHONE`` pins the stream to ``device_index`` or, when that
    is -1, to the index the default input currently resolves to.
    """

    def __init__(self, device_index: int = -1) -> None:
        self.device_index = device_index

    def _resolve_device(self, source: SourceKind) -> int | None:
        if source is SourceKind.DEFAULT:
            return None
        if self.device_index >= 0:
            return self.device_index
        info = sd.query_devices(kind="input")
        return int(info["index"])  # type: ignore[index]

    def min_buffer_size(self, config: CaptureConfig) -> int:
        try:
            device = self._resolve_device(config.source)
            sd.check_input_settings(
                device=device,
                channels=config.channels,
                dtype=config.sample_format.value,
                samplerate=config.sample_rate,
            )
            info = sd.query_devices(device, kind="input")
        except (sd.PortAudioError, ValueError) as e:
            raise InvalidCaptureParameters(str(e)) from e

        latency = float(info["default_low_input_latency"])  # type: ignore[index]
        frames = max(math.ceil(latency * config.sample_rate), MIN_BLOCK_FRAMES)
        return frames * config.bytes_per_frame

    def open(self, config: CaptureConfig) -> CaptureHandle:
        device = self._resolve_device(config.source)
        logger.debug("Opening %s on device %s", config.describe(), device)
        return SoundDeviceHandle(config, device)
