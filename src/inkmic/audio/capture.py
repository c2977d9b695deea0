import logging
import threading
from collections.abc import Callable, Sequence

from inkmic.audio.backends import CaptureBackend, CaptureHandle, ReadStatus
from inkmic.audio.models import CaptureConfig, PcmFrame, SourceKind
from inkmic.errors import (
    ConfigurationError,
    InvalidCaptureParameters,
    TransientIoError,
)

logger = logging.getLogger(__name__)

MIN_BUFFER_MULTIPLIER = 2

DEFAULT_FALLBACK_CONFIGS: tuple[CaptureConfig, ...] = (
    CaptureConfig(source=SourceKind.DEFAULT, sample_rate=44100),
    CaptureConfig(source=SourceKind.MICROPHONE, sample_rate=44100),
    CaptureConfig(source=SourceKind.MICROPHONE, sample_rate=16000, minimal_buffer=True),
)

FrameCallback = Callable[[PcmFrame], None]
ErrorCallback = Callable[[Exception], None]


class CaptureEngine:
    """Acquires a hardware capture stream and runs the read loop on its own thread.

    ``start`` returns as soon as the loop thread is running. ``stop`` blocks
    until that thread has exited and only then releases the hardware handle,
    so no frame or error callback fires after ``stop`` returns.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        configs: Sequence[CaptureConfig] = DEFAULT_FALLBACK_CONFIGS,
        buffer_multiplier: int = 4,
    ) -> None:
        """Initialize the CaptureEngine.

        Args:
            backend: Hardware backend used to size and open capture streams
            configs: Ordered fallback list; the first one that initializes wins
            buffer_multiplier: Read buffer size as a multiple of the hardware minimum
        """
        if not configs:
            raise ValueError("At least one capture configuration is required")
        self.backend = backend
        self.configs = tuple(configs)
        self.buffer_multiplier = max(buffer_multiplier, MIN_BUFFER_MULTIPLIER)
        self.active_config: CaptureConfig | None = None

        self._lock = threading.Lock()
        self._handle: CaptureHandle | None = None
        self._thread: threading.Thread | None = None
        self._cancel = threading.Event()
        self._release_on_exit = False

    @property
    def is_capturing(self) -> bool:
        """True while the read loop thread is alive."""
        thread = self._thread
        return thread is not None and thread.is_alive()

    def _buffer_size_for(self, config: CaptureConfig, min_buffer: int) -> int:
        multiplier = MIN_BUFFER_MULTIPLIER if config.minimal_buffer else self.buffer_multiplier
        size = min_buffer * multiplier
        # Keep whole sample frames so reads never split a sample
        return size - size % config.bytes_per_frame

    def _try_config(self, config: CaptureConfig) -> tuple[CaptureHandle | None, str]:
        try:
            min_buffer = self.backend.min_buffer_size(config)
        except InvalidCaptureParameters as e:
            logger.warning("Invalid parameters for %s: %s", config.describe(), e)
            return None, f"invalid parameters ({e})"
        if min_buffer <= 0:
            return None, f"invalid minimum buffer size {min_buffer}"

        sized = config.with_buffer_size(self._buffer_size_for(config, min_buffer))
        logger.debug("Trying %s with a %d byte buffer", sized.describe(), sized.buffer_size)
        try:
            handle = self.backend.open(sized)
        except Exception as e:
            logger.warning("Opening %s raised: %s", sized.describe(), e)
            return None, f"open failed ({e})"

        if not handle.initialized:
            logger.warning("Capture handle for %s failed to initialize", sized.describe())
            handle.release()
            return None, "not initialized"

        self.active_config = sized
        return handle, ""

    def acquire(self) -> CaptureHandle:
        """Walk the fallback list and return the first initialized handle.

        Raises:
            ConfigurationError: If every configuration was rejected.
        """
        attempts: list[tuple[CaptureConfig, str]] = []
        for config in self.configs:
            handle, reason = self._try_config(config)
            if handle is not None:
                if attempts:
                    logger.info("Falling back to %s", config.describe())
                return handle
            attempts.append((config, reason))
        raise ConfigurationError(attempts)

    def start(self, on_frame: FrameCallback, on_error: ErrorCallback | None = None) -> None:
        """Start capturing on a background thread.

        Args:
            on_frame: Called with every captured frame, on the capture thread
            on_error: Called once with a ``TransientIoError`` if the loop aborts

        Raises:
            ConfigurationError: If no configuration in the fallback list works.
            TransientIoError: If the chosen stream refuses to start.
        """
        with self._lock:
            if self.is_capturing:
                logger.warning("Already capturing")
                return
            # A loop that ended on its own error still holds its handle
            self._release_handle()

            handle = self.acquire()
            try:
                handle.start()
            except Exception as e:
                handle.release()
                raise TransientIoError(f"Failed to start capture: {e}") from e

            config = self.active_config
            if config is None:
                handle.release()
                raise RuntimeError("Capture handle acquired without an active configuration")
            self._handle = handle
            self._cancel.clear()
            self._release_on_exit = False
            self._thread = threading.Thread(
                target=self._capture_loop,
                args=(handle, config, on_frame, on_error),
                name="inkmic-capture",
                daemon=True,
            )
            self._thread.start()
            logger.info(
                "Capture started: %s, %d byte buffer", config.describe(), config.buffer_size
            )

    def _capture_loop(
        self,
        handle: CaptureHandle,
        config: CaptureConfig,
        on_frame: FrameCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        logger.debug("Capture loop running on %s", threading.current_thread().name)
        buffer = bytearray(config.buffer_size)
        error: TransientIoError | None = None
        try:
            while not self._cancel.is_set():
                result = handle.read_into(buffer)
                if self._cancel.is_set():
                    break
                if result > 0:
                    on_frame(PcmFrame.from_buffer(buffer, result, config.sample_rate))
                elif result < 0:
                    name = ReadStatus.describe(result)
                    logger.error("Capture read failed: %s", name)
                    error = TransientIoError(f"Capture read failed: {name}", code=result)
                    break
        except Exception as e:
            logger.exception("Error during capture")
            error = TransientIoError(f"Capture loop failed: {e}")
            error.__cause__ = e
        finally:
            logger.debug("Capture loop finished.")

        if error is not None and not self._cancel.is_set() and on_error is not None:
            on_error(error)

        if self._release_on_exit:
            with self._lock:
                self._release_handle()

    def stop(self) -> None:
        """Stop capturing and release the hardware.

        Blocks until the capture thread has exited. When called from the
        capture thread itself (for example from a callback) the release is
        deferred until the loop unwinds.
        """
        thread = self._thread
        self._cancel.set()

        if thread is not None and thread is threading.current_thread():
            self._release_on_exit = True
            return

        if thread is not None:
            thread.join()

        with self._lock:
            self._thread = None
            if self._handle is None:
                logger.debug("Not capturing.")
                return
            self._release_handle()
        logger.info("Capture stopped and resources released.")

    def _release_handle(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            handle.stop()
        finally:
            handle.release()
            logger.debug("Capture handle released")
