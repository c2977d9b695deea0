import logging
import queue
import socket
import threading
from collections.abc import Callable

from inkmic.audio.models import PcmFrame
from inkmic.network.models import PeerEndpoint
from inkmic.utils.store import StateStore

logger = logging.getLogger(__name__)

_STOP = object()


class StreamSender:
    """Sends PCM frames to the paired receiver as raw UDP datagrams.

    ``send`` never blocks on the network: frames go onto a bounded queue that a
    single worker thread drains in submission order. Delivery is best effort;
    a failed datagram is logged and the stream carries on.
    """

    def __init__(
        self,
        queue_size: int = 64,
        socket_factory: Callable[[], socket.socket] | None = None,
    ) -> None:
        """Initialize the StreamSender.

        Args:
            queue_size: Frames that may wait for the worker before new ones are dropped
            socket_factory: Creates the datagram socket; defaults to an IPv4 UDP socket
        """
        self.queue_size = queue_size
        self._socket_factory = socket_factory or (
            lambda: socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        )
        self.streaming = StateStore(False)

        self._lock = threading.Lock()
        self._target: PeerEndpoint | None = None
        self._socket: socket.socket | None = None
        self._queue: queue.Queue | None = None
        self._worker: threading.Thread | None = None

        self.packets_sent = 0
        self.packets_dropped = 0
        self.send_failures = 0

    @property
    def is_streaming(self) -> bool:
        """Whether the stream is active."""
        return self.streaming.value

    @property
    def target(self) -> PeerEndpoint | None:
        """The current destination, if any."""
        with self._lock:
            return self._target

    def set_target(self, endpoint: PeerEndpoint) -> None:
        """Point the stream at ``endpoint``, replacing any previous target."""
        with self._lock:
            self._target = endpoint
        logger.debug("Target set to: %s", endpoint.describe())

    def clear_target(self) -> None:
        """Forget the current target; queued frames are discarded by the worker."""
        with self._lock:
            self._target = None
        logger.debug("Target cleared")

    def start(self) -> None:
        """Open the socket and start the sender worker. No-op if already streaming."""
        with self._lock:
            if self._worker is not None:
                logger.warning("Streamer is already running.")
                return
            self._socket = self._socket_factory()
            self._queue = queue.Queue(maxsize=self.queue_size)
            self._worker = threading.Thread(
                target=self._send_loop,
                args=(self._socket, self._queue),
                name="inkmic-sender",
                daemon=True,
            )
            self._worker.start()
            target = self._target
        self.streaming.set(True)
        logger.info(
            "Streaming started to %s", target.describe() if target else "<no target yet>"
        )

    def stop(self) -> None:
        """Cancel pending sends, stop the worker and close the socket."""
        with self._lock:
            worker, sock, frames = self._worker, self._socket, self._queue
            self._worker = self._socket = self._queue = None
        if worker is None:
            logger.debug("Streamer is not running.")
            return

        if frames is None:
            raise RuntimeError("Streamer worker is running without a frame queue")
        self._discard_pending(frames)
        frames.put(_STOP)
        worker.join()
        if sock is not None:
            sock.close()
        self.streaming.set(False)
        logger.info("Streaming stopped.")

    def send(self, frame: PcmFrame) -> None:
        """Queue one frame for transmission.

        Silently does nothing unless the stream is active and has a target.
        """
        with self._lock:
            frames = self._queue
            if frames is None or self._target is None:
                return
        try:
            frames.put_nowait(frame.payload)
        except queue.Full:
            self.packets_dropped += 1
            logger.debug("Send queue full, dropping frame of %d bytes", frame.length)

    def _discard_pending(self, frames: queue.Queue) -> None:
        while True:
            try:
                frames.get_nowait()
            except queue.Empty:
                return

    def _send_loop(self, sock: socket.socket, frames: queue.Queue) -> None:
        while True:
            payload = frames.get()
            if payload is _STOP:
                break
            # Read the target per datagram so a re-pair never sends to a stale peer
            target = self.target
            if target is None:
                continue
            try:
                sock.sendto(payload, target.as_tuple())
                self.packets_sent += 1
            except OSError as e:
                self.send_failures += 1
                logger.warning(
                    "Failed to send %d bytes to %s: %s", len(payload), target.describe(), e
                )
        logger.debug("Sender worker exited after %d packets", self.packets_sent)
