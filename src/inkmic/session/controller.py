import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Any

from inkmic.analysis.spectrum import SpectrumAnalyzer, SpectrumFrame, band_label, loudness_label
from inkmic.audio.capture import CaptureEngine
from inkmic.audio.models import PcmFrame
from inkmic.errors import CaptureError, PairingError, RegistrationFailure
from inkmic.network.discovery import PairingService
from inkmic.network.models import PeerEndpoint
from inkmic.network.streamer import StreamSender
from inkmic.session.models import (
    PairingEvent,
    PairingPhase,
    RequestPermission,
    SessionState,
    ShowMessage,
    UiEvent,
    next_phase,
)
from inkmic.session.permission import (
    PermissionAction,
    PermissionState,
    PermissionStateMachine,
)
from inkmic.utils.store import EventQueue, StateStore

logger = logging.getLogger(__name__)

PERMANENTLY_DENIED_MESSAGE = (
    "Microphone access was denied. Enable it in the system settings to record."
)


class SessionController:
    """Composes capture, pairing, streaming and analysis into one session.

    User actions run synchronously on the caller's thread. Events raised on
    background threads (handshakes, listener failures, capture errors) are
    queued onto a single control thread. Both paths take the same lock, so
    every transition is applied atomically and published as one new
    ``SessionState`` snapshot.

    Subscribers of ``state`` and ``spectrum`` are called on internal threads
    and must not call back into the controller synchronously.
    """

    def __init__(
        self,
        capture: CaptureEngine,
        pairing: PairingService,
        sender: StreamSender,
        analyzer: SpectrumAnalyzer,
        permission: PermissionStateMachine,
        broadcast_port: int = 12346,
        device_name: str = "InkMic",
        tick_interval: float = 0.1,
        log_every_n_frames: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the SessionController.

        Args:
            capture: Capture engine owning the audio hardware
            pairing: Discovery/handshake service
            sender: UDP stream sender
            analyzer: Per-frame waveform/spectrum analyzer
            permission: Microphone permission state machine
            broadcast_port: Port advertised and listened on while pairing
            device_name: Service name advertised over DNS-SD
            tick_interval: Seconds between elapsed-time updates while recording
            log_every_n_frames: Frame diagnostics are logged once per this many frames
            clock: Monotonic time source in seconds
        """
        self.capture = capture
        self.pairing = pairing
        self.sender = sender
        self.analyzer = analyzer
        self.permission = permission
        self.broadcast_port = broadcast_port
        self.device_name = device_name
        self.tick_interval = tick_interval
        self.log_every_n_frames = log_every_n_frames
        self._clock = clock

        self.state: StateStore[SessionState] = StateStore(SessionState())
        self.spectrum: StateStore[SpectrumFrame] = StateStore(SpectrumFrame.flat(analyzer.size))
        self.events: EventQueue[UiEvent] = EventQueue()

        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inkmic-control")
        self._closed = False
        self._generation = 0
        self._frame_count = 0
        self._recording_started_at = 0.0
        self._tick_stop = threading.Event()
        self._tick_thread: threading.Thread | None = None

        self._unsubscribe_peer = pairing.peer.subscribe(
            lambda endpoint: self._submit(self._handle_peer_change, endpoint)
        )
        pairing.on_failure = lambda error: self._submit(self._handle_pairing_failure, error)

    # ------------------------------------------------------------------ helpers

    def _publish(self, **changes: Any) -> SessionState:
        return self.state.update(lambda current: replace(current, **changes))

    def _submit(self, fn: Callable[..., None], *args: Any) -> Future | None:
        if self._closed:
            logger.debug("Controller closed, dropping %s", fn.__name__)
            return None
        try:
            return self._executor.submit(self._run_guarded, fn, *args)
        except RuntimeError:
            logger.debug("Control executor shut down, dropping %s", fn.__name__)
            return None

    def _run_guarded(self, fn: Callable[..., None], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Error handling %s", fn.__name__)

    def drain(self, timeout: float | None = 5.0) -> None:
        """Wait until every queued background event has been handled."""
        future = self._submit(lambda: None)
        if future is not None:
            future.result(timeout=timeout)

    # ------------------------------------------------------------------ pairing

    def start_pairing(self) -> SessionState:
        """Advertise the service and listen for a receiver handshake."""
        with self._lock:
            current = self.state.value
            target = next_phase(current.phase, PairingEvent.START)
            if target is None:
                logger.debug("Start pairing ignored in phase %s", current.phase.name)
                return current

            logger.info(
                "Starting pairing as '%s' on port %d", self.device_name, self.broadcast_port
            )
            try:
                self.pairing.register_service(self.broadcast_port, self.device_name)
            except RegistrationFailure as e:
                return self._publish(
                    phase=PairingPhase.IDLE, peer=None, error=f"Pairing error: {e}"
                )
            return self._publish(phase=target, peer=None, error=None)

    def stop_pairing(self) -> SessionState:
        """Tear pairing down and forget the receiver."""
        with self._lock:
            current = self.state.value
            target = next_phase(current.phase, PairingEvent.STOP)
            if target is None:
                return current
            self.pairing.cleanup()
            self.sender.stop()
            self.sender.clear_target()
            logger.info("Pairing stopped")
            return self._publish(phase=target, peer=None, streaming=False, error=None)

    def toggle_pairing(self) -> SessionState:
        """Start pairing when idle, otherwise tear it down."""
        with self._lock:
            if self.state.value.phase is PairingPhase.IDLE:
                return self.start_pairing()
            return self.stop_pairing()

    def peer_lost(self) -> None:
        """Report that the receiver went away; pairing resumes listening."""
        self.pairing.mark_peer_lost()

    def _handle_peer_change(self, endpoint: PeerEndpoint | None) -> None:
        with self._lock:
            # Drop events that a later registration or cleanup already superseded
            if endpoint != self.pairing.peer.value:
                return
            if endpoint is None:
                self._apply_peer_lost()
            else:
                self._apply_handshake(endpoint)

    def _apply_handshake(self, endpoint: PeerEndpoint) -> None:
        current = self.state.value
        target = next_phase(current.phase, PairingEvent.HANDSHAKE)
        if target is None:
            logger.debug("Handshake from %s ignored in phase %s", endpoint, current.phase.name)
            return

        # Invalidate the old peer before the new one takes effect
        self.sender.clear_target()
        self.sender.set_target(endpoint)
        streaming = current.streaming
        if current.recording and not self.sender.is_streaming:
            self.sender.start()
            streaming = True
        logger.info("Paired with %s", endpoint.describe())
        self._publish(phase=target, peer=endpoint, streaming=streaming)

    def _apply_peer_lost(self) -> None:
        current = self.state.value
        target = next_phase(current.phase, PairingEvent.PEER_LOST)
        if target is None:
            return
        self.sender.stop()
        self.sender.clear_target()
        logger.info("Peer lost, waiting for a new handshake")
        self._publish(phase=target, peer=None, streaming=False)

    def _handle_pairing_failure(self, error: PairingError) -> None:
        with self._lock:
            current = self.state.value
            target = next_phase(current.phase, PairingEvent.FAILED)
            if target is None:
                return
            self.pairing.cleanup()
            self.sender.stop()
            self.sender.clear_target()
            self._publish(
                phase=target, peer=None, streaming=False, error=f"Pairing error: {error}"
            )

    # ---------------------------------------------------------------- recording

    def start_recording(self) -> SessionState:
        """Start capturing, and streaming too if a receiver is paired.

        Without a granted permission a ``RequestPermission`` event is emitted
        instead and nothing starts.
        """
        with self._lock:
            current = self.state.value
            if current.recording:
                return current

            permission = self.permission.dispatch(PermissionAction.CHECK)
            if permission is not PermissionState.GRANTED:
                if permission is PermissionState.RATIONALE_NEEDED:
                    self.events.emit(ShowMessage(self.permission.rationale))
                elif permission is PermissionState.PERMANENTLY_DENIED:
                    self.events.emit(ShowMessage(PERMANENTLY_DENIED_MESSAGE))
                else:
                    self.permission.dispatch(PermissionAction.REQUEST)
                    self.events.emit(RequestPermission(self.permission.permission))
                return current

            self._generation += 1
            generation = self._generation
            self._frame_count = 0

            # The sender must be live before the first frame arrives
            streaming = False
            if current.phase is PairingPhase.PAIRED and current.peer is not None:
                self.sender.set_target(current.peer)
                self.sender.start()
                streaming = True

            try:
                self.capture.start(
                    on_frame=self._on_frame,
                    on_error=lambda error: self._submit(
                        self._handle_capture_error, error, generation
                    ),
                )
            except CaptureError as e:
                logger.error("Could not start recording: %s", e)
                self.sender.stop()
                return self._publish(
                    recording=False, streaming=False, error=f"Recording error: {e}"
                )

            self._start_tick()
            logger.info("Recording started (streaming=%s)", streaming)
            return self._publish(recording=True, streaming=streaming, elapsed_ms=0, error=None)

    def stop_recording(self) -> SessionState:
        """Stop capture, timer and streaming; reset the waveform to a flat line."""
        with self._lock:
            current = self.state.value
            if not current.recording:
                return current
            self._stop_pipeline()
            self.spectrum.set(SpectrumFrame.flat(self.analyzer.size))
            logger.info("Recording stopped after %d frames", self._frame_count)
            return self._publish(recording=False, streaming=False, error=None)

    def toggle_recording(self) -> SessionState:
        """Start recording when stopped, otherwise stop."""
        with self._lock:
            if self.state.value.recording:
                return self.stop_recording()
            return self.start_recording()

    def _stop_pipeline(self) -> None:
        self._stop_tick()
        self.capture.stop()
        self.sender.stop()

    def _handle_capture_error(self, error: Exception, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self.state.value.recording:
                logger.debug("Ignoring capture error from an old session: %s", error)
                return
            self._stop_pipeline()
            self._publish(recording=False, streaming=False, error=f"Recording error: {error}")

    def _on_frame(self, frame: PcmFrame) -> None:
        self.sender.send(frame)
        analysis = self.analyzer.analyze(frame)
        self.spectrum.set(analysis)
        if self._frame_count % self.log_every_n_frames == 0:
            self._log_frame(frame, analysis)
        self._frame_count += 1

    def _log_frame(self, frame: PcmFrame, analysis: SpectrumFrame) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        band = analysis.dominant_band
        logger.debug(
            "Frame %d - Bytes: %d, RMS: %.3f, Max: %.3f, Level: %s, Dominant: %s (band %d)",
            self._frame_count,
            frame.length,
            analysis.rms,
            analysis.peak,
            loudness_label(analysis.peak),
            band_label(band, len(analysis.frequencies)),
            band,
        )

    # --------------------------------------------------------------- permission

    def permission_result(self, granted: bool, can_ask_again: bool = True) -> PermissionState:
        """Feed back the user's answer to a permission prompt."""
        if granted:
            action = PermissionAction.USER_GRANTS
        elif can_ask_again:
            action = PermissionAction.USER_DENIES
        else:
            action = PermissionAction.USER_DENIES_PERMANENTLY
        return self.permission.dispatch(action)

    def acknowledge_rationale(self) -> PermissionState:
        """The user read the rationale and wants to be asked again."""
        state = self.permission.dispatch(PermissionAction.USER_ACKNOWLEDGES_RATIONALE)
        if state is PermissionState.REQUESTING:
            self.events.emit(RequestPermission(self.permission.permission))
        return state

    # -------------------------------------------------------------------- timer

    def _start_tick(self) -> None:
        self._stop_tick()
        self._recording_started_at = self._clock()
        self._tick_stop.clear()
        self._tick_thread = threading.Thread(
            target=self._tick_loop, name="inkmic-tick", daemon=True
        )
        self._tick_thread.start()

    def _stop_tick(self) -> None:
        self._tick_stop.set()
        thread = self._tick_thread
        self._tick_thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _tick_loop(self) -> None:
        while not self._tick_stop.wait(self.tick_interval):
            elapsed_ms = int((self._clock() - self._recording_started_at) * 1000)
            self.state.update(
                lambda current: replace(current, elapsed_ms=elapsed_ms)
                if current.recording
                else current
            )

    # ---------------------------------------------------------------- lifecycle

    def close(self) -> None:
        """Stop everything and shut down the control thread."""
        with self._lock:
            self.stop_recording()
            self.stop_pairing()
            self._closed = True
        self._unsubscribe_peer()
        self._executor.shutdown(wait=True)
        logger.info("Session closed")
