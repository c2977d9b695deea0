import logging
import signal
import time

from inkmic.core.container import Container
from inkmic.session.controller import SessionController
from inkmic.session.models import RequestPermission, SessionState, ShowMessage
from inkmic.session.permission import PermissionState
from inkmic.system.structlog_configurator import configure_structlog

logger = logging.getLogger(__name__)

DENIED_STATES = (PermissionState.RATIONALE_NEEDED, PermissionState.PERMANENTLY_DENIED)


class DaemonState:
    """Encapsulates daemon state to avoid module-level globals."""

    shutdown_flag: bool = False
    last_status: str | None = None

    @classmethod
    def reset(cls) -> None:
        """Reset state to initial values (useful for testing)."""
        cls.shutdown_flag = False
        cls.last_status = None


def _signal_handler(signum: int, frame: object) -> None:
    signal_name = (
        signal.Signals(signum).name if signum in signal.Signals._value2member_map_ else str(signum)
    )
    logger.info("Signal %s (%s) received, initiating graceful shutdown...", signal_name, signum)
    DaemonState.shutdown_flag = True


def _log_state(state: SessionState) -> None:
    # Elapsed-time ticks would otherwise log ten lines a second
    status = state.status_line() if not state.recording else f"{state.phase.value} recording"
    if status != DaemonState.last_status:
        DaemonState.last_status = status
        logger.info("Session: %s", state.status_line())


def _handle_events(controller: SessionController) -> None:
    for event in controller.events.drain():
        if isinstance(event, RequestPermission):
            # Desktop hosts have no prompt; record the current answer instead
            granted = controller.permission.checker()
            logger.info("Permission %s requested, granted=%s", event.permission, granted)
            controller.permission_result(granted, can_ask_again=True)
        elif isinstance(event, ShowMessage):
            logger.warning(event.message)


def run_session(controller: SessionController, pairing: bool = True) -> None:
    """Pair (optionally), record, and keep going until a shutdown signal arrives."""
    unsubscribe = controller.state.subscribe(_log_state)
    try:
        if pairing:
            controller.start_pairing()
        controller.start_recording()

        while not DaemonState.shutdown_flag:
            _handle_events(controller)
            state = controller.state.value
            if not state.recording:
                if state.error:
                    logger.error("Session stopped: %s", state.error)
                    break
                if controller.permission.current in DENIED_STATES:
                    logger.error("No microphone access, giving up")
                    break
                # A permission prompt was answered; try again
                controller.start_recording()
            time.sleep(0.1)
    finally:
        unsubscribe()
        controller.close()


def main() -> None:
    """Run the InkMic wireless microphone daemon."""
    container = Container()
    config = container.config()
    configure_structlog(config)

    logger.info("Starting InkMic daemon as '%s'.", config.device_name)

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    try:
        run_session(container.session_controller())
    except Exception:
        logger.exception("An error occurred in the InkMic daemon")
    logger.info("InkMic daemon stopped.")


if __name__ == "__main__":
    main()
