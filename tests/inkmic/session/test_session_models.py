import pytest

from inkmic.network.models import PeerEndpoint
from inkmic.session.models import PairingEvent, PairingPhase, SessionState, next_phase


@pytest.mark.parametrize(
    "phase,event,expected",
    [
        (PairingPhase.IDLE, PairingEvent.START, PairingPhase.PAIRING),
        (PairingPhase.PAIRING, PairingEvent.HANDSHAKE, PairingPhase.PAIRED),
        (PairingPhase.PAIRED, PairingEvent.HANDSHAKE, PairingPhase.PAIRED),
        (PairingPhase.PAIRED, PairingEvent.PEER_LOST, PairingPhase.PAIRING),
        (PairingPhase.PAIRING, PairingEvent.STOP, PairingPhase.IDLE),
        (PairingPhase.PAIRED, PairingEvent.STOP, PairingPhase.IDLE),
        (PairingPhase.PAIRED, PairingEvent.FAILED, PairingPhase.IDLE),
    ],
)
def test_defined_transitions(phase, event, expected):
    """Should follow the pairing transition table."""
    assert next_phase(phase, event) is expected


@pytest.mark.parametrize(
    "phase,event",
    [
        (PairingPhase.IDLE, PairingEvent.HANDSHAKE),
        (PairingPhase.IDLE, PairingEvent.STOP),
        (PairingPhase.IDLE, PairingEvent.PEER_LOST),
        (PairingPhase.PAIRING, PairingEvent.START),
        (PairingPhase.PAIRING, PairingEvent.PEER_LOST),
    ],
)
def test_undefined_transitions(phase, event):
    """Should return None where no transition applies."""
    assert next_phase(phase, event) is None


def test_session_state_flags():
    """Should derive the pairing/paired flags from the phase."""
    assert SessionState(phase=PairingPhase.PAIRING).pairing is True
    assert SessionState(phase=PairingPhase.PAIRED).paired is True
    assert SessionState().pairing is False
    assert SessionState().peer_description is None


def test_status_line():
    """Should summarize the state on one line."""
    state = SessionState(
        phase=PairingPhase.PAIRED,
        peer=PeerEndpoint("10.0.0.2", 5000),
        recording=True,
        streaming=True,
        elapsed_ms=2500,
    )

    assert state.status_line() == "paired | peer=10.0.0.2:5000 | recording 2.5s | streaming"


def test_session_state_is_immutable():
    """Should not allow in-place mutation of a published snapshot."""
    state = SessionState()

    with pytest.raises(AttributeError):
        state.recording = True
