"""Published session state and the pairing transition table."""

from dataclasses import dataclass
from enum import Enum

from inkmic.network.models import PeerEndpoint


class PairingPhase(Enum):
    """Where the session is in the rendezvous lifecycle."""

    IDLE = "idle"
    PAIRING = "pairing"  # Advertising and listening for a handshake
    PAIRED = "paired"


class PairingEvent(Enum):
    """Inputs that move the pairing phase."""

    START = "start"
    HANDSHAKE = "handshake"
    PEER_LOST = "peer_lost"
    STOP = "stop"
    FAILED = "failed"


PAIRING_TRANSITIONS: dict[tuple[PairingPhase, PairingEvent], PairingPhase] = {
    (PairingPhase.IDLE, PairingEvent.START): PairingPhase.PAIRING,
    (PairingPhase.PAIRING, PairingEvent.HANDSHAKE): PairingPhase.PAIRED,
    (PairingPhase.PAIRED, PairingEvent.HANDSHAKE): PairingPhase.PAIRED,
    (PairingPhase.PAIRED, PairingEvent.PEER_LOST): PairingPhase.PAIRING,
    (PairingPhase.PAIRING, PairingEvent.STOP): PairingPhase.IDLE,
    (PairingPhase.PAIRED, PairingEvent.STOP): PairingPhase.IDLE,
    (PairingPhase.PAIRING, PairingEvent.FAILED): PairingPhase.IDLE,
    (PairingPhase.PAIRED, PairingEvent.FAILED): PairingPhase.IDLE,
}


def next_phase(phase: PairingPhase, event: PairingEvent) -> PairingPhase | None:
    """Look up the transition for ``event`` in ``phase``; None if it does not apply."""
    return PAIRING_TRANSITIONS.get((phase, event))


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of everything the UI shows about the session."""

    phase: PairingPhase = PairingPhase.IDLE
    peer: PeerEndpoint | None = None
    recording: bool = False
    streaming: bool = False
    elapsed_ms: int = 0
    error: str | None = None

    @property
    def pairing(self) -> bool:
        """Advertising and waiting for a receiver."""
        return self.phase is PairingPhase.PAIRING

    @property
    def paired(self) -> bool:
        """A receiver endpoint is known."""
        return self.phase is PairingPhase.PAIRED

    @property
    def peer_description(self) -> str | None:
        """``address:port`` of the paired receiver, if any."""
        return self.peer.describe() if self.peer is not None else None

    def status_line(self) -> str:
        """One-line summary for logs and the CLI."""
        parts = [self.phase.value]
        if self.peer is not None:
            parts.append(f"peer={self.peer.describe()}")
        if self.recording:
            parts.append(f"recording {self.elapsed_ms / 1000:.1f}s")
        if self.streaming:
            parts.append("streaming")
        if self.error:
            parts.append(f"error={self.error}")
        return " | ".join(parts)


@dataclass(frozen=True)
class RequestPermission:
    """Ask the host to prompt the user for capture permission."""

    permission: str


@dataclass(frozen=True)
class ShowMessage:
    """Transient message for the user."""

    message: str


UiEvent = RequestPermission | ShowMessage
