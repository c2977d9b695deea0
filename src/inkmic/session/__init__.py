"""Session lifecycle: pairing phases, recording, permission tracking."""

from .controller import SessionController
from .models import PairingPhase, SessionState

__all__ = [
    "PairingPhase",
    "SessionController",
    "SessionState",
]
