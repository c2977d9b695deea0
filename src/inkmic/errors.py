"""Exception hierarchy shared by the capture, pairing and session layers."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from inkmic.audio.models import CaptureConfig


class InkMicError(Exception):
    """Base class for all InkMic errors."""


class CaptureError(InkMicError):
    """Base class for audio capture failures."""


class InvalidCaptureParameters(CaptureError):
    """The hardware rejected a sample rate / channel / format combination."""


class ConfigurationError(CaptureError):
    """No capture configuration in the fallback list could be initialized.

    Terminal for the ``start`` call that raised it. ``attempts`` lists every
    configuration that was tried together with the reason it was rejected.
    """

    def __init__(self, attempts: list[tuple[CaptureConfig, str]]) -> None:
        self.attempts = list(attempts)
        details = "; ".join(f"{config.describe()}: {reason}" for config, reason in self.attempts)
        super().__init__(f"No usable capture configuration ({details or 'none tried'})")


class TransientIoError(CaptureError):
    """A single read fault that aborted the current capture session."""

    def __init__(self, message: str, code: int | None = None) -> None:
        self.code = code
        super().__init__(message)


class PairingError(InkMicError):
    """Base class for discovery and handshake failures."""


class RegistrationFailure(PairingError):
    """The service advertisement or its UDP listener could not be established."""


class ListenerFailure(PairingError):
    """The handshake listener stopped on an unexpected exception."""
