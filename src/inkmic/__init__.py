"""InkMic: turn this machine into a wireless microphone for a LAN receiver."""

__version__ = "1.0.0"
