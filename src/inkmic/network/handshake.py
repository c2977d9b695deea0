"""Handshake datagram codec.

A receiver announces itself with a single ASCII datagram ``CONNECT:<port>``
where ``<port>`` is the decimal UDP port it listens on for audio. Anything
else is not a handshake.
"""

import re

HANDSHAKE_PREFIX = b"CONNECT:"
# Leading zeros are stripped so at most five significant digits are converted
_HANDSHAKE_RE = re.compile(rb"CONNECT:0*([0-9]{1,5})")


def parse_handshake(data: bytes) -> int | None:
    """Return the declared listening port, or None if ``data`` is not a handshake."""
    match = _HANDSHAKE_RE.fullmatch(data)
    if match is None:
        return None
    port = int(match.group(1))
    if port > 65535:
        return None
    return port


def build_handshake(port: int) -> bytes:
    """Encode a handshake declaring ``port`` as the audio listening port."""
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")
    return HANDSHAKE_PREFIX + str(port).encode("ascii")
