"""Networking domain: service discovery, UDP handshake and PCM streaming."""

__all__ = []
