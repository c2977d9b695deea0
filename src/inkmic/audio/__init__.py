"""Audio capture domain.

This package handles acquiring a hardware input stream under an ordered
fallback policy and delivering raw PCM frames to consumers.
"""

__all__ = []
