"""Real-time visualization analysis: waveform downsampling and log-scaled spectrum."""

from .spectrum import SpectrumAnalyzer, SpectrumFrame

__all__ = [
    "SpectrumAnalyzer",
    "SpectrumFrame",
]
