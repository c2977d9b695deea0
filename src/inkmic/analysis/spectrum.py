"""Per-frame waveform and spectrum analysis for visualization feedback.

Each captured PCM frame is turned into two fixed-length series:

- an amplitude series: mean absolute amplitude per bucket, lightly smoothed
- a frequency series: Hamming-windowed radix-2 FFT magnitudes, averaged into
  logarithmically spaced bands from 20 Hz up to min(20 kHz, Nyquist), ordered
  from the highest band (index 0) to the lowest, log-compressed into [0, 1]

The analyzer keeps no state between frames.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np

from inkmic.analysis.fft import hamming_window, magnitudes, next_power_of_two, radix2_fft
from inkmic.audio.models import PcmFrame

logger = logging.getLogger(__name__)

INT16_FULL_SCALE = 32767.0
LOG_COMPRESSION_GAIN = 1000.0


@dataclass(frozen=True)
class SpectrumFrame:
    """Read-only analysis result for one captured frame."""

    amplitudes: tuple[float, ...]
    frequencies: tuple[float, ...]

    @classmethod
    def flat(cls, size: int) -> "SpectrumFrame":
        """An all-zero baseline, published when recording stops."""
        zeros = (0.0,) * size
        return cls(amplitudes=zeros, frequencies=zeros)

    @property
    def peak(self) -> float:
        """Largest absolute amplitude in the waveform."""
        return max((abs(a) for a in self.amplitudes), default=0.0)

    @property
    def rms(self) -> float:
        """Root mean square of the waveform."""
        if not self.amplitudes:
            return 0.0
        return math.sqrt(sum(a * a for a in self.amplitudes) / len(self.amplitudes))

    @property
    def dominant_band(self) -> int:
        """Index of the strongest frequency band (0 is the highest frequency)."""
        if not self.frequencies:
            return 0
        return max(range(len(self.frequencies)), key=self.frequencies.__getitem__)


def loudness_label(peak: float) -> str:
    """Coarse loudness label for a normalized peak amplitude."""
    if peak < 0.1:
        return "Silent"
    if peak < 0.3:
        return "Quiet"
    if peak < 0.6:
        return "Moderate"
    if peak < 0.8:
        return "Loud"
    return "Very Loud"


def band_label(index: int, size: int) -> str:
    """Name of the region a band index falls in, split into fifths high-to-low."""
    labels = ("High-Freq", "Mid-High", "Mid-Range", "Low-Mid", "Low-Freq")
    if size <= 0:
        return labels[-1]
    return labels[min(index * len(labels) // size, len(labels) - 1)]


def decode_samples(frame: PcmFrame) -> np.ndarray:
    """Interpret a frame's valid bytes as little-endian signed 16-bit samples."""
    payload = frame.payload
    usable = len(payload) - len(payload) % 2
    return np.frombuffer(payload[:usable], dtype="<i2")


def downsample_amplitudes(samples: np.ndarray, size: int) -> np.ndarray:
    """Average absolute normalized amplitude over ``size`` equal buckets.

    Frames shorter than ``size`` repeat the nearest sample for empty buckets.
    """
    if size <= 0:
        return np.zeros(0)
    if len(samples) == 0:
        return np.zeros(size)

    levels = np.abs(samples.astype(np.float64)) / INT16_FULL_SCALE
    edges = (np.arange(size + 1) * len(levels)) // size
    counts = np.maximum(np.diff(edges), 1)
    sums = np.add.reduceat(levels, edges[:-1])
    return np.clip(sums / counts, 0.0, 1.0)


def smooth(values: np.ndarray, window: int = 3) -> np.ndarray:
    """Centered moving average; a constant input is returned unchanged."""
    n = len(values)
    if window <= 1 or n <= window:
        return np.asarray(values, dtype=np.float64)

    half = window // 2
    index = np.arange(n)
    starts = np.maximum(index - half, 0)
    ends = np.minimum(index + half + 1, n)
    result = np.empty(n, dtype=np.float64)
    for i in range(n):
        segment = values[starts[i] : ends[i]]
        # Skip the division for flat segments so constants stay bit-exact
        if np.all(segment == segment[0]):
            result[i] = segment[0]
        else:
            result[i] = segment.mean()
    return result


def frequency_bands(
    mags: np.ndarray,
    sample_rate: int,
    size: int,
    min_frequency: float = 20.0,
    max_frequency: float = 20000.0,
) -> np.ndarray:
    """Map FFT bin magnitudes onto ``size`` log-spaced bands, highest first."""
    if size <= 0:
        return np.zeros(0)
    if len(mags) == 0:
        return np.zeros(size)

    nyquist = sample_rate / 2.0
    freq_per_bin = nyquist / len(mags)
    top = min(max_frequency, nyquist)
    log_min = math.log10(min_frequency)
    log_max = math.log10(top)

    ratios = np.arange(size) / (size - 1) if size > 1 else np.zeros(1)
    targets = 10.0 ** (log_max - ratios * (log_max - log_min))

    last = len(mags) - 1
    starts = np.clip((targets / freq_per_bin).astype(np.int64), 0, last)
    ends = np.clip(((targets + freq_per_bin) / freq_per_bin).astype(np.int64), starts, last)

    cumulative = np.concatenate(([0.0], np.cumsum(mags)))
    averages = (cumulative[ends + 1] - cumulative[starts]) / (ends - starts + 1)
    compressed = np.log10(1.0 + averages * LOG_COMPRESSION_GAIN) / math.log10(
        1.0 + LOG_COMPRESSION_GAIN
    )
    return np.clip(compressed, 0.0, 1.0)


class SpectrumAnalyzer:
    """Stateless converter from ``PcmFrame`` to ``SpectrumFrame``."""

    def __init__(
        self,
        size: int = 100,
        smoothing_window: int = 3,
        max_fft_size: int = 1024,
        min_frequency: float = 20.0,
        max_frequency: float = 20000.0,
    ) -> None:
        """Initialize the analyzer.

        Args:
            size: Number of points in both output series
            smoothing_window: Moving-average window applied to the waveform
            max_fft_size: Largest FFT length; must be a power of two
            min_frequency: Lowest band frequency in Hz
            max_frequency: Highest band frequency in Hz, capped at Nyquist
        """
        if max_fft_size < 1 or max_fft_size & (max_fft_size - 1):
            raise ValueError(f"max_fft_size must be a power of two, got {max_fft_size}")
        self.size = size
        self.smoothing_window = smoothing_window
        self.max_fft_size = max_fft_size
        self.min_frequency = min_frequency
        self.max_frequency = max_frequency

    def waveform(self, samples: np.ndarray) -> np.ndarray:
        """Downsampled and smoothed amplitude series."""
        return smooth(downsample_amplitudes(samples, self.size), self.smoothing_window)

    def spectrum(self, samples: np.ndarray, sample_rate: int) -> np.ndarray:
        """Log-scaled frequency band magnitudes, highest band first."""
        if len(samples) == 0:
            return np.zeros(self.size)

        fft_size = next_power_of_two(min(len(samples), self.max_fft_size))
        window = np.zeros(fft_size, dtype=np.float64)
        count = min(len(samples), fft_size)
        window[:count] = samples[:count] / INT16_FULL_SCALE
        window *= hamming_window(fft_size)

        mags = magnitudes(radix2_fft(window))
        return frequency_bands(
            mags, sample_rate, self.size, self.min_frequency, self.max_frequency
        )

    def analyze(self, frame: PcmFrame) -> SpectrumFrame:
        """Compute the waveform and spectrum for one frame."""
        samples = decode_samples(frame)
        return SpectrumFrame(
            amplitudes=tuple(float(v) for v in self.waveform(samples)),
            frequencies=tuple(float(v) for v in self.spectrum(samples, frame.sample_rate)),
        )
