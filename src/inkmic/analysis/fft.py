"""Radix-2 FFT primitives.

The transform works on power-of-two lengths only and returns its result as an
interleaved ``[re0, im0, re1, im1, ...]`` float array.
"""

import numpy as np


def next_power_of_two(n: int) -> int:
    """Return the smallest power of two that is >= ``n`` (1 for n <= 1)."""
    power = 1
    while power < n:
        power *= 2
    return power


def hamming_window(n: int) -> np.ndarray:
    """Hamming window ``0.54 - 0.46 * cos(2*pi*i / (n - 1))`` of length ``n``."""
    if n <= 1:
        return np.ones(n, dtype=np.float64)
    i = np.arange(n, dtype=np.float64)
    return 0.54 - 0.46 * np.cos(2.0 * np.pi * i / (n - 1))


def bit_reversal_indices(n: int) -> np.ndarray:
    """Permutation that reorders ``n`` inputs into bit-reversed index order."""
    bits = n.bit_length() - 1
    indices = np.arange(n)
    reversed_indices = np.zeros(n, dtype=np.int64)
    for bit in range(bits):
        reversed_indices |= ((indices >> bit) & 1) << (bits - 1 - bit)
    return reversed_indices


def radix2_fft(samples: np.ndarray) -> np.ndarray:
    """Iterative in-place radix-2 decimation-in-time FFT of a real signal.

    Args:
        samples: Real-valued input whose length is a power of two

    Returns:
        Array of length ``2 * len(samples)`` holding interleaved real and
        imaginary parts of the transform.

    Raises:
        ValueError: If the input length is not a power of two.
    """
    n = len(samples)
    if n & (n - 1):
        raise ValueError(f"FFT length must be a power of two, got {n}")

    data = np.asarray(samples, dtype=np.complex128)[bit_reversal_indices(n)]

    size = 2
    while size <= n:
        half = size // 2
        twiddles = np.exp(-2j * np.pi * np.arange(half) / size)
        # Each row is one butterfly group; the reshape is a view onto ``data``
        groups = data.reshape(-1, size)
        even = groups[:, :half].copy()
        odd = groups[:, half:] * twiddles
        groups[:, :half] = even + odd
        groups[:, half:] = even - odd
        size *= 2

    interleaved = np.empty(2 * n, dtype=np.float64)
    interleaved[0::2] = data.real
    interleaved[1::2] = data.imag
    return interleaved


def magnitudes(interleaved: np.ndarray) -> np.ndarray:
    """Magnitudes ``sqrt(re^2 + im^2)`` of the first half of an interleaved spectrum."""
    n = len(interleaved) // 2
    half = n // 2
    real = interleaved[0 : 2 * half : 2]
    imag = interleaved[1 : 2 * half : 2]
    return np.sqrt(real * real + imag * imag)
