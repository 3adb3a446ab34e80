"""
Voice feature extraction for speaker identification.

The descriptor is deliberately simple: RMS energy, autocorrelation pitch, zero
crossing rate and 13 log-magnitude bins from a direct DFT of the first frame.
It is not a mel-frequency cepstrum; the O(N^2) DFT and the brute-force pitch
search are kept as-is so stored profiles stay comparable.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from ..errors import InvalidInput
from ..models import NUM_SPECTRAL_COEFFS, VoiceFeatureVector
from .level import as_float_samples, rms

logger = logging.getLogger(__name__)

FRAME_SIZE = 512
PITCH_MIN_HZ = 80
PITCH_MAX_HZ = 800
LOG_FLOOR = 1e-10


def estimate_pitch(samples: np.ndarray, sample_rate: int) -> float:
    """
    Autocorrelation pitch estimate in Hz.
    Scans lags for 800 Hz down to 80 Hz and keeps the lag with the largest positive
    correlation sum. Returns 0.0 when no lag correlates positively (silence).
    """
    min_period = int(math.floor(sample_rate / PITCH_MAX_HZ))
    max_period = int(math.floor(sample_rate / PITCH_MIN_HZ))
    n = samples.size
    max_correlation = 0.0
    best_period = 0
    period = max(min_period, 0)
    while period < max_period and period < n / 2:
        correlation = float(np.dot(samples[: n - period], samples[period:]))
        if correlation > max_correlation:
            max_correlation = correlation
            best_period = period
        period += 1
    if best_period <= 0:
        return 0.0
    return sample_rate / best_period


def zero_crossing_rate(samples: np.ndarray) -> float:
    """Sign changes between adjacent samples divided by the buffer length."""
    if samples.size == 0:
        return 0.0
    negative = samples < 0
    crossings = int(np.count_nonzero(negative[1:] != negative[:-1]))
    return crossings / samples.size


def dft_magnitudes(frame: np.ndarray) -> np.ndarray:
    """Magnitude spectrum by direct DFT (no FFT); O(N^2) in the frame length."""
    n = frame.size
    idx = np.arange(n)
    angle = 2.0 * np.pi * np.outer(idx, idx) / n
    real = np.cos(angle) @ frame
    imag = -(np.sin(angle) @ frame)
    return np.sqrt(real * real + imag * imag)


def spectral_coefficients(samples: np.ndarray) -> tuple[float, ...]:
    fft_size = min(FRAME_SIZE, samples.size)
    spectrum = dft_magnitudes(samples[:fft_size])
    coeffs = []
    for i in range(NUM_SPECTRAL_COEFFS):
        freq_bin = int(math.floor((i + 1) * (fft_size / 2) / (NUM_SPECTRAL_COEFFS + 1)))
        coeffs.append(float(math.log(abs(spectrum[freq_bin]) + LOG_FLOOR)))
    return tuple(coeffs)


def extract_voice_features(
    samples: np.ndarray | bytes, sample_rate: int
) -> VoiceFeatureVector:
    """
    Build a VoiceFeatureVector from a mono buffer.

    Accepts float samples in [-1, 1], int16 samples, or raw int16 LE bytes.
    Raises InvalidInput for an empty buffer or a non-positive sample rate.
    """
    data = as_float_samples(samples)
    if data.size == 0:
        raise InvalidInput("Audio buffer is empty")
    if sample_rate <= 0:
        raise InvalidInput(f"Invalid sample rate: {sample_rate}")
    features = VoiceFeatureVector(
        spectral_coeffs=spectral_coefficients(data),
        pitch_hz=estimate_pitch(data, sample_rate),
        energy_rms=rms(data),
        duration_sec=data.size / sample_rate,
        zero_crossing_rate=zero_crossing_rate(data),
    )
    logger.debug(
        "Extracted voice features (pitch=%.1f Hz, energy=%.4f, zcr=%.3f, %.2fs)",
        features.pitch_hz,
        features.energy_rms,
        features.zero_crossing_rate,
        features.duration_sec,
    )
    return features


__all__ = [
    "dft_magnitudes",
    "estimate_pitch",
    "extract_voice_features",
    "spectral_coefficients",
    "zero_crossing_rate",
]
