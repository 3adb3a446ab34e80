"""
Volume level and sample conversion helpers for raw int16 LE audio.
"""

from __future__ import annotations

import numpy as np

INT16_MAX = 32767
INT16_MIN = -32768


def bytes_to_float(audio_bytes: bytes) -> np.ndarray:
    """Convert raw int16 mono bytes to float32 samples in [-1, 1]."""
    samples = np.frombuffer(audio_bytes, dtype=np.int16)
    return (samples.astype(np.float32) / 32768.0).flatten()


def as_float_samples(samples: np.ndarray | bytes) -> np.ndarray:
    """Return float64 samples in [-1, 1]; int16 input is scaled, bytes are decoded as int16 LE."""
    if isinstance(samples, (bytes, bytearray)):
        return bytes_to_float(bytes(samples)).astype(np.float64)
    arr = np.asarray(samples)
    if arr.dtype == np.int16:
        return arr.astype(np.float64).flatten() / 32768.0
    return arr.astype(np.float64).flatten()


def float_to_bytes(samples: np.ndarray) -> bytes:
    """Convert float samples in [-1, 1] to raw int16 LE bytes (clipped)."""
    scaled = np.clip(np.round(np.asarray(samples, dtype=np.float64) * 32768.0), INT16_MIN, INT16_MAX)
    return scaled.astype("<i2").tobytes()


def rms(samples: np.ndarray) -> float:
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


__all__ = [
    "INT16_MAX",
    "INT16_MIN",
    "as_float_samples",
    "bytes_to_float",
    "float_to_bytes",
    "rms",
]
