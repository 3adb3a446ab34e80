"""
Compare voice feature vectors and find the best match in an enrolled gallery.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Sequence

from ..models import Profile, VoiceFeatureVector, VoiceMatch

logger = logging.getLogger(__name__)

# Default minimum combined similarity for a gallery match
VOICE_MATCH_THRESHOLD_DEFAULT = 0.4
SPECTRAL_WEIGHT = 0.6
PITCH_WEIGHT = 0.2
ENERGY_WEIGHT = 0.2
# Differences at or beyond these tolerances contribute nothing
PITCH_TOLERANCE_HZ = 200.0
ENERGY_TOLERANCE = 0.5


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Plain cosine similarity; 0.0 for mismatched lengths or a zero-norm vector."""
    if len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def compare_voice_features(a: VoiceFeatureVector, b: VoiceFeatureVector) -> float:
    """
    Weighted similarity of two voices.
    The spectral cosine is not clamped, so a negative cosine can pull the score below
    the pitch/energy contribution alone.
    """
    spectral = cosine_similarity(a.spectral_coeffs, b.spectral_coeffs)
    pitch = max(0.0, 1.0 - abs(a.pitch_hz - b.pitch_hz) / PITCH_TOLERANCE_HZ)
    energy = max(0.0, 1.0 - abs(a.energy_rms - b.energy_rms) / ENERGY_TOLERANCE)
    return spectral * SPECTRAL_WEIGHT + pitch * PITCH_WEIGHT + energy * ENERGY_WEIGHT


def identify_speaker(
    features: VoiceFeatureVector,
    gallery: Iterable[Profile],
    threshold: float = VOICE_MATCH_THRESHOLD_DEFAULT,
) -> VoiceMatch | None:
    """
    Return the best-matching profile if its similarity is at least threshold.

    The gallery is scanned in the order given; profiles without a stored voice are
    skipped. Only a strictly higher score replaces the current best, so ties go to
    the earliest profile. An empty gallery yields None.
    """
    best: Profile | None = None
    best_similarity = 0.0
    for profile in gallery:
        stored = profile.voice_feature_vector
        if stored is None:
            continue
        similarity = compare_voice_features(features, stored)
        if best is None or similarity > best_similarity:
            best = profile
            best_similarity = similarity
    if best is None:
        logger.debug("No enrolled voices to compare against")
        return None
    if best_similarity < threshold:
        logger.debug(
            "Best voice match %s below threshold (%.3f < %.3f)",
            best.id,
            best_similarity,
            threshold,
        )
        return None
    return VoiceMatch(profile_id=best.id, similarity=best_similarity)


__all__ = [
    "VOICE_MATCH_THRESHOLD_DEFAULT",
    "compare_voice_features",
    "cosine_similarity",
    "identify_speaker",
]
