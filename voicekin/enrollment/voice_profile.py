"""
Voice enrollment: turn a recorded greeting into a profile's voice features and context.
Speech-to-text is best effort; when it is missing or hears nothing the sentinel
transcript is used so enrollment still works.
"""

from __future__ import annotations

import logging
import string
from typing import Any

import numpy as np

from ..audio.features import extract_voice_features
from ..audio.level import as_float_samples, float_to_bytes
from ..errors import TranscriptionUnavailable, VoiceError
from ..models import EnrollmentResult, Profile
from ..speaker.context import analyze_voice_context
from .constants import GREETING_WORDS, SENTINEL_TRANSCRIPT, VOICE_ENROLLMENT_MIN_SEC

logger = logging.getLogger(__name__)


def contains_greeting(text: str) -> bool:
    """True if any whitespace-separated word (ignoring punctuation) is a greeting."""
    for word in (text or "").lower().split():
        if word.strip(string.punctuation) in GREETING_WORDS:
            return True
    return False


def transcribe_or_sentinel(
    stt_engine: Any | None, samples: np.ndarray, sample_rate: int
) -> str:
    """Transcribe samples; any STT failure or empty result yields SENTINEL_TRANSCRIPT."""
    try:
        if stt_engine is None:
            raise TranscriptionUnavailable("No speech-to-text engine configured")
        if not stt_engine.is_available():
            stt_engine.start()
        if not stt_engine.is_available():
            raise TranscriptionUnavailable("Speech-to-text engine has no model loaded")
        if sample_rate != 16000:
            logger.debug("Transcribing %s Hz audio; engines expect 16000 Hz", sample_rate)
        text = (stt_engine.transcribe(float_to_bytes(samples)) or "").strip()
    except Exception as e:
        logger.debug("Enrollment transcription unavailable, using sentinel: %s", e)
        return SENTINEL_TRANSCRIPT
    return text or SENTINEL_TRANSCRIPT


def enroll_voice(
    profile: Profile,
    samples: np.ndarray | bytes,
    sample_rate: int,
    stt_engine: Any | None = None,
) -> EnrollmentResult:
    """
    Analyze a greeting and store the result on profile, replacing any earlier voice.

    The transcript must contain "hello", "hi" or "hey"; otherwise the profile is left
    unchanged. Returns an EnrollmentResult and never raises.
    """
    try:
        data = as_float_samples(samples)
        if sample_rate <= 0:
            return EnrollmentResult(False, f"Invalid sample rate: {sample_rate}")
        duration_sec = data.size / sample_rate
        if duration_sec < VOICE_ENROLLMENT_MIN_SEC:
            return EnrollmentResult(
                False,
                f"Need at least {VOICE_ENROLLMENT_MIN_SEC:.1f} seconds of audio; got {duration_sec:.1f}s",
            )
        transcript = transcribe_or_sentinel(stt_engine, data, sample_rate)
        if not contains_greeting(transcript):
            return EnrollmentResult(
                False, 'Please say "hello", "hi", or "hey"', transcript=transcript
            )
        features = extract_voice_features(data, sample_rate)
        context = analyze_voice_context(data, sample_rate, transcript)
    except VoiceError as e:
        return EnrollmentResult(False, str(e))
    except Exception as e:
        logger.exception("Voice enrollment failed: %s", e)
        return EnrollmentResult(False, str(e))
    profile.voice_feature_vector = features
    profile.voice_context = context
    logger.info(
        "Voice enrolled for %s (%.1fs, pitch=%.0f Hz, %s)",
        profile.name,
        duration_sec,
        features.pitch_hz,
        context.description,
    )
    return EnrollmentResult(
        True,
        f"Voice captured for {profile.name} ({duration_sec:.1f}s).",
        features,
        context,
        transcript,
    )
