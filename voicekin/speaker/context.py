"""
Qualitative voice context (tone, emotion, speed, volume) from a greeting recording.
Rules are ordered; the first matching rule wins.
"""

from __future__ import annotations

import logging

import numpy as np

from ..audio.features import estimate_pitch, zero_crossing_rate
from ..audio.level import as_float_samples, rms
from ..errors import InvalidInput
from ..models import Emotion, Speed, Tone, VoiceContext, Volume

logger = logging.getLogger(__name__)

NEUTRAL_DESCRIPTION = "speaks in a neutral manner"

_TONE_PHRASES = {
    Tone.WARM: "speaks with a warm, friendly tone",
    Tone.EXCITED: "sounds excited and enthusiastic",
    Tone.CALM: "speaks calmly and peacefully",
    Tone.COLD: "has a more reserved, formal tone",
}
_EMOTION_PHRASES = {
    Emotion.HAPPY: "sounds happy and cheerful",
    Emotion.ENERGETIC: "has high energy",
    Emotion.TIRED: "sounds tired or low-energy",
    Emotion.SAD: "sounds a bit down",
}
_SPEED_PHRASES = {
    Speed.FAST: "speaks quickly",
    Speed.SLOW: "speaks slowly and deliberately",
}
_VOLUME_PHRASES = {
    Volume.LOUD: "speaks loudly",
    Volume.QUIET: "speaks quietly",
}


def classify_speed(words_per_second: float) -> Speed:
    if words_per_second > 3:
        return Speed.FAST
    if words_per_second < 1.5:
        return Speed.SLOW
    return Speed.NORMAL


def classify_volume(energy: float) -> Volume:
    if energy > 0.1:
        return Volume.LOUD
    if energy < 0.03:
        return Volume.QUIET
    return Volume.NORMAL


def classify_tone(pitch: float, energy: float) -> Tone:
    if pitch > 200 and energy > 0.08:
        return Tone.EXCITED
    if pitch < 150 and energy < 0.05:
        return Tone.CALM
    if pitch > 180 and energy > 0.06:
        return Tone.WARM
    if pitch < 140:
        return Tone.COLD
    return Tone.NEUTRAL


def classify_emotion(pitch: float, energy: float, speed: Speed) -> Emotion:
    if pitch > 200 and speed is Speed.FAST:
        return Emotion.ENERGETIC
    if pitch > 180 and energy > 0.07:
        return Emotion.HAPPY
    if pitch < 140 and energy < 0.04 and speed is Speed.SLOW:
        return Emotion.TIRED
    if pitch < 150 and energy < 0.05:
        return Emotion.SAD
    return Emotion.NEUTRAL


def context_confidence(energy: float, zcr: float) -> float:
    """Clarity score: louder speech with a zero crossing rate near 0.1 scores higher."""
    value = (energy * 5) * (1 - abs(zcr - 0.1) * 10)
    return min(1.0, max(0.0, value))


def describe_voice(
    tone: Tone, emotion: Emotion, speed: Speed, volume: Volume, confidence: float
) -> str:
    parts: list[str] = []
    for phrase in (
        _TONE_PHRASES.get(tone),
        _EMOTION_PHRASES.get(emotion),
        _SPEED_PHRASES.get(speed),
        _VOLUME_PHRASES.get(volume),
    ):
        if phrase:
            parts.append(phrase)
    if confidence > 0.7:
        parts.append("speaks with confidence")
    if confidence < 0.4:
        parts.append("sounds uncertain or hesitant")
    if not parts:
        return NEUTRAL_DESCRIPTION
    return ", ".join(parts)


def analyze_voice_context(
    samples: np.ndarray | bytes, sample_rate: int, transcript: str
) -> VoiceContext:
    """
    Classify how the speaker sounds in this recording.
    Speed uses whitespace-separated words of transcript over the buffer duration.
    Raises InvalidInput for an empty buffer.
    """
    data = as_float_samples(samples)
    if data.size == 0:
        raise InvalidInput("Audio buffer is empty")
    if sample_rate <= 0:
        raise InvalidInput(f"Invalid sample rate: {sample_rate}")
    duration = data.size / sample_rate
    energy = rms(data)
    pitch = estimate_pitch(data, sample_rate)
    zcr = zero_crossing_rate(data)

    words_per_second = len((transcript or "").split()) / duration
    speed = classify_speed(words_per_second)
    volume = classify_volume(energy)
    tone = classify_tone(pitch, energy)
    emotion = classify_emotion(pitch, energy, speed)
    confidence = context_confidence(energy, zcr)
    description = describe_voice(tone, emotion, speed, volume, confidence)
    logger.debug(
        "Voice context: tone=%s emotion=%s speed=%s volume=%s confidence=%.2f",
        tone.value,
        emotion.value,
        speed.value,
        volume.value,
        confidence,
    )
    return VoiceContext(
        tone=tone,
        emotion=emotion,
        speed=speed,
        volume=volume,
        confidence=confidence,
        description=description,
    )


__all__ = [
    "NEUTRAL_DESCRIPTION",
    "analyze_voice_context",
    "classify_emotion",
    "classify_speed",
    "classify_tone",
    "classify_volume",
    "context_confidence",
    "describe_voice",
]
