"""
Voice enrollment: record a greeting, analyze it, and store voice features and context
on a profile so the person can be recognized later.
"""

from __future__ import annotations

from .constants import (
    ENROLLMENT_STEPS,
    GREETING_WORDS,
    SENTINEL_TRANSCRIPT,
    VOICE_ENROLLMENT_MIN_SEC,
)
from .recorder import record_utterance
from .voice_profile import contains_greeting, enroll_voice, transcribe_or_sentinel

__all__ = [
    "ENROLLMENT_STEPS",
    "GREETING_WORDS",
    "SENTINEL_TRANSCRIPT",
    "VOICE_ENROLLMENT_MIN_SEC",
    "contains_greeting",
    "enroll_voice",
    "record_utterance",
    "transcribe_or_sentinel",
]
