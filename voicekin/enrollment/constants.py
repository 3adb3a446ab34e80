"""Shared enrollment constants: recording limits, greeting words and UI step list."""

from __future__ import annotations

# Recording stops after this long even if the speaker keeps talking
ENROLLMENT_MAX_DURATION_SEC = 5.0
# ...or once this much silence follows speech
ENROLLMENT_SILENCE_SEC = 1.0
# Block RMS (0-1) at or below this counts as silence
ENROLLMENT_SILENCE_RMS = 0.01
# Shorter recordings are rejected
VOICE_ENROLLMENT_MIN_SEC = 0.5

GREETING_WORDS = frozenset({"hello", "hi", "hey"})
# Used as the transcript when speech-to-text is unavailable
SENTINEL_TRANSCRIPT = "hello"

# Live recognition listens this long after a greeting is heard
RECOGNITION_SNIPPET_SEC = 3.0

ENROLLMENT_STEPS = [
    {
        "id": "greeting",
        "title": "Say hello",
        "description": 'Ask the person to say "hello", "hi" or "hey" in their normal voice. Recording stops after a second of silence.',
        "max_seconds": ENROLLMENT_MAX_DURATION_SEC,
    },
    {
        "id": "review",
        "title": "Review voice analysis",
        "description": "Check the tone, emotion, speed and volume that were detected, then save the profile.",
    },
]
