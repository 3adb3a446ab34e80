"""Error taxonomy for voice capture, recognition and conversation recording."""

from __future__ import annotations


class VoiceError(Exception):
    """Base class for all voicekin errors."""


class InvalidInput(VoiceError):
    """Audio buffer is empty or otherwise unusable (e.g. zero samples, bad sample rate)."""


class DeviceUnavailable(VoiceError):
    """Microphone could not be opened or failed while streaming. Fatal to the current flow."""


class RecognitionUnavailable(VoiceError):
    """Taxonomy only, never raised: identify_speaker returns None for an empty gallery."""


class TranscriptionUnavailable(VoiceError):
    """Speech-to-text engine is missing or not loaded."""


class SessionStateError(VoiceError):
    """Operation is not valid in the current recorder/session state."""


__all__ = [
    "DeviceUnavailable",
    "InvalidInput",
    "RecognitionUnavailable",
    "SessionStateError",
    "TranscriptionUnavailable",
    "VoiceError",
]
