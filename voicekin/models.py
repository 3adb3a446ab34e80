"""
Plain data types handed between the voice pipeline and the UI/session layer.
All types are side-effect free and expose to_dict() for JSON responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple, Union

ProfileId = Union[int, str]

# Number of spectral coefficients in a VoiceFeatureVector
NUM_SPECTRAL_COEFFS = 13
# Profiles keep at most this many conversations, oldest evicted first
CONVERSATION_HISTORY_LIMIT = 10


class Tone(str, Enum):
    WARM = "warm"
    NEUTRAL = "neutral"
    COLD = "cold"
    EXCITED = "excited"
    CALM = "calm"


class Emotion(str, Enum):
    HAPPY = "happy"
    NEUTRAL = "neutral"
    SAD = "sad"
    ENERGETIC = "energetic"
    TIRED = "tired"


class Speed(str, Enum):
    FAST = "fast"
    NORMAL = "normal"
    SLOW = "slow"


class Volume(str, Enum):
    LOUD = "loud"
    NORMAL = "normal"
    QUIET = "quiet"


@dataclass(frozen=True)
class VoiceFeatureVector:
    """Speaker-characteristic descriptor of one audio buffer."""

    spectral_coeffs: tuple[float, ...]
    pitch_hz: float
    energy_rms: float
    duration_sec: float
    zero_crossing_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "spectral_coeffs": list(self.spectral_coeffs),
            "pitch_hz": self.pitch_hz,
            "energy_rms": self.energy_rms,
            "duration_sec": self.duration_sec,
            "zero_crossing_rate": self.zero_crossing_rate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VoiceFeatureVector":
        return cls(
            spectral_coeffs=tuple(float(c) for c in data["spectral_coeffs"]),
            pitch_hz=float(data["pitch_hz"]),
            energy_rms=float(data["energy_rms"]),
            duration_sec=float(data.get("duration_sec", 0.0)),
            zero_crossing_rate=float(data.get("zero_crossing_rate", 0.0)),
        )


@dataclass(frozen=True)
class VoiceContext:
    """Qualitative impression of how someone speaks."""

    tone: Tone
    emotion: Emotion
    speed: Speed
    volume: Volume
    confidence: float
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "tone": self.tone.value,
            "emotion": self.emotion.value,
            "speed": self.speed.value,
            "volume": self.volume.value,
            "confidence": self.confidence,
            "description": self.description,
        }


@dataclass(frozen=True)
class ConversationSegment:
    """One attributed span of transcribed speech."""

    text: str
    timestamp_sec: float
    speaker_id: ProfileId | None = None
    speaker_name: str | None = None
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "speaker_id": self.speaker_id,
            "speaker_name": self.speaker_name,
            "text": self.text,
            "timestamp_sec": self.timestamp_sec,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Conversation:
    """A finalized conversation. start_time/end_time are epoch seconds."""

    id: str
    start_time: float
    end_time: float
    segments: tuple[ConversationSegment, ...]
    summary: str
    participants: tuple[ProfileId, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "segments": [s.to_dict() for s in self.segments],
            "summary": self.summary,
            "participants": list(self.participants),
        }


@dataclass
class Profile:
    """Enrolled person. Only voice-relevant fields plus free-text notes."""

    id: ProfileId
    name: str
    relationship: str = ""
    notes: str = ""
    voice_feature_vector: VoiceFeatureVector | None = None
    voice_context: VoiceContext | None = None
    last_conversation: Conversation | None = None
    conversation_history: list[Conversation] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "relationship": self.relationship,
            "notes": self.notes,
            "voice_feature_vector": (
                self.voice_feature_vector.to_dict()
                if self.voice_feature_vector is not None
                else None
            ),
            "voice_context": (
                self.voice_context.to_dict() if self.voice_context is not None else None
            ),
            "last_conversation": (
                self.last_conversation.to_dict()
                if self.last_conversation is not None
                else None
            ),
            "conversation_history": [c.to_dict() for c in self.conversation_history],
        }


class TranscriptEvent(NamedTuple):
    """Speech-to-text output: only is_final events are consumed downstream."""

    is_final: bool
    text: str


class VoiceMatch(NamedTuple):
    """Best gallery match for a feature vector."""

    profile_id: ProfileId
    similarity: float


class EnrollmentResult(NamedTuple):
    success: bool
    message: str
    features: VoiceFeatureVector | None = None
    context: VoiceContext | None = None
    transcript: str = ""


__all__ = [
    "CONVERSATION_HISTORY_LIMIT",
    "Conversation",
    "ConversationSegment",
    "Emotion",
    "EnrollmentResult",
    "NUM_SPECTRAL_COEFFS",
    "Profile",
    "ProfileId",
    "Speed",
    "Tone",
    "TranscriptEvent",
    "VoiceContext",
    "VoiceFeatureVector",
    "VoiceMatch",
    "Volume",
]
