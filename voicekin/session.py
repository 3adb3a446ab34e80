"""
Voice session: owns the gallery and the microphone, and runs one audio flow at a time
(enrollment, live recognition, or conversation recording).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

import numpy as np

from . import VoiceComponents, VoiceFactory
from .conversation.merger import merge_conversation
from .conversation.recorder import ConversationRecorder
from .enrollment.recorder import record_utterance
from .enrollment.voice_profile import enroll_voice
from .models import Conversation, EnrollmentResult, Profile, ProfileId, TranscriptEvent
from .speaker.recognition import RecognitionLoop, RecognizedCallback
from .stt.base import QueueTranscriptStream

logger = logging.getLogger(__name__)


class VoiceSession:
    """
    Starting any flow first stops whichever flow holds the microphone. An interrupted
    conversation is finalized and merged like a normal stop.
    """

    def __init__(
        self,
        config: dict | None = None,
        settings_repo: Any = None,
        *,
        components: VoiceComponents | None = None,
        gallery: list[Profile] | None = None,
    ) -> None:
        self._factory = VoiceFactory(config, settings_repo)
        self._components = components or self._factory.create_components()
        self.gallery: list[Profile] = gallery if gallery is not None else []
        self._ids = itertools.count(
            max((p.id for p in self.gallery if isinstance(p.id, int)), default=0) + 1
        )
        self._lock = asyncio.Lock()
        self._recorder: ConversationRecorder | None = None
        self._recognition: RecognitionLoop | None = None
        self._transcripts: Any = None
        self._last_conversation: Conversation | None = None
        self._last_merged: list[ProfileId] = []

    @property
    def components(self) -> VoiceComponents:
        return self._components

    @property
    def capture(self) -> Any:
        return self._components.capture

    @property
    def active_flow(self) -> str | None:
        if self._recorder is not None and self._recorder.is_recording:
            return "conversation"
        if self._recognition is not None and self._recognition.is_listening:
            return "recognition"
        return None

    @property
    def recorder(self) -> ConversationRecorder | None:
        return self._recorder

    @property
    def recognition(self) -> RecognitionLoop | None:
        return self._recognition

    @property
    def last_conversation(self) -> Conversation | None:
        return self._last_conversation

    @property
    def last_merged_profile_ids(self) -> list[ProfileId]:
        return list(self._last_merged)

    # --- Profiles ---

    def add_profile(
        self, name: str, relationship: str = "", notes: str = "", profile_id: ProfileId | None = None
    ) -> Profile:
        if profile_id is None:
            profile_id = next(self._ids)
        elif any(p.id == profile_id for p in self.gallery):
            raise ValueError(f"Profile {profile_id!r} already exists")
        profile = Profile(id=profile_id, name=name, relationship=relationship, notes=notes)
        self.gallery.append(profile)
        return profile

    def get_profile(self, profile_id: ProfileId) -> Profile:
        for profile in self.gallery:
            if profile.id == profile_id:
                return profile
        raise KeyError(profile_id)

    def remove_profile(self, profile_id: ProfileId) -> Profile:
        profile = self.get_profile(profile_id)
        self.gallery.remove(profile)
        return profile

    # --- Microphone ownership ---

    async def _release_microphone(self) -> None:
        if self._recorder is not None and self._recorder.is_recording:
            logger.info("Stopping conversation recording to free the microphone")
            await self._finish_conversation()
        if self._recognition is not None and self._recognition.is_listening:
            logger.info("Stopping voice recognition to free the microphone")
            await self._recognition.stop()
        self._recognition = None

    def _new_transcript_stream(self) -> Any:
        self._transcripts = self._factory.create_transcript_stream(
            self._components.capture, self._components.stt
        )
        return self._transcripts

    def push_transcript(self, event: TranscriptEvent) -> bool:
        """Deliver an externally recognized transcript event to the active flow."""
        stream = self._transcripts
        if not isinstance(stream, QueueTranscriptStream):
            return False
        return stream.push(event)

    # --- Enrollment ---

    async def enroll(
        self,
        profile_id: ProfileId,
        samples: np.ndarray | bytes | None = None,
        sample_rate: int | None = None,
    ) -> EnrollmentResult:
        """
        Enroll a profile's voice from samples, or record a greeting from the microphone
        when samples is None. DeviceUnavailable propagates.
        """
        profile = self.get_profile(profile_id)
        capture = self._components.capture
        if samples is None:
            cfg = self._components.enrollment
            async with self._lock:
                await self._release_microphone()
                capture.start()
                try:
                    samples = await record_utterance(
                        capture,
                        max_duration_sec=float(cfg.get("max_duration_sec", 5.0)),
                        silence_sec=float(cfg.get("silence_sec", 1.0)),
                        silence_rms=float(cfg.get("silence_rms", 0.01)),
                    )
                finally:
                    capture.stop()
            sample_rate = capture.sample_rate
        rate = int(sample_rate or capture.sample_rate)
        return await asyncio.to_thread(
            enroll_voice, profile, samples, rate, self._components.stt
        )

    # --- Recognition ---

    async def start_recognition(
        self, on_recognized: RecognizedCallback | None = None
    ) -> RecognitionLoop:
        cfg = self._components.recognition
        async with self._lock:
            await self._release_microphone()
            loop = RecognitionLoop(
                self._components.capture,
                self.gallery,
                self._new_transcript_stream(),
                threshold=float(cfg.get("match_threshold", 0.4)),
                snippet_duration_sec=float(cfg.get("snippet_duration_sec", 3.0)),
                on_recognized=on_recognized,
            )
            await loop.start()
            self._recognition = loop
            return loop

    async def stop_recognition(self) -> None:
        async with self._lock:
            if self._recognition is not None:
                await self._recognition.stop()
                self._recognition = None

    # --- Conversation recording ---

    async def start_conversation(self) -> ConversationRecorder:
        async with self._lock:
            await self._release_microphone()
            recorder = ConversationRecorder(
                self._components.capture,
                self._new_transcript_stream(),
                self.gallery,
                self._components.recorder_config,
            )
            await recorder.start()
            self._recorder = recorder
            return recorder

    async def stop_conversation(self) -> Conversation | None:
        async with self._lock:
            return await self._finish_conversation()

    async def _finish_conversation(self) -> Conversation | None:
        if self._recorder is None:
            return None
        conversation = await self._recorder.stop()
        if conversation is not None:
            self._last_conversation = conversation
            self._last_merged = merge_conversation(conversation, self.gallery)
        return conversation

    def active_speakers(self) -> dict[ProfileId | None, int]:
        if self._recorder is None:
            return {}
        return self._recorder.active_speakers

    async def close(self) -> None:
        async with self._lock:
            await self._release_microphone()
        stt = self._components.stt
        if stt is not None:
            try:
                stt.stop()
            except Exception as e:
                logger.warning("Error stopping STT engine: %s", e)


__all__ = ["VoiceSession"]
