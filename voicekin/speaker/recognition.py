"""
Live voice recognition: listen for a greeting, then identify who said it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence

from ..audio.features import extract_voice_features
from ..enrollment.constants import RECOGNITION_SNIPPET_SEC
from ..enrollment.voice_profile import contains_greeting
from ..errors import TranscriptionUnavailable
from ..models import Profile, TranscriptEvent, VoiceMatch
from ..stt.base import TranscriptStream
from .matcher import VOICE_MATCH_THRESHOLD_DEFAULT, identify_speaker

logger = logging.getLogger(__name__)

RecognizedCallback = Callable[[Profile, float], None]


class RecognitionLoop:
    """
    Runs recognition cycles against the gallery while listening.

    A cycle is started by a final transcript containing a greeting, or by trigger().
    Only one cycle runs at a time; triggers that arrive while a cycle is in flight are
    dropped, not queued. After a successful match the loop disarms until rearm().
    """

    def __init__(
        self,
        capture: Any,
        gallery: Sequence[Profile],
        transcripts: TranscriptStream | None = None,
        *,
        threshold: float = VOICE_MATCH_THRESHOLD_DEFAULT,
        snippet_duration_sec: float = RECOGNITION_SNIPPET_SEC,
        on_recognized: RecognizedCallback | None = None,
    ) -> None:
        self._capture = capture
        self._gallery = gallery
        self._transcripts = transcripts
        self._threshold = threshold
        self._snippet_duration_sec = snippet_duration_sec
        self._on_recognized = on_recognized
        self._listening = False
        self._armed = False
        self._cycle: asyncio.Task | None = None
        self._consumer: asyncio.Task | None = None
        self._status = ""
        self._last_match: VoiceMatch | None = None
        self._skipped_cycles = 0

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_processing(self) -> bool:
        return self._cycle is not None and not self._cycle.done()

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def status_message(self) -> str:
        return self._status

    @property
    def last_match(self) -> VoiceMatch | None:
        return self._last_match

    @property
    def skipped_cycles(self) -> int:
        return self._skipped_cycles

    @property
    def current_cycle(self) -> asyncio.Task | None:
        return self._cycle

    async def start(self) -> None:
        """Open the microphone and start listening. DeviceUnavailable propagates."""
        if self._listening:
            return
        self._capture.start()
        self._listening = True
        self._armed = True
        self._last_match = None
        self._status = 'Listening... Say "hello"'
        if self._transcripts is not None:
            try:
                self._transcripts.start()
                self._consumer = asyncio.create_task(self._consume_transcripts())
            except TranscriptionUnavailable as e:
                logger.warning("Greeting detection disabled: %s", e)
        logger.info("Voice recognition listening")

    async def stop(self) -> None:
        self._armed = False
        self._listening = False
        for task in (self._consumer, self._cycle):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._consumer = None
        self._cycle = None
        if self._transcripts is not None:
            try:
                self._transcripts.stop()
            except Exception as e:
                logger.warning("Error stopping transcript stream: %s", e)
        self._capture.stop()
        self._status = ""
        logger.info("Voice recognition stopped")

    def rearm(self) -> None:
        if self._listening:
            self._armed = True
            self._status = 'Listening... Say "hello"'

    def on_transcript(self, event: TranscriptEvent) -> bool:
        if not event.is_final or not contains_greeting(event.text):
            return False
        if self._armed:
            self._status = 'Detected "hello"! Processing...'
        return self.trigger()

    def trigger(self) -> bool:
        """Start a recognition cycle; returns False if one is already running or the loop is disarmed."""
        if not self._listening or not self._armed:
            return False
        if self.is_processing:
            self._skipped_cycles += 1
            logger.debug("Recognition cycle already in flight; skipping")
            return False
        self._cycle = asyncio.create_task(self._run_cycle())
        return True

    async def _consume_transcripts(self) -> None:
        try:
            async for event in self._transcripts.events():
                self.on_transcript(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Transcript stream failed: %s", e)

    async def _run_cycle(self) -> VoiceMatch | None:
        if not any(p.voice_feature_vector is not None for p in self._gallery):
            self._status = "No voice profiles added yet!"
            return None
        self._status = "Analyzing voice..."
        try:
            samples = await self._capture.capture_snippet(self._snippet_duration_sec)
            features = await asyncio.to_thread(
                extract_voice_features, samples, self._capture.sample_rate
            )
        except Exception as e:
            logger.warning("Voice recognition cycle failed: %s", e)
            self._status = "Error analyzing voice. Try again."
            return None
        match = identify_speaker(features, list(self._gallery), self._threshold)
        if match is None:
            self._status = "Voice not recognized. Try again."
            return None
        profile = next((p for p in self._gallery if p.id == match.profile_id), None)
        if profile is None:
            self._status = "Voice not recognized. Try again."
            return None
        self._armed = False
        self._last_match = match
        self._status = f"Recognized: {profile.name} ({round(match.similarity * 100)}% match)"
        logger.info("Recognized %s by voice (similarity=%.2f)", profile.name, match.similarity)
        if self._on_recognized is not None:
            try:
                self._on_recognized(profile, match.similarity)
            except Exception as e:
                logger.warning("on_recognized callback failed: %s", e)
        return match


__all__ = ["RecognitionLoop", "RecognizedCallback"]
