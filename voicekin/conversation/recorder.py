"""
Live conversation recorder: turns a transcript stream plus live audio into attributed
conversation segments.

State machine: IDLE -> RECORDING -> FINALIZING -> IDLE.

Final transcript chunks accumulate as pending text. A cut fires when the pending text
is longer than max_pending_chars or more than max_segment_interval_sec has passed since
the previous cut (the session start counts as the first cut). On a cut the text and
timestamp are frozen right away and a background task captures a short snippet and
identifies the speaker, so transcript ingestion never waits on audio. Segments are
committed in cut order; a failed identification still commits its text with unknown
attribution.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, NamedTuple, Sequence

from ..audio.features import extract_voice_features
from ..errors import SessionStateError, TranscriptionUnavailable
from ..models import Conversation, ConversationSegment, Profile, ProfileId, TranscriptEvent
from ..speaker.matcher import VOICE_MATCH_THRESHOLD_DEFAULT, identify_speaker
from ..stt.base import TranscriptStream
from .summary import summarize_conversation

logger = logging.getLogger(__name__)


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


@dataclass
class RecorderConfig:
    max_pending_chars: int = 30
    max_segment_interval_sec: float = 1.0
    snippet_duration_sec: float = 2.0
    final_snippet_duration_sec: float = 1.0
    stop_grace_sec: float = 2.5
    # Cut pending text once no chunk has arrived for this long; None disables
    idle_flush_sec: float | None = 3.0
    tick_interval_sec: float = 0.25
    match_threshold: float = VOICE_MATCH_THRESHOLD_DEFAULT

    @classmethod
    def from_dict(cls, cfg: dict[str, Any], match_threshold: float | None = None) -> "RecorderConfig":
        defaults = cls()
        idle = cfg.get("idle_flush_sec", defaults.idle_flush_sec)
        return cls(
            max_pending_chars=max(1, int(cfg.get("max_pending_chars", defaults.max_pending_chars))),
            max_segment_interval_sec=max(
                0.0, float(cfg.get("max_segment_interval_sec", defaults.max_segment_interval_sec))
            ),
            snippet_duration_sec=max(
                0.1, float(cfg.get("snippet_duration_sec", defaults.snippet_duration_sec))
            ),
            final_snippet_duration_sec=max(
                0.1,
                float(cfg.get("final_snippet_duration_sec", defaults.final_snippet_duration_sec)),
            ),
            stop_grace_sec=max(0.0, float(cfg.get("stop_grace_sec", defaults.stop_grace_sec))),
            idle_flush_sec=None if idle is None else max(0.0, float(idle)),
            tick_interval_sec=max(
                0.01, float(cfg.get("tick_interval_sec", defaults.tick_interval_sec))
            ),
            match_threshold=(
                match_threshold if match_threshold is not None else defaults.match_threshold
            ),
        )


class _Cut(NamedTuple):
    text: str
    timestamp_sec: float
    task: "asyncio.Task[ConversationSegment]"


class ConversationRecorder:
    """
    Records one conversation at a time. All mutable recording state (pending text,
    cut timer, in-flight identifications, segments) belongs to this instance.

    capture must provide start(), stop(), sample_rate and
    async capture_snippet(duration_sec). gallery is read on every identification, so
    profiles enrolled mid-recording are picked up.
    """

    def __init__(
        self,
        capture: Any,
        transcripts: TranscriptStream,
        gallery: Sequence[Profile],
        config: RecorderConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._capture = capture
        self._transcripts = transcripts
        self._gallery = gallery
        self._config = config or RecorderConfig()
        self._clock = clock
        self._wall_clock = wall_clock
        self._state = RecorderState.IDLE
        self._segments: list[ConversationSegment] = []
        self._inflight: deque[_Cut] = deque()
        self._pending_text = ""
        self._speaker_counts: dict[ProfileId | None, int] = {}
        self._origin = 0.0
        self._last_cut = 0.0
        self._last_chunk = 0.0
        self._start_time = 0.0
        self._consumer: asyncio.Task | None = None
        self._ticker: asyncio.Task | None = None
        self._last_conversation: Conversation | None = None

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is RecorderState.RECORDING

    @property
    def config(self) -> RecorderConfig:
        return self._config

    @property
    def segments(self) -> tuple[ConversationSegment, ...]:
        return tuple(self._segments)

    @property
    def pending_text(self) -> str:
        return self._pending_text.strip()

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    @property
    def active_speakers(self) -> dict[ProfileId | None, int]:
        """Committed segments per speaker id; None counts unknown speakers."""
        return dict(self._speaker_counts)

    @property
    def last_conversation(self) -> Conversation | None:
        return self._last_conversation

    async def start(self) -> None:
        """
        Begin recording. Raises SessionStateError unless IDLE and DeviceUnavailable
        when the microphone cannot be opened (state stays IDLE).
        """
        if self._state is not RecorderState.IDLE:
            raise SessionStateError(f"Cannot start recording while {self._state.value}")
        self._capture.start()
        self._segments = []
        self._inflight = deque()
        self._pending_text = ""
        self._speaker_counts = {}
        self._origin = self._clock()
        self._last_cut = self._origin
        self._last_chunk = self._origin
        self._start_time = self._wall_clock()
        self._state = RecorderState.RECORDING
        try:
            self._transcripts.start()
            self._consumer = asyncio.create_task(self._consume_transcripts())
        except TranscriptionUnavailable as e:
            logger.warning("Recording without live transcription: %s", e)
            self._consumer = None
        except Exception:
            self._state = RecorderState.IDLE
            self._capture.stop()
            raise
        self._ticker = asyncio.create_task(self._tick())
        logger.info("Conversation recording started")

    def ingest(self, event: TranscriptEvent) -> bool:
        """
        Append a final transcript chunk; returns True if it triggered a cut.
        Chunks are still accepted while stop() drains the transcript stream.
        """
        if self._state is RecorderState.IDLE or not event.is_final:
            return False
        text = (event.text or "").strip()
        if not text:
            return False
        now = self._clock()
        self._pending_text += text + " "
        self._last_chunk = now
        if self._should_cut(now):
            self._cut(now, self._config.snippet_duration_sec)
            return True
        return False

    def evaluate_idle_flush(self) -> bool:
        """Cut pending text that has not grown for idle_flush_sec. Returns True on a cut."""
        idle = self._config.idle_flush_sec
        if idle is None or self._state is not RecorderState.RECORDING:
            return False
        if not self._pending_text.strip():
            return False
        now = self._clock()
        if now - self._last_chunk < idle:
            return False
        self._cut(now, self._config.snippet_duration_sec)
        return True

    def _should_cut(self, now: float) -> bool:
        if not self._pending_text.strip():
            return False
        return (
            len(self._pending_text) > self._config.max_pending_chars
            or now - self._last_cut > self._config.max_segment_interval_sec
        )

    def _cut(self, now: float, snippet_duration_sec: float) -> None:
        text = self._pending_text.strip()
        self._pending_text = ""
        self._last_cut = now
        timestamp = max(0.0, now - self._origin)
        task = asyncio.create_task(self._attribute(text, timestamp, snippet_duration_sec))
        self._inflight.append(_Cut(text, timestamp, task))
        task.add_done_callback(self._on_attributed)
        logger.debug("Segment cut at %.2fs (%d chars)", timestamp, len(text))

    async def _attribute(
        self, text: str, timestamp: float, snippet_duration_sec: float
    ) -> ConversationSegment:
        try:
            samples = await self._capture.capture_snippet(snippet_duration_sec)
            features = await asyncio.to_thread(
                extract_voice_features, samples, self._capture.sample_rate
            )
            match = identify_speaker(features, list(self._gallery), self._config.match_threshold)
        except Exception as e:
            logger.warning("Speaker identification failed for segment at %.2fs: %s", timestamp, e)
            return ConversationSegment(text=text, timestamp_sec=timestamp)
        if match is None:
            return ConversationSegment(text=text, timestamp_sec=timestamp)
        profile = next((p for p in self._gallery if p.id == match.profile_id), None)
        return ConversationSegment(
            text=text,
            timestamp_sec=timestamp,
            speaker_id=match.profile_id,
            speaker_name=profile.name if profile is not None else None,
            confidence=match.similarity,
        )

    def _on_attributed(self, _task: asyncio.Task) -> None:
        while self._inflight and self._inflight[0].task.done():
            self._commit(self._resolve(self._inflight.popleft()))

    @staticmethod
    def _resolve(cut: _Cut) -> ConversationSegment:
        task = cut.task
        if task.done() and not task.cancelled() and task.exception() is None:
            return task.result()
        return ConversationSegment(text=cut.text, timestamp_sec=cut.timestamp_sec)

    def _commit(self, segment: ConversationSegment) -> None:
        self._segments.append(segment)
        key = segment.speaker_id
        self._speaker_counts[key] = self._speaker_counts.get(key, 0) + 1
        logger.debug(
            "Conversation segment added (speaker=%s, confidence=%.2f): %s",
            segment.speaker_name or "unknown",
            segment.confidence,
            segment.text,
        )

    async def _consume_transcripts(self) -> None:
        try:
            async for event in self._transcripts.events():
                self.ingest(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Transcript stream failed: %s", e)

    async def _tick(self) -> None:
        while self._state is RecorderState.RECORDING:
            await asyncio.sleep(self._config.tick_interval_sec)
            self.evaluate_idle_flush()

    async def stop(self) -> Conversation | None:
        """
        Finish recording and return the Conversation, or None when nothing was said.
        Transcript chunks already delivered are ingested (up to stop_grace_sec), then
        pending text is flushed as a last segment; identifications still running after
        stop_grace_sec are abandoned and saved with unknown attribution.
        Safe to call in any state.
        """
        if self._state is not RecorderState.RECORDING:
            return None
        self._state = RecorderState.FINALIZING
        try:
            await self._halt_ticker()
            try:
                self._transcripts.stop()
            except Exception as e:
                logger.warning("Error stopping transcript stream: %s", e)
            await self._drain_transcripts()
            if self._pending_text.strip():
                self._cut(self._clock(), self._config.final_snippet_duration_sec)
            await self._settle_inflight()
        finally:
            self._capture.stop()
            self._state = RecorderState.IDLE
        return self._finalize()

    async def _halt_ticker(self) -> None:
        task, self._ticker = self._ticker, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _drain_transcripts(self) -> None:
        """Let the consumer ingest everything queued before the stream's end marker."""
        task, self._consumer = self._consumer, None
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(task, timeout=self._config.stop_grace_sec)
        except asyncio.TimeoutError:
            logger.info(
                "Transcript stream not drained after %.1fs; dropping the rest",
                self._config.stop_grace_sec,
            )

    async def _settle_inflight(self) -> None:
        if not self._inflight:
            return
        tasks = [cut.task for cut in self._inflight]
        _, pending = await asyncio.wait(tasks, timeout=self._config.stop_grace_sec)
        if pending:
            logger.info(
                "%d speaker identification(s) unfinished after %.1fs; saving as unknown",
                len(pending),
                self._config.stop_grace_sec,
            )
            for task in pending:
                task.cancel()
        while self._inflight:
            self._commit(self._resolve(self._inflight.popleft()))

    def _finalize(self) -> Conversation | None:
        segments = tuple(self._segments)
        if not segments:
            logger.info("Conversation recording stopped with no segments")
            return None
        participants = tuple(
            dict.fromkeys(s.speaker_id for s in segments if s.speaker_id is not None)
        )
        conversation = Conversation(
            id=uuid.uuid4().hex,
            start_time=self._start_time,
            end_time=max(self._wall_clock(), self._start_time),
            segments=segments,
            summary=summarize_conversation(segments),
            participants=participants,
        )
        self._last_conversation = conversation
        logger.info(
            "Conversation %s recorded: %d segment(s), %d participant(s)",
            conversation.id,
            len(segments),
            len(participants),
        )
        return conversation


__all__ = ["ConversationRecorder", "RecorderConfig", "RecorderState"]
