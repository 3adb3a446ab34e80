"""
Speech-to-text boundary: engine interface and ordered transcript event streams.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import numpy as np

from ..errors import TranscriptionUnavailable
from ..models import TranscriptEvent

logger = logging.getLogger(__name__)

_END = object()


class STTEngine(ABC):
    """Transcribes 16 kHz mono int16 PCM. start() loads the model; stop() releases it."""

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def transcribe(self, audio_bytes: bytes) -> str:
        """Return the recognized text, or "" when nothing was heard."""


class TranscriptStream(ABC):
    """
    Ordered channel of TranscriptEvents for one recording.
    start() must be called from the event loop that will iterate events().
    """

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def events(self) -> AsyncIterator[TranscriptEvent]: ...


class _LoopQueue:
    """asyncio.Queue fed from any thread; arrival order is preserved."""

    def __init__(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    def put(self, item: Any) -> None:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            logger.debug("Transcript loop closed; dropping item")

    async def get(self) -> Any:
        return await self._queue.get()


class QueueTranscriptStream(TranscriptStream):
    """
    Transcript events pushed by an external recognizer (e.g. a browser speech API
    relayed over HTTP). push() is thread-safe.
    """

    def __init__(self) -> None:
        self._queue: _LoopQueue | None = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def start(self) -> None:
        self._queue = _LoopQueue()
        self._open = True

    def stop(self) -> None:
        # Events already queued are still delivered before the end marker
        if self._open:
            self._open = False
            self._queue.put(_END)

    def push(self, event: TranscriptEvent) -> bool:
        """Queue an event; returns False when the stream is not open."""
        if not self._open:
            logger.debug("Transcript stream not open; dropping %r", event)
            return False
        self._queue.put(event)
        return True

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        queue = self._queue
        if queue is None:
            return
        while True:
            item = await queue.get()
            if item is _END:
                return
            yield item


class ChunkedTranscriptStream(TranscriptStream):
    """
    Feeds fixed-length chunks of live capture audio to an STTEngine and emits each
    non-empty result as a final TranscriptEvent. Transcription runs in a worker thread;
    chunks are transcribed one at a time so event order follows audio order.
    """

    def __init__(self, engine: STTEngine, capture: Any, chunk_duration_sec: float = 3.0) -> None:
        self._engine = engine
        self._capture = capture
        self._chunk_frames = max(1, int(capture.sample_rate * chunk_duration_sec))
        self._pending: list[np.ndarray] = []
        self._pending_frames = 0
        self._queue: _LoopQueue | None = None
        self._open = False

    def start(self) -> None:
        self._engine.start()
        if not self._engine.is_available():
            raise TranscriptionUnavailable("Speech-to-text engine has no model loaded")
        self._queue = _LoopQueue()
        self._open = True
        self._pending = []
        self._pending_frames = 0
        self._capture.add_listener(self._on_frames)

    def stop(self) -> None:
        """Transcribe the partial last chunk, then end the event stream."""
        self._capture.remove_listener(self._on_frames)
        if self._open:
            self._open = False
            if self._pending_frames:
                self._queue.put(self._take_chunk())
            self._queue.put(_END)

    def _take_chunk(self) -> bytes:
        chunk = np.concatenate(self._pending).astype(np.int16).tobytes()
        self._pending = []
        self._pending_frames = 0
        return chunk

    def _on_frames(self, block: np.ndarray) -> None:
        self._pending.append(block)
        self._pending_frames += block.size
        if self._pending_frames < self._chunk_frames:
            return
        chunk = self._take_chunk()
        if self._open:
            self._queue.put(chunk)

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        queue = self._queue
        if queue is None:
            return
        while True:
            item = await queue.get()
            if item is _END:
                return
            text = (await asyncio.to_thread(self._engine.transcribe, item) or "").strip()
            if text:
                yield TranscriptEvent(is_final=True, text=text)


__all__ = [
    "ChunkedTranscriptStream",
    "QueueTranscriptStream",
    "STTEngine",
    "TranscriptStream",
]
