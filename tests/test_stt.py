"""
Tests for transcript streams.
"""

import asyncio

import numpy as np
import pytest

from conftest import FakeCapture, FakeSTT
from voicekin.errors import TranscriptionUnavailable
from voicekin.models import TranscriptEvent
from voicekin.stt.base import ChunkedTranscriptStream, QueueTranscriptStream


async def _collect(stream, count):
    events = []
    async for event in stream.events():
        events.append(event)
        if len(events) == count:
            break
    return events


@pytest.mark.asyncio
async def test_queue_stream_preserves_order():
    stream = QueueTranscriptStream()
    assert not stream.push(TranscriptEvent(True, "too early"))

    stream.start()
    for text in ("one", "two", "three"):
        assert stream.push(TranscriptEvent(True, text))

    events = await asyncio.wait_for(_collect(stream, 3), timeout=1.0)
    assert [e.text for e in events] == ["one", "two", "three"]


@pytest.mark.asyncio
async def test_queue_stream_stop_ends_iteration():
    stream = QueueTranscriptStream()
    stream.start()
    consumer = asyncio.create_task(_collect(stream, 10))
    stream.push(TranscriptEvent(True, "only"))
    stream.stop()

    events = await asyncio.wait_for(consumer, timeout=1.0)

    assert [e.text for e in events] == ["only"]
    assert not stream.push(TranscriptEvent(True, "late"))


@pytest.mark.asyncio
async def test_chunked_stream_transcribes_chunks_and_tail():
    capture = FakeCapture(sample_rate=1000)
    engine = FakeSTT(text="hello there")
    stream = ChunkedTranscriptStream(engine, capture, chunk_duration_sec=0.5)
    stream.start()

    for _ in range(7):
        capture.publish(np.ones(100, dtype=np.int16))
    stream.stop()

    events = await asyncio.wait_for(_collect(stream, 10), timeout=2.0)

    assert events == [TranscriptEvent(is_final=True, text="hello there")] * 2
    assert [len(call) for call in engine.calls] == [500 * 2, 200 * 2]
    assert capture.listeners == []


@pytest.mark.asyncio
async def test_chunked_stream_stop_transcribes_short_recording():
    capture = FakeCapture(sample_rate=1000)
    engine = FakeSTT(text="see you tomorrow")
    stream = ChunkedTranscriptStream(engine, capture, chunk_duration_sec=3.0)
    stream.start()

    for _ in range(20):
        capture.publish(np.ones(100, dtype=np.int16))
    assert engine.calls == []
    stream.stop()

    events = await asyncio.wait_for(_collect(stream, 10), timeout=2.0)

    assert events == [TranscriptEvent(is_final=True, text="see you tomorrow")]
    assert len(engine.calls[0]) == 2000 * 2


@pytest.mark.asyncio
async def test_chunked_stream_stop_without_audio_sends_nothing():
    capture = FakeCapture(sample_rate=1000)
    engine = FakeSTT()
    stream = ChunkedTranscriptStream(engine, capture, chunk_duration_sec=1.0)
    stream.start()
    stream.stop()

    assert await asyncio.wait_for(_collect(stream, 10), timeout=2.0) == []
    assert engine.calls == []


@pytest.mark.asyncio
async def test_chunked_stream_skips_empty_results():
    capture = FakeCapture(sample_rate=1000)
    stream = ChunkedTranscriptStream(FakeSTT(text=""), capture, chunk_duration_sec=0.1)
    stream.start()
    capture.publish(np.ones(100, dtype=np.int16))
    stream.stop()

    assert await asyncio.wait_for(_collect(stream, 10), timeout=2.0) == []


@pytest.mark.asyncio
async def test_chunked_stream_requires_loaded_engine():
    stream = ChunkedTranscriptStream(FakeSTT(available=False), FakeCapture(), chunk_duration_sec=1.0)

    with pytest.raises(TranscriptionUnavailable):
        stream.start()
