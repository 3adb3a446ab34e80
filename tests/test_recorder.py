"""
Tests for the live conversation recorder.
"""

import asyncio

import pytest

from conftest import FakeCapture, Gate
from voicekin.conversation.recorder import ConversationRecorder, RecorderConfig, RecorderState
from voicekin.errors import DeviceUnavailable, SessionStateError
from voicekin.models import TranscriptEvent
from voicekin.stt.base import QueueTranscriptStream, TranscriptStream

LONG_TEXT = "this sentence is comfortably longer than thirty chars"


def _recorder(capture, gallery, clock, **overrides):
    config = RecorderConfig(idle_flush_sec=None, **overrides)
    return ConversationRecorder(
        capture,
        QueueTranscriptStream(),
        gallery,
        config,
        clock=clock,
        wall_clock=lambda: 1_700_000_000.0 + clock(),
    )


def _final(text):
    return TranscriptEvent(is_final=True, text=text)


@pytest.mark.asyncio
async def test_stop_right_after_start_returns_none(gallery, clock, voice_a):
    capture = FakeCapture(snippet=voice_a)
    recorder = _recorder(capture, gallery, clock)

    await recorder.start()
    assert recorder.state is RecorderState.RECORDING
    assert capture.is_running

    assert await recorder.stop() is None
    assert recorder.state is RecorderState.IDLE
    assert not capture.is_running


@pytest.mark.asyncio
async def test_stop_when_idle_returns_none(gallery, clock):
    recorder = _recorder(FakeCapture(), gallery, clock)

    assert await recorder.stop() is None


@pytest.mark.asyncio
async def test_start_twice_is_rejected(gallery, clock, voice_a):
    recorder = _recorder(FakeCapture(snippet=voice_a), gallery, clock)
    await recorder.start()

    with pytest.raises(SessionStateError):
        await recorder.start()

    await recorder.stop()


@pytest.mark.asyncio
async def test_device_failure_leaves_recorder_idle(gallery, clock):
    recorder = _recorder(FakeCapture(fail_start=True), gallery, clock)

    with pytest.raises(DeviceUnavailable):
        await recorder.start()

    assert recorder.state is RecorderState.IDLE


@pytest.mark.asyncio
async def test_chunks_accumulate_until_interval_elapses(gallery, clock, voice_a):
    capture = FakeCapture(snippet=voice_a)
    recorder = _recorder(capture, gallery, clock)
    await recorder.start()

    clock.now = 0.2
    assert not recorder.ingest(_final("abcde"))
    clock.now = 0.3
    assert not recorder.ingest(_final("fghijk"))
    clock.now = 1.5
    assert recorder.ingest(_final("lmnopqrst"))

    conversation = await recorder.stop()

    assert len(conversation.segments) == 1
    segment = conversation.segments[0]
    assert segment.text == "abcde fghijk lmnopqrst"
    assert segment.timestamp_sec == pytest.approx(1.5)
    assert segment.speaker_id == 1
    assert segment.speaker_name == "Alice"
    assert conversation.participants == (1,)
    assert conversation.end_time >= conversation.start_time
    assert conversation.summary.startswith("Conversation with Alice.")


@pytest.mark.asyncio
async def test_long_pending_text_cuts_immediately(gallery, clock, voice_a):
    recorder = _recorder(FakeCapture(snippet=voice_a), gallery, clock)
    await recorder.start()

    clock.now = 0.1
    assert recorder.ingest(_final(LONG_TEXT))
    assert recorder.pending_text == ""

    conversation = await recorder.stop()
    assert [s.text for s in conversation.segments] == [LONG_TEXT]


@pytest.mark.asyncio
async def test_non_final_and_blank_events_are_ignored(gallery, clock, voice_a):
    recorder = _recorder(FakeCapture(snippet=voice_a), gallery, clock)
    await recorder.start()

    clock.now = 2.0
    assert not recorder.ingest(TranscriptEvent(is_final=False, text=LONG_TEXT))
    assert not recorder.ingest(_final("   "))
    assert recorder.pending_text == ""

    assert await recorder.stop() is None


@pytest.mark.asyncio
async def test_failing_snippet_still_yields_segment(gallery, clock):
    capture = FakeCapture()
    capture.snippets.append(RuntimeError("microphone glitch"))
    recorder = _recorder(capture, gallery, clock)
    await recorder.start()

    clock.now = 0.5
    recorder.ingest(_final(LONG_TEXT))
    conversation = await recorder.stop()

    segment = conversation.segments[0]
    assert segment.text == LONG_TEXT
    assert segment.speaker_id is None
    assert segment.speaker_name is None
    assert segment.confidence == 0.0
    assert conversation.participants == ()
    assert conversation.summary == "Conversation recorded. Main topics: sentence, comfortably, longer, than, thirty. Total segments: 1."


@pytest.mark.asyncio
async def test_segments_commit_in_cut_order(gallery, clock, voice_a, voice_b):
    capture = FakeCapture()
    slow_first = Gate(voice_a)
    capture.snippets.extend([slow_first, voice_b])
    recorder = _recorder(capture, gallery, clock)
    await recorder.start()

    clock.now = 0.5
    recorder.ingest(_final("first speaker says something long enough"))
    clock.now = 0.7
    recorder.ingest(_final("second speaker answers with more words"))

    await asyncio.sleep(0.2)
    assert recorder.segments == ()
    assert recorder.inflight_count == 2

    slow_first.release()
    conversation = await recorder.stop()

    assert [s.speaker_id for s in conversation.segments] == [1, 2]
    assert [s.timestamp_sec for s in conversation.segments] == [pytest.approx(0.5), pytest.approx(0.7)]
    assert conversation.participants == (1, 2)


@pytest.mark.asyncio
async def test_stop_abandons_identification_after_grace(gallery, clock):
    capture = FakeCapture()
    capture.snippets.append(Gate(None))
    recorder = _recorder(capture, gallery, clock, stop_grace_sec=0.1)
    await recorder.start()

    clock.now = 0.4
    recorder.ingest(_final(LONG_TEXT))
    conversation = await asyncio.wait_for(recorder.stop(), timeout=2.0)

    assert [s.text for s in conversation.segments] == [LONG_TEXT]
    assert conversation.segments[0].speaker_id is None
    assert recorder.state is RecorderState.IDLE
    assert not capture.is_running


@pytest.mark.asyncio
async def test_stop_flushes_pending_text_with_final_snippet(gallery, clock, voice_b):
    capture = FakeCapture(snippet=voice_b)
    recorder = _recorder(capture, gallery, clock)
    await recorder.start()

    clock.now = 0.2
    recorder.ingest(_final("bye now"))
    clock.now = 0.6
    conversation = await recorder.stop()

    assert [s.text for s in conversation.segments] == ["bye now"]
    assert conversation.segments[0].timestamp_sec == pytest.approx(0.6)
    assert conversation.segments[0].speaker_id == 2
    assert capture.snippet_calls == [recorder.config.final_snippet_duration_sec]


@pytest.mark.asyncio
async def test_active_speakers_counts_unknown_bucket(gallery, clock, voice_a):
    capture = FakeCapture(snippet=voice_a)
    capture.snippets.extend([voice_a, RuntimeError("no audio"), voice_a])
    recorder = _recorder(capture, gallery, clock)
    await recorder.start()

    for i in range(3):
        clock.now = 0.5 * (i + 1)
        recorder.ingest(_final(f"{LONG_TEXT} {i}"))
    conversation = await recorder.stop()

    assert len(conversation.segments) == 3
    assert recorder.active_speakers == {1: 2, None: 1}


@pytest.mark.asyncio
async def test_idle_flush_cuts_stale_text(gallery, clock, voice_a):
    capture = FakeCapture(snippet=voice_a)
    recorder = ConversationRecorder(
        capture,
        QueueTranscriptStream(),
        gallery,
        RecorderConfig(idle_flush_sec=3.0, tick_interval_sec=60.0),
        clock=clock,
    )
    await recorder.start()

    clock.now = 0.1
    recorder.ingest(_final("short"))
    clock.now = 2.0
    assert not recorder.evaluate_idle_flush()
    clock.now = 3.2
    assert recorder.evaluate_idle_flush()
    assert recorder.pending_text == ""

    conversation = await recorder.stop()
    assert conversation.segments[0].timestamp_sec == pytest.approx(3.2)


@pytest.mark.asyncio
async def test_transcript_stream_feeds_recorder(gallery, clock, voice_a):
    transcripts = QueueTranscriptStream()
    recorder = ConversationRecorder(
        FakeCapture(snippet=voice_a),
        transcripts,
        gallery,
        RecorderConfig(idle_flush_sec=None),
        clock=clock,
    )
    await recorder.start()

    clock.now = 0.3
    assert transcripts.push(_final(LONG_TEXT))
    await asyncio.sleep(0.1)
    assert recorder.inflight_count + len(recorder.segments) == 1

    conversation = await recorder.stop()
    assert conversation.segments[0].speaker_name == "Alice"
    assert not transcripts.is_open


def test_config_from_dict():
    config = RecorderConfig.from_dict(
        {"max_pending_chars": 50, "idle_flush_sec": None, "stop_grace_sec": -1}, match_threshold=0.55
    )

    assert config.max_pending_chars == 50
    assert config.idle_flush_sec is None
    assert config.stop_grace_sec == 0.0
    assert config.match_threshold == 0.55
    assert config.max_segment_interval_sec == 1.0


@pytest.mark.asyncio
async def test_stop_ingests_transcripts_already_delivered(gallery, clock, voice_a):
    transcripts = QueueTranscriptStream()
    recorder = ConversationRecorder(
        FakeCapture(snippet=voice_a),
        transcripts,
        gallery,
        RecorderConfig(idle_flush_sec=None),
        clock=clock,
    )
    await recorder.start()

    clock.now = 0.4
    transcripts.push(_final("goodbye everyone"))
    conversation = await recorder.stop()

    assert conversation is not None
    assert [s.text for s in conversation.segments] == ["goodbye everyone"]
    assert conversation.segments[0].speaker_id == 1


class _EndlessStream(TranscriptStream):
    """Never delivers its end marker."""

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    async def events(self):
        await asyncio.Event().wait()
        yield _final("unreachable")


@pytest.mark.asyncio
async def test_stop_bounds_transcript_drain(gallery, clock, voice_a):
    capture = FakeCapture(snippet=voice_a)
    recorder = ConversationRecorder(
        capture,
        _EndlessStream(),
        gallery,
        RecorderConfig(idle_flush_sec=None, stop_grace_sec=0.1),
        clock=clock,
    )
    await recorder.start()
    recorder.ingest(_final("see you"))

    conversation = await asyncio.wait_for(recorder.stop(), timeout=2.0)

    assert [s.text for s in conversation.segments] == ["see you"]
    assert recorder.state is RecorderState.IDLE
    assert not capture.is_running
