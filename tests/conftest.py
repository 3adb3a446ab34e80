"""
Shared fakes: a scriptable microphone, a speech-to-text engine, a manual clock and
synthetic voices.
"""

from __future__ import annotations

import asyncio
from collections import deque

import numpy as np
import pytest

from voicekin.audio.features import extract_voice_features
from voicekin.errors import DeviceUnavailable, InvalidInput
from voicekin.models import Profile

SAMPLE_RATE = 16000


def sine(freq_hz: float, amplitude: float = 0.3, duration_sec: float = 1.0, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    t = np.arange(int(sample_rate * duration_sec)) / sample_rate
    return amplitude * np.sin(2 * np.pi * freq_hz * t)


class Gate:
    """Snippet result that is held back until release() is called."""

    def __init__(self, value) -> None:
        self.value = value
        self.event = asyncio.Event()

    def release(self) -> None:
        self.event.set()


class FakeCapture:
    """
    Stands in for AudioCapture. capture_snippet() pops scripted results: an array is
    returned, an exception is raised, a Gate waits for release().
    """

    def __init__(self, snippet=None, sample_rate: int = SAMPLE_RATE, fail_start: bool = False) -> None:
        self.sample_rate = sample_rate
        self.default_snippet = snippet
        self.fail_start = fail_start
        self.snippets: deque = deque()
        self.snippet_calls: list[float] = []
        self.listeners: list = []
        self.is_running = False
        self.start_count = 0
        self.stop_count = 0

    def start(self) -> None:
        if self.fail_start:
            raise DeviceUnavailable("Microphone failed to start")
        self.is_running = True
        self.start_count += 1

    def stop(self) -> None:
        self.is_running = False
        self.stop_count += 1

    def add_listener(self, listener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def publish(self, block: np.ndarray) -> None:
        for listener in list(self.listeners):
            listener(block)

    async def capture_snippet(self, duration_sec: float) -> np.ndarray:
        self.snippet_calls.append(duration_sec)
        item = self.snippets.popleft() if self.snippets else self.default_snippet
        if isinstance(item, Gate):
            await item.event.wait()
            item = item.value
        if isinstance(item, BaseException):
            raise item
        if item is None:
            raise InvalidInput("No audio captured")
        return item


class FakeSTT:
    def __init__(self, text: str = "hello there", available: bool = True, error: Exception | None = None) -> None:
        self.text = text
        self.available = available
        self.error = error
        self.calls: list[bytes] = []
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def is_available(self) -> bool:
        return self.available

    def transcribe(self, audio_bytes: bytes) -> str:
        self.calls.append(audio_bytes)
        if self.error is not None:
            raise self.error
        return self.text


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def voice_a() -> np.ndarray:
    """Low, loud voice."""
    return sine(150.0, amplitude=0.3, duration_sec=1.0)


@pytest.fixture
def voice_b() -> np.ndarray:
    """High, quiet voice."""
    return sine(400.0, amplitude=0.05, duration_sec=1.0)


@pytest.fixture
def gallery(voice_a, voice_b) -> list[Profile]:
    return [
        Profile(id=1, name="Alice", voice_feature_vector=extract_voice_features(voice_a, SAMPLE_RATE)),
        Profile(id=2, name="Bob", voice_feature_vector=extract_voice_features(voice_b, SAMPLE_RATE)),
        Profile(id=3, name="Carol"),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
