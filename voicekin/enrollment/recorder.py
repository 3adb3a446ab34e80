"""
Record one spoken greeting from the live capture for voice enrollment.
Stops on trailing silence or at the maximum duration.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import numpy as np

from ..audio.level import as_float_samples, rms
from ..errors import DeviceUnavailable, InvalidInput
from .constants import (
    ENROLLMENT_MAX_DURATION_SEC,
    ENROLLMENT_SILENCE_RMS,
    ENROLLMENT_SILENCE_SEC,
)

logger = logging.getLogger(__name__)

POLL_INTERVAL_SEC = 0.05
# Extra wall-clock allowance when the device delivers frames late
STALL_ALLOWANCE_SEC = 1.0


class _UtteranceBuffer:
    """Collects blocks from the PortAudio thread and tracks trailing silence in frames."""

    def __init__(self, silence_rms: float) -> None:
        self.silence_rms = silence_rms
        self.blocks: list[np.ndarray] = []
        self.frames = 0
        self.silent_frames = 0
        self.heard_speech = False

    def __call__(self, block: np.ndarray) -> None:
        samples = as_float_samples(block)
        self.blocks.append(samples)
        self.frames += samples.size
        if rms(samples) > self.silence_rms:
            self.heard_speech = True
            self.silent_frames = 0
        else:
            self.silent_frames += samples.size


async def record_utterance(
    capture: Any,
    max_duration_sec: float = ENROLLMENT_MAX_DURATION_SEC,
    silence_sec: float = ENROLLMENT_SILENCE_SEC,
    silence_rms: float = ENROLLMENT_SILENCE_RMS,
) -> np.ndarray:
    """
    Return float samples of one utterance from a running capture.
    Durations are measured in captured frames, so the result does not depend on
    scheduling jitter. Raises DeviceUnavailable if capture is not running and
    InvalidInput if no audio arrived.
    """
    if not capture.is_running:
        raise DeviceUnavailable("Microphone is not running")
    sample_rate = capture.sample_rate
    max_frames = int(sample_rate * max_duration_sec)
    silence_frames = int(sample_rate * silence_sec)
    buffer = _UtteranceBuffer(silence_rms)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max_duration_sec + STALL_ALLOWANCE_SEC
    capture.add_listener(buffer)
    try:
        while True:
            await asyncio.sleep(POLL_INTERVAL_SEC)
            if buffer.frames >= max_frames:
                break
            if buffer.heard_speech and buffer.silent_frames >= silence_frames:
                break
            if loop.time() >= deadline:
                logger.debug("Enrollment recording hit wall-clock deadline")
                break
    finally:
        capture.remove_listener(buffer)
    if not buffer.blocks:
        raise InvalidInput("No audio recorded")
    audio = np.concatenate(buffer.blocks)[:max_frames]
    logger.info(
        "Recorded %.2fs for enrollment (speech detected=%s)",
        audio.size / sample_rate,
        buffer.heard_speech,
    )
    return audio
