"""
Continuous microphone capture with frame listeners and short snippet capture.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable

import numpy as np

from ..errors import DeviceUnavailable, InvalidInput
from .level import INT16_MAX, INT16_MIN, as_float_samples

logger = logging.getLogger(__name__)

# Frames per PortAudio callback block
DEFAULT_BLOCK_SIZE = 4096

FrameListener = Callable[[np.ndarray], None]


class AudioCapture:
    """
    Capture mono int16 audio from the configured microphone.
    Use start() to open the device and stop() to release it. Every captured block is
    handed to registered listeners (called from the PortAudio thread, so listeners must
    be cheap and thread-safe). Sensitivity (gain) is applied before listeners see a block.
    """

    def __init__(
        self,
        device_id: int | None = None,
        sample_rate: int = 16000,
        block_size: int = DEFAULT_BLOCK_SIZE,
        sensitivity: float = 1.0,
    ) -> None:
        self.device_id = device_id
        self.sample_rate = sample_rate
        self.block_size = max(1, int(block_size))
        self.sensitivity = max(0.1, min(10.0, float(sensitivity)))
        self._running = False
        self._stream: Any = None
        self._listeners: list[FrameListener] = []
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    def set_sensitivity(self, value: float) -> None:
        """Update sensitivity at runtime (e.g. from UI). Clamped to 0.1-10.0."""
        self.sensitivity = max(0.1, min(10.0, float(value)))

    def get_sensitivity(self) -> float:
        return self.sensitivity

    def start(self) -> None:
        """Open the audio input stream. Raises DeviceUnavailable on failure."""
        import sounddevice as sd

        if self._running:
            return
        try:
            self._stream = sd.InputStream(
                device=self.device_id,
                samplerate=self.sample_rate,
                channels=1,
                dtype="int16",
                blocksize=self.block_size,
                callback=self._on_block,
            )
            self._stream.start()
            self._running = True
            logger.info(
                "Audio capture started (device=%s, rate=%s, block=%s, sensitivity=%.2f)",
                self.device_id,
                self.sample_rate,
                self.block_size,
                self.sensitivity,
            )
        except Exception as e:
            logger.exception("Failed to start audio capture: %s", e)
            self._stream = None
            raise DeviceUnavailable("Microphone failed to start") from e

    def stop(self) -> None:
        """Stop and close the stream. Safe to call when not running."""
        self._running = False
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.warning("Error closing audio stream: %s", e)
            self._stream = None
            logger.info("Audio capture stopped")

    def add_listener(self, listener: FrameListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: FrameListener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def _on_block(self, indata, _frames, _time_info, status) -> None:  # noqa: ANN001
        if status:
            logger.debug("Audio capture status: %s", status)
        block = np.array(indata[:, 0], dtype=np.int16, copy=True)
        if self.sensitivity != 1.0:
            block = self._apply_gain(block)
        self.publish(block)

    def publish(self, block: np.ndarray) -> None:
        """Deliver one int16 block to all listeners."""
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(block)
            except Exception as e:
                logger.warning("Audio frame listener failed: %s", e)

    def _apply_gain(self, block: np.ndarray) -> np.ndarray:
        """Apply sensitivity gain to int16 samples; clip to avoid overflow."""
        return np.clip(
            (block.astype(np.float64) * self.sensitivity).round(),
            INT16_MIN,
            INT16_MAX,
        ).astype(np.int16)

    async def capture_snippet(self, duration_sec: float) -> np.ndarray:
        """
        Collect the next duration_sec of live audio as float samples in [-1, 1].
        Raises DeviceUnavailable if the stream is not running and InvalidInput if no
        frames arrived during the window.
        """
        if not self._running:
            raise DeviceUnavailable("Microphone is not running")
        blocks: list[np.ndarray] = []
        listener = blocks.append
        self.add_listener(listener)
        try:
            await asyncio.sleep(duration_sec)
        finally:
            self.remove_listener(listener)
        if not blocks:
            raise InvalidInput("No audio captured")
        return as_float_samples(np.concatenate(blocks))


__all__ = ["AudioCapture", "DEFAULT_BLOCK_SIZE", "FrameListener"]
