"""
Whisper-based STT using faster-whisper (CTranslate2).
Expects 16 kHz mono int16 PCM; converts to float32 for transcription.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from ..audio.level import bytes_to_float
from .base import STTEngine

logger = logging.getLogger(__name__)


def _resolve_device(device: str) -> tuple[str, str]:
    """Return (device, compute_type). device is 'cpu' or 'cuda'."""
    want = (device or "cpu").strip().lower()
    if want == "cuda":
        return ("cuda", "float16")
    if want == "auto":
        try:
            import ctranslate2

            if ctranslate2.get_cuda_device_count() > 0:
                return ("cuda", "float16")
        except Exception:
            pass
    return ("cpu", "int8")


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class WhisperEngine(STTEngine):
    """
    Transcribe audio using faster-whisper. Model is loaded in start().
    Config keys: model_path ("base", "small", ...), device (cpu | cuda | auto),
    cpu_threads, beam_size (1=faster), language, no_speech_threshold, min_avg_logprob.
    """

    def __init__(self, model_path: str | None = None, config: dict[str, Any] | None = None) -> None:
        cfg = config or {}
        self._model_path = (model_path or cfg.get("model_path") or "base").strip() or "base"
        self._model: Any = None
        self._device, self._compute_type = _resolve_device(cfg.get("device") or "cpu")
        threads = cfg.get("cpu_threads")
        self._cpu_threads = int(threads) if threads is not None else None
        beam = cfg.get("beam_size")
        self._beam_size = max(1, int(beam)) if beam is not None else 1
        self._language = cfg.get("language") or "en"
        self._no_speech_threshold = _optional_float(cfg.get("no_speech_threshold"))
        if self._no_speech_threshold is not None and not 0 <= self._no_speech_threshold <= 1:
            self._no_speech_threshold = 0.6
        self._min_avg_logprob = _optional_float(cfg.get("min_avg_logprob"))

    def start(self) -> None:
        if self._model is not None:
            return
        try:
            from faster_whisper import WhisperModel

            kwargs: dict[str, Any] = {"compute_type": self._compute_type}
            if self._device == "cuda":
                kwargs["device_index"] = 0
            if self._device == "cpu" and self._cpu_threads is not None:
                kwargs["cpu_threads"] = self._cpu_threads
            self._model = WhisperModel(self._model_path, device=self._device, **kwargs)
            logger.info(
                "Whisper model loaded: %s (device=%s, compute_type=%s)",
                self._model_path,
                self._device,
                self._compute_type,
            )
        except Exception as e:
            logger.warning("Failed to load Whisper model (%s): %s. STT disabled.", self._model_path, e)
            self._model = None

    def stop(self) -> None:
        self._model = None

    def is_available(self) -> bool:
        return self._model is not None

    def _keep_segment(self, segment: Any) -> bool:
        if not (segment.text and segment.text.strip()):
            return False
        no_speech = getattr(segment, "no_speech_prob", None)
        if self._no_speech_threshold is not None and no_speech is not None:
            if no_speech > self._no_speech_threshold:
                return False
        avg_logprob = getattr(segment, "avg_logprob", None)
        if self._min_avg_logprob is not None and avg_logprob is not None:
            if avg_logprob < self._min_avg_logprob:
                return False
        return True

    def transcribe(self, audio_bytes: bytes) -> str:
        if not audio_bytes or self._model is None:
            return ""
        try:
            audio = np.ascontiguousarray(bytes_to_float(audio_bytes))
            segments, _ = self._model.transcribe(
                audio,
                language=self._language,
                vad_filter=False,
                no_speech_threshold=self._no_speech_threshold,
                without_timestamps=True,
                beam_size=self._beam_size,
            )
            kept = [s.text.strip() for s in segments if self._keep_segment(s)]
            return " ".join(kept).strip()
        except Exception as e:
            logger.warning("Whisper transcribe error: %s", e)
            return ""
