"""
Vosk-based speech-to-text engine (offline, low latency).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .base import STTEngine

logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = "vosk-model-small-en-us-0.15"


class VoskEngine(STTEngine):
    """
    Transcribe mono int16 PCM with a Vosk model.
    When no model directory is configured or found, the engine stays unavailable and
    transcribe() returns "" so callers can fall back.
    """

    def __init__(self, model_path: str | None = None, sample_rate: int = 16000) -> None:
        self._model_path = model_path
        self._sample_rate = sample_rate
        self._model: Any = None

    def _resolve_model_dir(self) -> Path | None:
        if self._model_path:
            path = Path(self._model_path).expanduser()
            if path.exists():
                return path
            logger.info("Vosk model path %s does not exist", path)
        fallback = Path.cwd() / "models" / DEFAULT_MODEL_DIR
        return fallback if fallback.exists() else None

    def start(self) -> None:
        if self._model is not None:
            return
        path = self._resolve_model_dir()
        if path is None:
            logger.info(
                "No Vosk model found. Set stt.vosk.model_path to a downloaded model dir. STT disabled."
            )
            return
        try:
            from vosk import Model

            self._model = Model(str(path))
            logger.info("Vosk model loaded: %s", path)
        except Exception as e:
            logger.warning("Failed to load Vosk model from %s: %s. STT disabled.", path, e)
            self._model = None

    def stop(self) -> None:
        self._model = None

    def is_available(self) -> bool:
        return self._model is not None

    def transcribe(self, audio_bytes: bytes) -> str:
        if self._model is None or not audio_bytes:
            return ""
        try:
            from vosk import KaldiRecognizer

            rec = KaldiRecognizer(self._model, self._sample_rate)
            rec.AcceptWaveform(audio_bytes)
            result = json.loads(rec.FinalResult())
            return (result.get("text") or "").strip()
        except Exception as e:
            logger.warning("Vosk transcribe error: %s", e)
            return ""
