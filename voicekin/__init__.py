"""
Voice module: recognize familiar people by voice and keep attributed conversation records.
All construction goes through VoiceFactory; public API: create_voice_components(),
apply_settings_overlay().
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple

from .config import DEFAULT_CONFIG, deep_merge

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


# --- Settings overlay (user-adjustable values stored as strings) ---


def _overlay_float(
    out: dict, section: str, key: str, raw: Any, low: float, high: float, setting: str
) -> None:
    if raw is None or not str(raw).strip():
        return
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.debug("Invalid %s, using config", setting)
        return
    out.setdefault(section, {})[key] = max(low, min(high, value))


def apply_settings_overlay(config: dict, settings_repo: Any) -> dict:
    """
    Overlay voice_match_threshold (0-1) and audio_sensitivity (0.1-10) from
    settings_repo onto config. Returns a new dict; invalid values are ignored.
    """
    out = deep_merge(config, {})
    if settings_repo is None:
        return out
    try:
        _overlay_float(
            out,
            "recognition",
            "match_threshold",
            settings_repo.get("voice_match_threshold"),
            0.0,
            1.0,
            "voice_match_threshold",
        )
        _overlay_float(
            out,
            "audio",
            "sensitivity",
            settings_repo.get("audio_sensitivity"),
            0.1,
            10.0,
            "audio_sensitivity",
        )
    except Exception as e:
        logger.debug("Settings overlay failed: %s", e)
    return out


# --- Factory: single place for constructing voice components ---


class VoiceComponents(NamedTuple):
    """Immutable bundle of capture, STT engine (None for external transcripts) and tuned settings."""

    capture: Any
    stt: Any
    recorder_config: Any
    recognition: dict
    enrollment: dict


class VoiceFactory:
    """Builds voice components from config and optional settings."""

    def __init__(self, config: dict | None = None, settings_repo: Any = None) -> None:
        merged = deep_merge(DEFAULT_CONFIG, config or {})
        self._config = apply_settings_overlay(merged, settings_repo)
        self._settings_repo = settings_repo

    @property
    def config(self) -> dict:
        return self._config

    def create_capture(self) -> Any:
        from .audio.capture import AudioCapture
        from .audio.device_utils import resolve_device_id

        audio_cfg = self._config.get("audio", {})
        device_id = audio_cfg.get("device_id")
        if device_id is not None:
            device_id = resolve_device_id(int(device_id))
        return AudioCapture(
            device_id=device_id,
            sample_rate=int(audio_cfg.get("sample_rate", 16000)),
            block_size=int(audio_cfg.get("block_size", 4096)),
            sensitivity=float(audio_cfg.get("sensitivity", 1.0)),
        )

    def create_stt(self) -> Any:
        """Return the configured STT engine, or None when transcripts are pushed externally."""
        stt_cfg = self._config.get("stt", {})
        engine = (stt_cfg.get("engine") or "external").lower()
        if engine == "whisper":
            from .stt.whisper_engine import WhisperEngine

            whisper_cfg = dict(stt_cfg.get("whisper") or {})
            path = whisper_cfg.pop("model_path", None)
            return WhisperEngine(model_path=path, config=whisper_cfg)
        if engine == "vosk":
            from .stt.vosk_engine import VoskEngine

            sample_rate = int(self._config.get("audio", {}).get("sample_rate", 16000))
            path = (stt_cfg.get("vosk") or {}).get("model_path")
            return VoskEngine(model_path=path, sample_rate=sample_rate)
        if engine != "external":
            logger.warning("Unknown stt.engine %r; expecting external transcripts", engine)
        return None

    def create_transcript_stream(self, capture: Any, stt: Any) -> Any:
        from .stt.base import ChunkedTranscriptStream, QueueTranscriptStream

        if stt is None:
            return QueueTranscriptStream()
        chunk_sec = float(self._config.get("stt", {}).get("chunk_duration_sec", 3.0))
        return ChunkedTranscriptStream(stt, capture, chunk_duration_sec=max(0.5, chunk_sec))

    def create_recorder_config(self) -> Any:
        from .conversation.recorder import RecorderConfig

        threshold = float(self._config.get("recognition", {}).get("match_threshold", 0.4))
        return RecorderConfig.from_dict(
            self._config.get("conversation", {}), match_threshold=threshold
        )

    def create_components(self) -> VoiceComponents:
        """Build and return the full voice component bundle."""
        return VoiceComponents(
            capture=self.create_capture(),
            stt=self.create_stt(),
            recorder_config=self.create_recorder_config(),
            recognition=dict(self._config.get("recognition", {})),
            enrollment=dict(self._config.get("enrollment", {})),
        )


def create_voice_components(config: dict | None = None, settings_repo: Any = None) -> VoiceComponents:
    """Single entry point: build capture, STT and tuned settings from config."""
    return VoiceFactory(config, settings_repo).create_components()


__all__ = [
    "VoiceComponents",
    "VoiceFactory",
    "apply_settings_overlay",
    "create_voice_components",
]
