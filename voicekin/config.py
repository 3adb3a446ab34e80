"""
Configuration: built-in defaults, optionally overridden by a JSON file.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "VOICEKIN_CONFIG"

DEFAULT_CONFIG: dict[str, Any] = {
    "audio": {
        "device_id": None,
        "sample_rate": 16000,
        "block_size": 4096,
        "sensitivity": 1.0,
    },
    "stt": {
        # vosk | whisper | external (events pushed over HTTP)
        "engine": "external",
        "chunk_duration_sec": 3.0,
        "vosk": {"model_path": None},
        "whisper": {"model_path": "base", "device": "cpu"},
    },
    "recognition": {
        "match_threshold": 0.4,
        "snippet_duration_sec": 3.0,
    },
    "conversation": {
        "max_pending_chars": 30,
        "max_segment_interval_sec": 1.0,
        "snippet_duration_sec": 2.0,
        "final_snippet_duration_sec": 1.0,
        "stop_grace_sec": 2.5,
        "idle_flush_sec": 3.0,
        "tick_interval_sec": 0.25,
    },
    "enrollment": {
        "max_duration_sec": 5.0,
        "silence_sec": 1.0,
        "silence_rms": 0.01,
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with override applied recursively on top of base."""
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """
    Load defaults merged with a JSON config file.
    The path defaults to $VOICEKIN_CONFIG; a missing or unreadable file falls back to
    defaults with a warning.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return copy.deepcopy(DEFAULT_CONFIG)
    config_path = Path(path).expanduser()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Config file %s not found; using defaults", config_path)
        return copy.deepcopy(DEFAULT_CONFIG)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read config %s (%s); using defaults", config_path, e)
        return copy.deepcopy(DEFAULT_CONFIG)
    if not isinstance(data, dict):
        logger.warning("Config %s is not a JSON object; using defaults", config_path)
        return copy.deepcopy(DEFAULT_CONFIG)
    logger.info("Loaded config from %s", config_path)
    return deep_merge(DEFAULT_CONFIG, data)


__all__ = ["CONFIG_ENV_VAR", "DEFAULT_CONFIG", "deep_merge", "load_config"]
