"""
Input device discovery for the capture layer.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import DeviceUnavailable

logger = logging.getLogger(__name__)


def list_input_devices() -> list[dict[str, Any]]:
    """
    Describe every device that can record: id, name, default sample rate, channel
    count and whether it is the system default input.
    Raises DeviceUnavailable when PortAudio cannot be queried.
    """
    import sounddevice as sd

    try:
        devices = sd.query_devices()
        default_id = _default_input_index(sd)
    except Exception as e:
        logger.exception("Failed to query audio devices: %s", e)
        raise DeviceUnavailable("Cannot list microphone devices") from e
    inputs = []
    for index, device in enumerate(devices):
        channels = int(device.get("max_input_channels", 0))
        if channels <= 0:
            continue
        inputs.append(
            {
                "id": index,
                "name": device.get("name", "Unknown"),
                "sample_rate": float(device.get("default_samplerate", 16000)),
                "channels": channels,
                "default": index == default_id,
            }
        )
    logger.debug("Found %d input device(s)", len(inputs))
    return inputs


def _default_input_index(sd: Any) -> int | None:
    index = int(sd.default.device[0])
    return index if index >= 0 else None


def resolve_device_id(device_id: int | None) -> int | None:
    """Validate a configured device id against the current input list; None means system default."""
    if device_id is None:
        return None
    known = {d["id"] for d in list_input_devices()}
    if device_id not in known:
        logger.warning("Configured input device %s not found; using system default", device_id)
        return None
    return device_id
