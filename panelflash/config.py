"""Configuration loader for PanelFlash."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .constants import (
    DEFAULT_AUDIO_MAX_MS,
    DEFAULT_AUDIO_SAMPLE_RATE,
    DEFAULT_CAMERA_INDEX,
    DEFAULT_CAPTURE_HEIGHT,
    DEFAULT_CAPTURE_WIDTH,
    DEFAULT_DEBUG,
    DEFAULT_EVENT_LOG_MAX_BYTES,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MIN_INTERVAL_MS,
    DEFAULT_MODEL_NAME,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_REAR_CAMERA_INDEX,
    DEFAULT_TIMEOUT_S,
    DEFAULT_TRANSCRIBE_MODEL_NAME,
    DEFAULT_VIDEO_MAX_MS,
    FRAME_HEIGHT,
    FRAME_WIDTH,
    GEMINI_API_KEY_ENV_CANDIDATES,
)


@dataclass(frozen=True)
class PanelFlashConfig:
    api_key: str | None = None
    model_name: str = DEFAULT_MODEL_NAME
    transcribe_model_name: str = DEFAULT_TRANSCRIBE_MODEL_NAME
    timeout_s: float = DEFAULT_TIMEOUT_S
    debug: bool = DEFAULT_DEBUG
    min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS
    rear_camera_index: int = DEFAULT_REAR_CAMERA_INDEX
    default_camera_index: int = DEFAULT_CAMERA_INDEX
    capture_width: int = DEFAULT_CAPTURE_WIDTH
    capture_height: int = DEFAULT_CAPTURE_HEIGHT
    frame_width: int = FRAME_WIDTH
    frame_height: int = FRAME_HEIGHT
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    video_max_ms: int = DEFAULT_VIDEO_MAX_MS
    audio_max_ms: int = DEFAULT_AUDIO_MAX_MS
    audio_sample_rate: int = DEFAULT_AUDIO_SAMPLE_RATE
    output_dir: str = DEFAULT_OUTPUT_DIR
    event_log_path: str | None = None
    event_log_max_bytes: int = DEFAULT_EVENT_LOG_MAX_BYTES


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def load_config(env: Mapping[str, str] | None = None) -> PanelFlashConfig:
    """Load configuration from environment variables.

    Args:
        env: Optional mapping of environment variables for easier testing.

    Returns:
        A fully populated :class:`PanelFlashConfig` with safe defaults.
    """

    environment = env if env is not None else os.environ

    api_key: str | None = None
    for key_name in GEMINI_API_KEY_ENV_CANDIDATES:
        candidate = environment.get(key_name)
        if candidate and candidate.strip():
            api_key = candidate.strip()
            break

    event_log_path = environment.get("PANELFLASH_EVENT_LOG") or None

    return PanelFlashConfig(
        api_key=api_key,
        model_name=environment.get("PANELFLASH_MODEL_NAME", DEFAULT_MODEL_NAME),
        transcribe_model_name=environment.get(
            "PANELFLASH_TRANSCRIBE_MODEL", DEFAULT_TRANSCRIBE_MODEL_NAME
        ),
        timeout_s=_parse_float(environment.get("PANELFLASH_TIMEOUT_S"), DEFAULT_TIMEOUT_S),
        debug=_parse_bool(environment.get("PANELFLASH_DEBUG"), DEFAULT_DEBUG),
        min_interval_ms=max(
            0, _parse_int(environment.get("PANELFLASH_MIN_INTERVAL_MS"), DEFAULT_MIN_INTERVAL_MS)
        ),
        rear_camera_index=_parse_int(
            environment.get("PANELFLASH_REAR_CAMERA"), DEFAULT_REAR_CAMERA_INDEX
        ),
        default_camera_index=_parse_int(
            environment.get("PANELFLASH_CAMERA"), DEFAULT_CAMERA_INDEX
        ),
        capture_width=_parse_int(
            environment.get("PANELFLASH_CAPTURE_WIDTH"), DEFAULT_CAPTURE_WIDTH
        ),
        capture_height=_parse_int(
            environment.get("PANELFLASH_CAPTURE_HEIGHT"), DEFAULT_CAPTURE_HEIGHT
        ),
        jpeg_quality=_parse_int(
            environment.get("PANELFLASH_JPEG_QUALITY"), DEFAULT_JPEG_QUALITY
        ),
        video_max_ms=_parse_int(
            environment.get("PANELFLASH_VIDEO_MAX_MS"), DEFAULT_VIDEO_MAX_MS
        ),
        audio_max_ms=_parse_int(
            environment.get("PANELFLASH_AUDIO_MAX_MS"), DEFAULT_AUDIO_MAX_MS
        ),
        audio_sample_rate=_parse_int(
            environment.get("PANELFLASH_SAMPLE_RATE"), DEFAULT_AUDIO_SAMPLE_RATE
        ),
        output_dir=environment.get("PANELFLASH_OUTPUT_DIR", DEFAULT_OUTPUT_DIR),
        event_log_path=event_log_path,
        event_log_max_bytes=_parse_int(
            environment.get("PANELFLASH_EVENT_LOG_MAX_BYTES"), DEFAULT_EVENT_LOG_MAX_BYTES
        ),
    )
