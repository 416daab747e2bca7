"""Data contract definitions for PanelFlash.

The dispatcher and the media session manager share none of these objects;
snapshots are immutable views handed to the presentation layer.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal

CaptureState = Literal["idle", "starting", "streaming", "stopping"]
DispatcherState = Literal["idle", "draining"]
RecordingKind = Literal["video", "audio"]
UploadSlot = Literal["img1", "img2"]


@dataclass
class QueueItem:
    """One deferred network round trip waiting in the dispatcher FIFO."""

    id: str
    execute: Callable[[], None]
    enqueued_ts: float = 0.0
    future: Future | None = None


@dataclass(frozen=True)
class DispatcherSnapshot:
    """Lightweight view of dispatcher state for status displays."""

    state: DispatcherState
    is_loading: bool
    last_error: str | None
    queue_size: int
    loop_starts: int
    dispatched: int
    last_dispatch_ts: float | None


@dataclass(frozen=True)
class GeneratedArtifact:
    """An image returned by the generation collaborator.

    ``encoded_image`` holds the raw image bytes exactly as the API returned
    them; ``id`` doubles as the download file suffix.
    """

    id: str
    encoded_image: bytes
    prompt: str
    created_at: datetime
    mime_type: str = "image/png"


@dataclass(frozen=True)
class StreamConstraints:
    width: int
    height: int
    facing_mode: str | None = None
    audio: bool = True


@dataclass(frozen=True)
class MediaStatus:
    camera_state: CaptureState
    is_streaming: bool
    is_recording: bool
    is_recording_audio: bool
    last_error: str | None = None
    debug: dict[str, object] = field(default_factory=dict)
