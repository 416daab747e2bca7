"""Time-bounded recording sessions bound to a live media stream."""

from __future__ import annotations

import base64
import functools
import io
import logging
import tempfile
import threading
import time
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal, Optional

import cv2
import numpy as np

from .constants import (
    AUDIO_BIT_DEPTH,
    AUDIO_PROCESSING_FAILED,
    DEFAULT_JPEG_QUALITY,
    PRODUCT_NAME,
    TRANSCRIPTION_FAILED,
)
from .errors import (
    EncodingUnsupportedError,
    NoSpeechDetectedError,
    PanelFlashError,
    TransportError,
    normalize_error_message,
)
from .types import RecordingKind

LOGGER = logging.getLogger(__name__)

ErrorCallback = Callable[[str], None]
TimerFactory = Callable[[float, Callable[[], None]], object]
AudioOutcome = Literal["pending", "transcript", "no_speech", "error"]


@dataclass(frozen=True)
class RecordingFormat:
    mime_type: str
    extension: str


VIDEO_FORMAT = RecordingFormat("video/webm", ".webm")
VIDEO_FOURCC = "VP80"

AUDIO_FORMAT_PREFERENCES: tuple[RecordingFormat, ...] = (
    RecordingFormat("audio/wav", ".wav"),
    RecordingFormat("audio/webm;codecs=opus", ".webm"),
    RecordingFormat("audio/webm", ".webm"),
)
PLATFORM_DEFAULT_AUDIO_FORMAT = RecordingFormat("audio/wav", ".wav")


# ----------------------------------------------------------------------
# Packaging


def package_wav(chunks: list[bytes], sample_rate: int) -> bytes:
    """Wrap mono int16 PCM chunks in a WAV container."""

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as handle:
        handle.setnchannels(1)
        handle.setsampwidth(AUDIO_BIT_DEPTH // 8)
        handle.setframerate(sample_rate)
        handle.writeframes(b"".join(chunks))
    return buffer.getvalue()


_AUDIO_PACKAGERS: dict[str, Callable[[list[bytes], int], bytes]] = {
    "audio/wav": package_wav,
}


def is_audio_format_supported(fmt: RecordingFormat) -> bool:
    return fmt.mime_type in _AUDIO_PACKAGERS


def resolve_audio_format(
    is_supported: Callable[[RecordingFormat], bool] = is_audio_format_supported,
) -> RecordingFormat:
    """Pick the first supported audio format in preference order."""

    for fmt in AUDIO_FORMAT_PREFERENCES:
        if is_supported(fmt):
            return fmt
    LOGGER.warning("No supported audio format found, using default %s", PLATFORM_DEFAULT_AUDIO_FORMAT.mime_type)
    return PLATFORM_DEFAULT_AUDIO_FORMAT


def package_audio(fmt: RecordingFormat, chunks: list[bytes], sample_rate: int) -> bytes:
    packager = _AUDIO_PACKAGERS.get(fmt.mime_type, package_wav)
    return packager(chunks, sample_rate)


@functools.lru_cache(maxsize=1)
def probe_video_writer() -> bool:
    """Return True if OpenCV can encode VP8 into a WebM container."""

    with tempfile.TemporaryDirectory() as tmp:
        probe_path = Path(tmp) / f"probe{VIDEO_FORMAT.extension}"
        writer = cv2.VideoWriter(
            str(probe_path), cv2.VideoWriter_fourcc(*VIDEO_FOURCC), 10.0, (64, 36)
        )
        try:
            return bool(writer.isOpened())
        finally:
            writer.release()


def package_webm(chunks: list[bytes], path: Path, fps: float) -> Path:
    """Decode JPEG frame fragments and re-encode them as a VP8 WebM file."""

    first = cv2.imdecode(np.frombuffer(chunks[0], dtype=np.uint8), cv2.IMREAD_COLOR)
    if first is None:
        raise EncodingUnsupportedError("Recorded frames could not be decoded")
    height, width = first.shape[:2]

    path.parent.mkdir(parents=True, exist_ok=True)
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*VIDEO_FOURCC), fps, (width, height))
    if not writer.isOpened():
        writer.release()
        raise EncodingUnsupportedError(f"Cannot open {VIDEO_FORMAT.mime_type} writer for {path}")
    try:
        for chunk in chunks:
            frame = cv2.imdecode(np.frombuffer(chunk, dtype=np.uint8), cv2.IMREAD_COLOR)
            if frame is None:
                continue
            if frame.shape[:2] != (height, width):
                frame = cv2.resize(frame, (width, height))
            writer.write(frame)
    finally:
        writer.release()
    LOGGER.info("Packaged %d frames into %s", len(chunks), path)
    return path


def recording_filename(now_ms: int) -> str:
    return f"{PRODUCT_NAME}-{now_ms}{VIDEO_FORMAT.extension}"


# ----------------------------------------------------------------------
# Sessions


class RecordingSession:
    """Buffers fragments from one track until stopped explicitly or by its deadline."""

    kind: RecordingKind

    def __init__(
        self,
        track,
        fmt: RecordingFormat,
        *,
        on_error: Optional[ErrorCallback] = None,
        on_finished: Optional[Callable[["RecordingSession"], None]] = None,
    ) -> None:
        self.track = track
        self.format = fmt
        self.chunks: list[bytes] = []
        self.is_recording = False
        self.started_at: float | None = None
        self.deadline_hit = False
        self._on_error = on_error
        self._on_finished = on_finished
        self._lock = threading.Lock()
        self._timer = None

    def start(self, *, max_ms: int, timer_factory: TimerFactory = threading.Timer) -> None:
        with self._lock:
            if self.is_recording:
                return
            self.is_recording = True
            self.started_at = time.time()
        self.track.subscribe(self._on_chunk)
        timer = timer_factory(max_ms / 1000.0, self._on_deadline)
        timer.daemon = True
        self._timer = timer
        timer.start()
        LOGGER.info("%s recording started (%s, max %d ms)", self.kind, self.format.mime_type, max_ms)

    def stop(self) -> bool:
        """Stop and finalize; returns False if the session was not recording."""

        with self._lock:
            if not self.is_recording:
                return False
            self.is_recording = False
            timer = self._timer
            self._timer = None
        if timer is not None:
            timer.cancel()
        self.track.unsubscribe(self._on_chunk)
        LOGGER.info("%s recording stopped with %d chunks", self.kind, len(self.chunks))
        self._finalize()
        return True

    def _on_deadline(self) -> None:
        if not self.is_recording:
            return
        self.deadline_hit = True
        LOGGER.info("%s recording reached its time limit", self.kind)
        self.stop()

    def _on_chunk(self, data) -> None:
        chunk = self._encode(data)
        if not chunk:
            return
        with self._lock:
            if self.is_recording:
                self.chunks.append(chunk)

    def _report(self, message: str) -> None:
        LOGGER.warning("%s recording: %s", self.kind, message)
        if self._on_error is not None:
            self._on_error(message)

    def _finished(self) -> None:
        if self._on_finished is not None:
            self._on_finished(self)

    def _encode(self, data) -> bytes | None:
        raise NotImplementedError

    def _finalize(self) -> None:
        raise NotImplementedError


class VideoRecordingSession(RecordingSession):
    kind: RecordingKind = "video"

    def __init__(
        self,
        track,
        *,
        output_dir: str | Path,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        save: Optional[Callable[[Path], None]] = None,
        packager: Callable[[list[bytes], Path, float], Path] = package_webm,
        clock: Callable[[], float] = time.time,
        on_error: Optional[ErrorCallback] = None,
        on_finished: Optional[Callable[[RecordingSession], None]] = None,
    ) -> None:
        super().__init__(track, VIDEO_FORMAT, on_error=on_error, on_finished=on_finished)
        self.output_dir = Path(output_dir)
        self.jpeg_quality = jpeg_quality
        self.saved_path: Path | None = None
        self._save = save
        self._packager = packager
        self._clock = clock

    def _encode(self, frame) -> bytes | None:
        ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), self.jpeg_quality])
        return buffer.tobytes() if ok else None

    def _finalize(self) -> None:
        try:
            if not self.chunks:
                LOGGER.warning("Video recording captured no frames; nothing to save")
                return
            path = self.output_dir / recording_filename(int(self._clock() * 1000))
            fps = float(getattr(self.track, "fps", 0.0) or 0.0) or 30.0
            self.saved_path = self._packager(list(self.chunks), path, fps)
            if self._save is not None:
                self._save(self.saved_path)
        except PanelFlashError as exc:
            self._report(exc.message)
        except Exception as exc:
            self._report(normalize_error_message(exc, "Saving recording failed"))
        finally:
            self._finished()


class AudioRecordingSession(RecordingSession):
    kind: RecordingKind = "audio"

    def __init__(
        self,
        track,
        fmt: RecordingFormat,
        *,
        sample_rate: int,
        transcribe: Callable[[str, str], str],
        on_transcript: Callable[[str], None],
        on_error: Optional[ErrorCallback] = None,
        on_finished: Optional[Callable[[RecordingSession], None]] = None,
    ) -> None:
        super().__init__(track, fmt, on_error=on_error, on_finished=on_finished)
        self.sample_rate = sample_rate
        self.outcome: AudioOutcome = "pending"
        self.error: PanelFlashError | None = None
        self.transcript: str | None = None
        self._transcribe = transcribe
        self._on_transcript = on_transcript

    def _encode(self, data) -> bytes | None:
        return bytes(data) if data else None

    def _finalize(self) -> None:
        try:
            try:
                payload = package_audio(self.format, list(self.chunks), self.sample_rate)
                audio_b64 = base64.b64encode(payload).decode("ascii")
            except Exception as exc:
                LOGGER.error("Audio packaging failed: %s", exc)
                self._fail(TransportError(AUDIO_PROCESSING_FAILED))
                return

            try:
                transcript = self._transcribe(audio_b64, self.format.mime_type)
            except PanelFlashError as exc:
                self._fail(exc)
                return
            except Exception as exc:
                self._fail(TransportError(normalize_error_message(exc, TRANSCRIPTION_FAILED)))
                return

            text = (transcript or "").strip()
            if not text:
                self._fail(NoSpeechDetectedError(), outcome="no_speech")
                return
            self.outcome = "transcript"
            self.transcript = text
            self._on_transcript(text)
        finally:
            self._finished()

    def _fail(self, error: PanelFlashError, *, outcome: AudioOutcome = "error") -> None:
        self.outcome = outcome
        self.error = error
        self._report(error.message)


__all__ = [
    "AUDIO_FORMAT_PREFERENCES",
    "AudioRecordingSession",
    "PLATFORM_DEFAULT_AUDIO_FORMAT",
    "RecordingFormat",
    "RecordingSession",
    "VIDEO_FORMAT",
    "VideoRecordingSession",
    "is_audio_format_supported",
    "package_audio",
    "package_wav",
    "package_webm",
    "probe_video_writer",
    "recording_filename",
    "resolve_audio_format",
]
