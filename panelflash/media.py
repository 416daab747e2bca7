"""Media session manager: camera/microphone ownership, frame capture and recording."""

from __future__ import annotations

import base64
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import cv2

from .config import PanelFlashConfig, load_config
from .constants import FACING_ENVIRONMENT, NO_AUDIO_TRACK, NO_VIDEO_TRACK, RECORDING_UNSUPPORTED
from .errors import normalize_error_message
from .recording import (
    AudioRecordingSession,
    RecordingFormat,
    RecordingSession,
    VideoRecordingSession,
    is_audio_format_supported,
    package_webm,
    probe_video_writer,
    resolve_audio_format,
)
from .streams import MediaStream, open_media_stream
from .types import CaptureState, MediaStatus, StreamConstraints

LOGGER = logging.getLogger(__name__)

ErrorCallback = Optional[Callable[[str], None]]
Acquirer = Callable[[StreamConstraints, PanelFlashConfig], MediaStream]


class MediaSessionManager:
    """Exclusive owner of the hardware stream and of at most one recording per kind.

    Overlapping start/stop calls are not queued; callers gate their own
    controls (for example, not offering "start" while already streaming).
    """

    def __init__(
        self,
        cfg: PanelFlashConfig | None = None,
        *,
        acquire: Acquirer = open_media_stream,
        timer_factory=threading.Timer,
        save_recording: Optional[Callable[[Path], None]] = None,
        video_supported: Callable[[], bool] = probe_video_writer,
        audio_format_supported: Callable[[RecordingFormat], bool] = is_audio_format_supported,
        packager=package_webm,
    ) -> None:
        self.cfg = cfg or load_config()
        self._acquire = acquire
        self._timer_factory = timer_factory
        self._save_recording = save_recording
        self._video_supported = video_supported
        self._audio_format_supported = audio_format_supported
        self._packager = packager
        self._lock = threading.RLock()
        self._stream: MediaStream | None = None
        self._state: CaptureState = "idle"
        self._last_error: str | None = None
        self._video_session: VideoRecordingSession | None = None
        self._audio_session: AudioRecordingSession | None = None

    # ------------------------------------------------------------------
    # Camera

    def start_camera(self, on_error: ErrorCallback = None) -> bool:
        with self._lock:
            if self._stream is not None:
                return True
            if self._state == "starting":
                return False
            self._state = "starting"
            self._last_error = None

        try:
            stream = self._acquire_with_fallback()
        except Exception as exc:
            message = f"Camera access failed: {normalize_error_message(exc)}"
            with self._lock:
                self._state = "idle"
                self._last_error = message
            LOGGER.error(message)
            if on_error is not None:
                on_error(message)
            return False

        with self._lock:
            if self._state != "starting":
                # stop_camera() ran while the device was being opened
                self._state = "idle"
                stream.stop()
                return False
            self._stream = stream
            self._state = "streaming"
        LOGGER.info("Camera streaming")
        return True

    def stop_camera(self) -> None:
        with self._lock:
            stream = self._stream
            self._stream = None
            if stream is None:
                if self._state != "starting":
                    self._state = "idle"
                else:
                    self._state = "stopping"
                return
            self._state = "stopping"
        stream.stop()
        with self._lock:
            self._state = "idle"
        LOGGER.info("Camera stopped")

    def capture_frame(self) -> str | None:
        """Return the current frame as a base64 JPEG still, or None."""

        with self._lock:
            stream = self._stream if self._state == "streaming" else None
        if stream is None:
            return None
        tracks = stream.get_video_tracks()
        if not tracks:
            return None
        frame = tracks[0].latest_frame()
        if frame is None:
            return None
        try:
            raster = cv2.resize(
                frame, (self.cfg.frame_width, self.cfg.frame_height), interpolation=cv2.INTER_AREA
            )
            ok, buffer = cv2.imencode(
                ".jpg", raster, [int(cv2.IMWRITE_JPEG_QUALITY), self.cfg.jpeg_quality]
            )
        except cv2.error as exc:
            LOGGER.warning("Frame capture failed: %s", exc)
            return None
        if not ok:
            return None
        return base64.b64encode(buffer.tobytes()).decode("ascii")

    def get_stream(self) -> MediaStream | None:
        with self._lock:
            return self._stream

    # ------------------------------------------------------------------
    # Recording

    def start_recording(self, on_error: ErrorCallback = None) -> bool:
        with self._lock:
            if self._video_session is not None:
                return False
            stream = self._stream
            tracks = stream.get_video_tracks() if stream is not None else []
            if not tracks:
                session = None
                message = NO_VIDEO_TRACK
            elif not self._video_supported():
                session = None
                message = RECORDING_UNSUPPORTED
            else:
                session = VideoRecordingSession(
                    tracks[0],
                    output_dir=self.cfg.output_dir,
                    jpeg_quality=self.cfg.jpeg_quality,
                    save=self._save_recording,
                    packager=self._packager,
                    on_error=on_error,
                    on_finished=self._recording_finished,
                )
                self._video_session = session

        if session is None:
            self._report(message, on_error)
            return False
        session.start(max_ms=self.cfg.video_max_ms, timer_factory=self._timer_factory)
        return True

    def stop_recording(self) -> bool:
        with self._lock:
            session = self._video_session
        if session is None:
            return False
        return session.stop()

    def start_audio_recording(
        self,
        transcribe: Callable[[str, str], str],
        on_transcript: Callable[[str], None],
        on_error: ErrorCallback = None,
    ) -> bool:
        with self._lock:
            if self._audio_session is not None:
                return False
            stream = self._stream
            tracks = stream.get_audio_tracks() if stream is not None else []
            if tracks:
                fmt = resolve_audio_format(self._audio_format_supported)
                track = tracks[0]
                session = AudioRecordingSession(
                    track,
                    fmt,
                    sample_rate=getattr(track, "sample_rate", self.cfg.audio_sample_rate),
                    transcribe=transcribe,
                    on_transcript=on_transcript,
                    on_error=on_error,
                    on_finished=self._recording_finished,
                )
                self._audio_session = session
            else:
                session = None

        if session is None:
            self._report(NO_AUDIO_TRACK, on_error)
            return False
        session.start(max_ms=self.cfg.audio_max_ms, timer_factory=self._timer_factory)
        return True

    def stop_audio_recording(self) -> bool:
        with self._lock:
            session = self._audio_session
        if session is None:
            return False
        return session.stop()

    # ------------------------------------------------------------------
    # Status / teardown

    @property
    def is_streaming(self) -> bool:
        with self._lock:
            return self._state == "streaming"

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return self._video_session is not None and self._video_session.is_recording

    @property
    def is_recording_audio(self) -> bool:
        with self._lock:
            return self._audio_session is not None

    @property
    def last_error(self) -> str | None:
        with self._lock:
            return self._last_error

    def status(self) -> MediaStatus:
        with self._lock:
            return MediaStatus(
                camera_state=self._state,
                is_streaming=self._state == "streaming",
                is_recording=self._video_session is not None and self._video_session.is_recording,
                is_recording_audio=self._audio_session is not None,
                last_error=self._last_error,
                debug={
                    "video_chunks": len(self._video_session.chunks) if self._video_session else 0,
                    "audio_chunks": len(self._audio_session.chunks) if self._audio_session else 0,
                },
            )

    def close(self) -> None:
        """Finalize recordings before releasing the stream that feeds them."""

        self.stop_recording()
        self.stop_audio_recording()
        self.stop_camera()

    def __enter__(self) -> "MediaSessionManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers

    def _acquire_with_fallback(self) -> MediaStream:
        width, height = self.cfg.capture_width, self.cfg.capture_height
        preferred = StreamConstraints(width, height, facing_mode=FACING_ENVIRONMENT, audio=True)
        try:
            return self._acquire(preferred, self.cfg)
        except Exception as exc:
            LOGGER.warning("Rear camera unavailable (%s); trying any camera", normalize_error_message(exc))
        fallback = StreamConstraints(width, height, facing_mode=None, audio=True)
        return self._acquire(fallback, self.cfg)

    def _recording_finished(self, session: RecordingSession) -> None:
        with self._lock:
            if self._video_session is session:
                self._video_session = None
            elif self._audio_session is session:
                self._audio_session = None

    def _report(self, message: str, on_error: ErrorCallback) -> None:
        LOGGER.warning(message)
        with self._lock:
            self._last_error = message
        if on_error is not None:
            on_error(message)


__all__ = ["MediaSessionManager"]
