"""Hardware capture streams: an OpenCV camera track plus a sounddevice microphone track."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, Optional

import cv2
import numpy as np

from .config import PanelFlashConfig
from .constants import AUDIO_BIT_DEPTH, FACING_ENVIRONMENT, VIDEO_FALLBACK_FPS
from .errors import CaptureDeniedError
from .types import StreamConstraints

LOGGER = logging.getLogger(__name__)

FrameSink = Callable[[np.ndarray], None]
AudioSink = Callable[[bytes], None]

_MAX_READ_FAILURES = 50


def to_pcm_bytes(samples) -> bytes:
    """Convert float samples in [-1, 1] to little-endian int16 PCM."""

    array = np.asarray(samples, dtype=np.float32)
    if array.ndim > 1:
        array = array[:, 0]
    scaled = np.clip(array, -1.0, 1.0)
    max_int = (2 ** (AUDIO_BIT_DEPTH - 1)) - 1
    return (scaled * max_int).astype("<i2").tobytes()


class VideoTrack:
    """Owns a ``cv2.VideoCapture`` and a reader thread that fans frames out to sinks."""

    kind = "video"

    def __init__(self, capture: "cv2.VideoCapture", *, label: str = "camera") -> None:
        self.label = label
        self._capture = capture
        self._lock = threading.Lock()
        self._sinks: list[FrameSink] = []
        self._latest: np.ndarray | None = None
        self._stop_event = threading.Event()
        self._reader: threading.Thread | None = None
        self.ready_state = "live"
        self.fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0) or VIDEO_FALLBACK_FPS
        self.frame_size = (
            int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        if self._reader is not None:
            return
        self._reader = threading.Thread(
            target=self._read_loop, name=f"VideoTrack-{self.label}", daemon=True
        )
        self._reader.start()

    def stop(self) -> None:
        if self.ready_state == "ended":
            return
        self.ready_state = "ended"
        self._stop_event.set()
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=2.0)
        self._capture.release()
        with self._lock:
            self._sinks.clear()
        LOGGER.info("Video track %s stopped", self.label)

    # ------------------------------------------------------------------
    # Consumers

    def latest_frame(self) -> np.ndarray | None:
        with self._lock:
            return self._latest

    def subscribe(self, sink: FrameSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def unsubscribe(self, sink: FrameSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def _read_loop(self) -> None:
        failures = 0
        while not self._stop_event.is_set():
            ok, frame = self._capture.read()
            if not ok or frame is None:
                failures += 1
                if failures % _MAX_READ_FAILURES == 0:
                    LOGGER.warning("Camera %s: %d consecutive failed reads", self.label, failures)
                time.sleep(0.01)
                continue
            failures = 0
            with self._lock:
                self._latest = frame
                sinks = list(self._sinks)
            for sink in sinks:
                try:
                    sink(frame)
                except Exception as exc:
                    LOGGER.error("Frame sink failed: %s", exc)


class AudioTrack:
    """Owns a mono ``sounddevice.InputStream``; blocks are delivered to sinks as int16 PCM."""

    kind = "audio"

    def __init__(self, sample_rate: int, *, device: int | None = None, label: str = "microphone") -> None:
        self.sample_rate = sample_rate
        self.device = device
        self.label = label
        self.stream = None
        self.ready_state = "new"
        self._lock = threading.Lock()
        self._sinks: list[AudioSink] = []
        self._last_status: Optional[str] = None

    def start(self) -> None:
        if self.stream is not None:
            return
        try:
            import sounddevice as sd

            stream = sd.InputStream(
                device=self.device,
                channels=1,
                samplerate=self.sample_rate,
                dtype="float32",
                callback=self._callback,
                blocksize=0,
            )
            stream.start()
        except Exception as exc:
            raise CaptureDeniedError(f"Microphone unavailable: {exc}") from exc
        self.stream = stream
        self.ready_state = "live"
        LOGGER.info("Audio track %s started (%d Hz)", self.label, self.sample_rate)

    def stop(self) -> None:
        stream = self.stream
        self.ready_state = "ended"
        if stream is None:
            return
        self.stream = None
        try:
            stream.stop()
            stream.close()
        except Exception as exc:
            LOGGER.debug("Audio stream close error: %s", exc)
        with self._lock:
            self._sinks.clear()
        LOGGER.info("Audio track %s stopped", self.label)

    def subscribe(self, sink: AudioSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def unsubscribe(self, sink: AudioSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            status_str = str(status)
            if status_str != self._last_status:
                LOGGER.warning("Audio callback status: %s", status_str)
                self._last_status = status_str
        with self._lock:
            sinks = list(self._sinks)
        if not sinks:
            return
        chunk = to_pcm_bytes(indata)
        for sink in sinks:
            try:
                sink(chunk)
            except Exception as exc:
                LOGGER.error("Audio sink failed: %s", exc)


class MediaStream:
    """A combined capture handle: zero or more video and audio tracks."""

    def __init__(self, video_tracks: Iterable = (), audio_tracks: Iterable = ()) -> None:
        self._video_tracks = list(video_tracks)
        self._audio_tracks = list(audio_tracks)

    def get_video_tracks(self) -> list:
        return list(self._video_tracks)

    def get_audio_tracks(self) -> list:
        return list(self._audio_tracks)

    def get_tracks(self) -> list:
        return self._video_tracks + self._audio_tracks

    @property
    def active(self) -> bool:
        return any(track.ready_state == "live" for track in self.get_tracks())

    def stop(self) -> None:
        for track in self.get_tracks():
            track.stop()


def open_media_stream(constraints: StreamConstraints, cfg: PanelFlashConfig) -> MediaStream:
    """Acquire the camera (and microphone) described by ``constraints``.

    Raises:
        CaptureDeniedError: if either device cannot be opened. Anything that
            was already opened is released first.
    """

    if constraints.facing_mode == FACING_ENVIRONMENT:
        index = cfg.rear_camera_index
    else:
        index = cfg.default_camera_index

    capture = cv2.VideoCapture(index)
    if not capture.isOpened():
        capture.release()
        raise CaptureDeniedError(f"Unable to open camera {index}")
    capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
    video = VideoTrack(capture, label=f"camera{index}")

    audio_tracks = []
    if constraints.audio:
        audio = AudioTrack(cfg.audio_sample_rate)
        try:
            audio.start()
        except CaptureDeniedError:
            capture.release()
            raise
        audio_tracks.append(audio)

    video.start()
    LOGGER.info(
        "Opened camera %d at %dx%d@%.1f (audio=%s)",
        index,
        video.frame_size[0],
        video.frame_size[1],
        video.fps,
        bool(audio_tracks),
    )
    return MediaStream([video], audio_tracks)


__all__ = [
    "AudioTrack",
    "MediaStream",
    "VideoTrack",
    "open_media_stream",
    "to_pcm_bytes",
]
