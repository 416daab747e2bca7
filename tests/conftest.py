import sys
import threading
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from panelflash import PanelFlashConfig  # noqa: E402
from panelflash.streams import MediaStream  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 16


class VirtualClock:
    """Clock/sleep pair where sleeping advances time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._lock = threading.Lock()
        self.sleeps: list[float] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self._now += seconds

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds


def image_response(data=PNG_BYTES):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type="image/png"), text=None)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


def text_only_response(text="sorry, no image"):
    part = SimpleNamespace(inline_data=None, text=text)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


class FakeModels:
    def __init__(self, owner: "FakeGenAI") -> None:
        self._owner = owner

    def generate_content(self, *, model, contents, **kwargs):
        self._owner.calls.append({"model": model, "contents": contents})
        if not self._owner.responses:
            return image_response()
        outcome = self._owner.responses.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeGenAI:
    """Stands in for ``google.genai.Client``; responses are consumed in order."""

    def __init__(self, responses=None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict] = []
        self.models = FakeModels(self)


class FakeVideoTrack:
    kind = "video"

    def __init__(self, frame=None, events=None, fps=30.0) -> None:
        self.frame = frame
        self.fps = fps
        self.ready_state = "live"
        self.sinks = []
        self.events = events if events is not None else []

    def latest_frame(self):
        return self.frame

    def subscribe(self, sink):
        self.sinks.append(sink)

    def unsubscribe(self, sink):
        if sink in self.sinks:
            self.sinks.remove(sink)

    def push(self, frame=None):
        data = frame if frame is not None else self.frame
        for sink in list(self.sinks):
            sink(data)

    def stop(self):
        if self.ready_state != "ended":
            self.events.append("video-track-stop")
        self.ready_state = "ended"


class FakeAudioTrack:
    kind = "audio"

    def __init__(self, sample_rate=16000, events=None) -> None:
        self.sample_rate = sample_rate
        self.ready_state = "live"
        self.sinks = []
        self.events = events if events is not None else []

    def subscribe(self, sink):
        self.sinks.append(sink)

    def unsubscribe(self, sink):
        if sink in self.sinks:
            self.sinks.remove(sink)

    def push(self, chunk: bytes):
        for sink in list(self.sinks):
            sink(chunk)

    def stop(self):
        if self.ready_state != "ended":
            self.events.append("audio-track-stop")
        self.ready_state = "ended"


class ManualTimer:
    """threading.Timer look-alike that only fires when told to."""

    created: list["ManualTimer"] = []

    def __init__(self, interval, function) -> None:
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        ManualTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.function()


def make_frame(width=1280, height=720, value=127):
    return np.full((height, width, 3), value, dtype=np.uint8)


@pytest.fixture
def cfg(tmp_path):
    return PanelFlashConfig(api_key="test-key", min_interval_ms=0, output_dir=str(tmp_path / "out"))


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def manual_timers():
    ManualTimer.created = []
    return ManualTimer


@pytest.fixture
def fake_stream_factory():
    """Return a factory building (stream, video_track, audio_track) triples."""

    def _factory(*, frame="default", audio=True, events=None):
        events = events if events is not None else []
        video = FakeVideoTrack(make_frame() if frame == "default" else frame, events=events)
        audio_track = FakeAudioTrack(events=events) if audio else None
        stream = MediaStream([video], [audio_track] if audio_track else [])
        return stream, video, audio_track

    return _factory
