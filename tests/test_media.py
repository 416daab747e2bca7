import base64
import io
import wave

import cv2
import numpy as np
import pytest

from panelflash import CaptureDeniedError, MediaSessionManager
from panelflash.constants import NO_AUDIO_TRACK, NO_SPEECH_DETECTED, RECORDING_UNSUPPORTED


def _fake_packager(calls):
    def _package(chunks, path, fps):
        calls.append(("package", len(chunks), path))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"webm")
        return path

    return _package


def _manager(cfg, stream, timers, *, events=None, saved=None, video_supported=True):
    calls = events if events is not None else []
    return MediaSessionManager(
        cfg,
        acquire=lambda constraints, _cfg: stream,
        timer_factory=timers,
        save_recording=(saved.append if saved is not None else None),
        video_supported=lambda: video_supported,
        packager=_fake_packager(calls),
    )


def test_capture_frame_is_absent_without_a_session(cfg):
    manager = MediaSessionManager(cfg, acquire=lambda c, _cfg: None)

    assert manager.capture_frame() is None
    assert manager.get_stream() is None


def test_capture_frame_returns_512x288_jpeg(cfg, fake_stream_factory, manual_timers):
    stream, _, _ = fake_stream_factory()
    manager = _manager(cfg, stream, manual_timers)

    assert manager.start_camera() is True
    still = manager.capture_frame()

    raw = base64.b64decode(still, validate=True)
    image = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert image.shape == (288, 512, 3)
    assert manager.get_stream() is stream


def test_capture_frame_is_absent_before_first_frame(cfg, fake_stream_factory, manual_timers):
    stream, _, _ = fake_stream_factory(frame=None)
    manager = _manager(cfg, stream, manual_timers)
    manager.start_camera()

    assert manager.capture_frame() is None


def test_rear_camera_failure_falls_back_to_any_camera(cfg, fake_stream_factory):
    stream, _, _ = fake_stream_factory()
    attempts = []

    def _acquire(constraints, _cfg):
        attempts.append(constraints)
        if constraints.facing_mode == "environment":
            raise CaptureDeniedError("no rear camera")
        return stream

    manager = MediaSessionManager(cfg, acquire=_acquire)

    assert manager.start_camera() is True
    assert manager.is_streaming
    assert [a.facing_mode for a in attempts] == ["environment", None]
    assert all((a.width, a.height) == (1280, 720) for a in attempts)


def test_total_acquisition_failure_reports_and_recovers(cfg, fake_stream_factory):
    stream, _, _ = fake_stream_factory()
    errors = []
    fail = [True]

    def _acquire(constraints, _cfg):
        if fail[0]:
            raise CaptureDeniedError("permission denied")
        return stream

    manager = MediaSessionManager(cfg, acquire=_acquire)

    assert manager.start_camera(on_error=errors.append) is False
    assert errors == ["Camera access failed: permission denied"]
    assert manager.is_streaming is False
    assert manager.status().camera_state == "idle"
    assert manager.last_error == "Camera access failed: permission denied"

    fail[0] = False
    assert manager.start_camera() is True
    assert manager.status().camera_state == "streaming"


def test_stop_camera_is_idempotent(cfg, fake_stream_factory, manual_timers):
    events = []
    stream, video, audio = fake_stream_factory(events=events)
    manager = _manager(cfg, stream, manual_timers)

    manager.stop_camera()
    manager.start_camera()
    manager.stop_camera()
    manager.stop_camera()

    assert events == ["video-track-stop", "audio-track-stop"]
    assert manager.get_stream() is None
    assert manager.status().camera_state == "idle"
    assert manager.capture_frame() is None


def test_video_recording_self_stops_at_its_ceiling(cfg, fake_stream_factory, manual_timers):
    stream, video, _ = fake_stream_factory()
    calls, saved = [], []
    manager = _manager(cfg, stream, manual_timers, events=calls, saved=saved)
    manager.start_camera()

    assert manager.start_recording() is True
    assert manager.is_recording
    timer = manual_timers.created[-1]
    assert timer.interval == pytest.approx(30.0)

    video.push()
    video.push()
    timer.fire()

    assert manager.is_recording is False
    assert calls[0][:2] == ("package", 2)
    path = calls[0][2]
    assert path.name.startswith("panelflash-") and path.suffix == ".webm"
    assert saved == [path]
    assert manager.stop_recording() is False


def test_explicit_stop_cancels_deadline_and_second_stop_is_noop(cfg, fake_stream_factory, manual_timers):
    stream, video, _ = fake_stream_factory()
    calls = []
    manager = _manager(cfg, stream, manual_timers, events=calls)
    manager.start_camera()
    manager.start_recording()
    video.push()

    assert manager.stop_recording() is True
    assert manager.stop_recording() is False
    timer = manual_timers.created[-1]
    assert timer.cancelled
    timer.fire()
    assert len(calls) == 1


def test_only_one_video_recording_at_a_time(cfg, fake_stream_factory, manual_timers):
    stream, _, _ = fake_stream_factory()
    manager = _manager(cfg, stream, manual_timers)
    manager.start_camera()

    assert manager.start_recording() is True
    assert manager.start_recording() is False


def test_unsupported_video_format_fails_immediately(cfg, fake_stream_factory, manual_timers):
    stream, _, _ = fake_stream_factory()
    errors = []
    manager = _manager(cfg, stream, manual_timers, video_supported=False)
    manager.start_camera()

    assert manager.start_recording(on_error=errors.append) is False
    assert errors == [RECORDING_UNSUPPORTED]
    assert manager.is_recording is False


def test_recording_requires_a_stream(cfg, manual_timers):
    errors = []
    manager = _manager(cfg, None, manual_timers)

    assert manager.start_recording(on_error=errors.append) is False
    assert manager.start_audio_recording(lambda b, m: "", lambda t: None, errors.append) is False
    assert errors[-1] == NO_AUDIO_TRACK


def test_audio_recording_self_stops_and_forwards_transcript(cfg, fake_stream_factory, manual_timers):
    stream, _, audio = fake_stream_factory()
    manager = _manager(cfg, stream, manual_timers)
    manager.start_camera()
    seen, transcripts = [], []

    def _transcribe(audio_b64, mime_type):
        seen.append((base64.b64decode(audio_b64), mime_type))
        return " make it snow "

    assert manager.start_audio_recording(_transcribe, transcripts.append) is True
    timer = manual_timers.created[-1]
    assert timer.interval == pytest.approx(5.0)

    audio.push(b"\x01\x00" * 160)
    timer.fire()

    assert transcripts == ["make it snow"]
    payload, mime = seen[0]
    assert mime == "audio/wav"
    with wave.open(io.BytesIO(payload), "rb") as handle:
        assert handle.getnframes() == 160
        assert handle.getframerate() == 16000
    assert manager.is_recording_audio is False
    assert manager.stop_audio_recording() is False


def test_silent_audio_signals_no_speech_not_transport_error(cfg, fake_stream_factory, manual_timers):
    stream, _, audio = fake_stream_factory()
    manager = _manager(cfg, stream, manual_timers)
    manager.start_camera()
    errors, transcripts = [], []

    manager.start_audio_recording(lambda b, m: "", transcripts.append, errors.append)
    session = manager._audio_session
    audio.push(b"\x00\x00" * 320)
    assert manager.stop_audio_recording() is True

    assert transcripts == []
    assert errors == [NO_SPEECH_DETECTED]
    assert session.outcome == "no_speech"


def test_transcription_failure_is_reported(cfg, fake_stream_factory, manual_timers):
    stream, _, _ = fake_stream_factory()
    manager = _manager(cfg, stream, manual_timers)
    manager.start_camera()
    errors = []

    def _broken(audio_b64, mime_type):
        raise RuntimeError("503 unavailable")

    manager.start_audio_recording(_broken, lambda t: None, errors.append)
    session = manager._audio_session
    manager.stop_audio_recording()

    assert errors == ["503 unavailable"]
    assert session.outcome == "error"


def test_close_finalizes_recordings_before_releasing_the_stream(cfg, fake_stream_factory, manual_timers):
    events = []
    stream, video, audio = fake_stream_factory(events=events)
    manager = _manager(cfg, stream, manual_timers, events=events)
    manager.start_camera()

    def _transcribe(audio_b64, mime_type):
        events.append("transcribe")
        return "hello"

    manager.start_recording()
    manager.start_audio_recording(_transcribe, lambda t: None)
    video.push()
    audio.push(b"\x00\x01" * 10)

    with manager:
        pass

    names = [e[0] if isinstance(e, tuple) else e for e in events]
    assert names.index("package") < names.index("video-track-stop")
    assert names.index("transcribe") < names.index("audio-track-stop")
    assert manager.status().camera_state == "idle"
    assert not manager.is_recording and not manager.is_recording_audio
