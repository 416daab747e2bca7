"""Public API for PanelFlash."""

from .config import PanelFlashConfig, load_config
from .dispatcher import RequestDispatcher
from .errors import (
    CaptureDeniedError,
    ConfigurationError,
    DispatchError,
    EncodingUnsupportedError,
    NoSpeechDetectedError,
    PanelFlashError,
    TransportError,
    normalize_error_message,
)
from .gemini_client import GeminiImageClient, extract_inline_data, sniff_image_mime
from .live import LiveSession, sample_commands
from .logging_utils import append_event, build_log_event, ensure_log_dir, event_log_sink
from .media import MediaSessionManager
from .recording import (
    AUDIO_FORMAT_PREFERENCES,
    AudioRecordingSession,
    RecordingFormat,
    VideoRecordingSession,
    resolve_audio_format,
)
from .streams import AudioTrack, MediaStream, VideoTrack, open_media_stream
from .studio import Studio
from .types import (
    CaptureState,
    DispatcherSnapshot,
    GeneratedArtifact,
    MediaStatus,
    QueueItem,
    StreamConstraints,
)

__all__ = [
    "AUDIO_FORMAT_PREFERENCES",
    "AudioRecordingSession",
    "AudioTrack",
    "CaptureDeniedError",
    "CaptureState",
    "ConfigurationError",
    "DispatchError",
    "DispatcherSnapshot",
    "EncodingUnsupportedError",
    "GeminiImageClient",
    "GeneratedArtifact",
    "LiveSession",
    "MediaSessionManager",
    "MediaStatus",
    "MediaStream",
    "NoSpeechDetectedError",
    "PanelFlashConfig",
    "PanelFlashError",
    "QueueItem",
    "RecordingFormat",
    "RequestDispatcher",
    "StreamConstraints",
    "Studio",
    "TransportError",
    "VideoRecordingSession",
    "VideoTrack",
    "append_event",
    "build_log_event",
    "ensure_log_dir",
    "event_log_sink",
    "extract_inline_data",
    "load_config",
    "normalize_error_message",
    "open_media_stream",
    "resolve_audio_format",
    "sample_commands",
    "sniff_image_mime",
]
