"""Error taxonomy shared by the dispatcher and the media session manager."""

from __future__ import annotations

from .constants import API_KEY_REQUIRED, NO_SPEECH_DETECTED, UNKNOWN_ERROR


class PanelFlashError(Exception):
    """Base class; ``message`` is what the user gets to see."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(PanelFlashError):
    def __init__(self, message: str = API_KEY_REQUIRED) -> None:
        super().__init__(message)


class TransportError(PanelFlashError):
    pass


class CaptureDeniedError(PanelFlashError):
    pass


class EncodingUnsupportedError(PanelFlashError):
    pass


class NoSpeechDetectedError(PanelFlashError):
    def __init__(self, message: str = NO_SPEECH_DETECTED) -> None:
        super().__init__(message)


class DispatchError(PanelFlashError):
    """Raised out of a dispatcher future when its operation failed."""


def normalize_error_message(exc: BaseException | None, default: str = UNKNOWN_ERROR) -> str:
    """Return the human-readable message carried by ``exc``, or ``default``."""

    if exc is None:
        return default
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    text = str(exc)
    if text.strip():
        return text
    return default


__all__ = [
    "PanelFlashError",
    "ConfigurationError",
    "TransportError",
    "CaptureDeniedError",
    "EncodingUnsupportedError",
    "NoSpeechDetectedError",
    "DispatchError",
    "normalize_error_message",
]
