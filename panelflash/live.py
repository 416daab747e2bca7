"""Live camera transforms driven by typed or spoken commands."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional

from .constants import (
    COMMAND_IN_FLIGHT,
    FRAME_CAPTURE_FAILED,
    LIVE_FIRST_TEMPLATE,
    LIVE_FOLLOWUP_TEMPLATE,
    SAMPLE_PROMPTS,
)
from .errors import PanelFlashError
from .gemini_client import GeminiImageClient
from .media import MediaSessionManager

LOGGER = logging.getLogger(__name__)


def sample_commands() -> list[str]:
    return [f"Make it look like a {prompt.lower()}" for prompt in SAMPLE_PROMPTS]


class LiveSession:
    """Captures a frame per command and keeps the latest transformed frame.

    The first command edits the raw camera frame; later commands keep editing
    the previously transformed frame until :meth:`clear_effects` is called.
    """

    def __init__(
        self,
        client: GeminiImageClient,
        media: MediaSessionManager,
        *,
        on_error: Optional[Callable[[str], None]] = None,
        on_frame: Optional[Callable[[bytes], None]] = None,
        timeout_s: float | None = None,
    ) -> None:
        self.client = client
        self.media = media
        self.timeout_s = timeout_s
        self.processed_frame: bytes | None = None
        self.last_command = ""
        self.last_error: str | None = None
        self._on_error = on_error
        self._on_frame = on_frame
        self._lock = threading.Lock()
        self._processing = False

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._processing

    def process_command(self, command: str) -> bytes | None:
        command = command.strip()
        if not command or not self.media.is_streaming:
            return None
        with self._lock:
            busy = self._processing
            if not busy:
                self._processing = True
        if busy:
            self._report(COMMAND_IN_FLIGHT)
            return None
        self.last_command = command

        try:
            frame_b64 = self.media.capture_frame()
            if not frame_b64:
                raise PanelFlashError(FRAME_CAPTURE_FAILED)
            previous = self.processed_frame
            if previous is not None:
                future = self.client.edit_image(
                    previous, LIVE_FOLLOWUP_TEMPLATE.format(command=command)
                )
            else:
                future = self.client.edit_image(
                    frame_b64, LIVE_FIRST_TEMPLATE.format(command=command), "image/jpeg"
                )
            result = future.result(timeout=self.timeout_s)
        except PanelFlashError as exc:
            self._report(exc.message)
            return None
        except FutureTimeoutError:
            self._report("Timed out waiting for the transformed frame")
            return None
        finally:
            with self._lock:
                self._processing = False

        self.processed_frame = result
        if self._on_frame is not None:
            self._on_frame(result)
        return result

    def start_voice_command(self) -> bool:
        self.clear_error()
        return self.media.start_audio_recording(
            transcribe=self.client.transcribe_audio,
            on_transcript=self.process_command,
            on_error=self._report,
        )

    def clear_effects(self) -> None:
        self.processed_frame = None

    def clear_error(self) -> None:
        self.last_error = None

    def _report(self, message: str) -> None:
        LOGGER.warning(message)
        self.last_error = message
        if self._on_error is not None:
            self._on_error(message)


__all__ = ["LiveSession", "sample_commands"]
