"""Gemini client wrapper for image generation, editing, fusion and transcription."""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from concurrent.futures import Future
from typing import Callable, Union

from google import genai
from google.genai import types as genai_types

from .config import PanelFlashConfig
from .constants import (
    EDIT_TEMPLATE,
    FUSE_TEMPLATE,
    GENERATE_TEMPLATE,
    NO_RESPONSE,
    TRANSCRIBE_INSTRUCTION,
)
from .dispatcher import RequestDispatcher
from .errors import ConfigurationError, PanelFlashError, TransportError, normalize_error_message

LOGGER = logging.getLogger(__name__)

ImageInput = Union[bytes, str]

_MIME_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_image_mime(data: bytes, default: str = "image/png") -> str:
    """Guess the media type of an encoded image from its leading bytes."""

    for signature, mime in _MIME_SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return default


def coerce_image_bytes(image: ImageInput) -> bytes:
    """Accept raw bytes or a base64 string and return raw bytes."""

    if isinstance(image, (bytes, bytearray)):
        return bytes(image)
    text = image.split(",", 1)[1] if image.startswith("data:") else image
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TransportError(f"Invalid base64 image payload: {exc}") from exc


def extract_inline_data(response: object, missing_message: str) -> bytes:
    """Return the first inline binary payload of the first candidate."""

    candidates = getattr(response, "candidates", None) if response is not None else None
    if not candidates:
        raise TransportError(NO_RESPONSE)
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) if content is not None else None
    if not parts:
        raise TransportError(NO_RESPONSE)

    for part in parts:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if data:
            if isinstance(data, str):
                return base64.b64decode(data)
            return bytes(data)
    raise TransportError(missing_message)


class GeminiImageClient:
    """Builds request payloads and funnels every generation call through the dispatcher."""

    def __init__(
        self,
        cfg: PanelFlashConfig,
        dispatcher: RequestDispatcher,
        *,
        client: object | None = None,
    ) -> None:
        self.cfg = cfg
        self.dispatcher = dispatcher
        self._api_key = cfg.api_key
        self._client = client
        self._client_lock = threading.Lock()

    # Public API ---------------------------------------------------------
    @property
    def api_key(self) -> str | None:
        return self._api_key

    def set_api_key(self, api_key: str | None) -> None:
        with self._client_lock:
            self._api_key = api_key.strip() if api_key else None
            self._client = None

    def generate_image(self, prompt: str) -> "Future[bytes]":
        self._require_api_key()
        contents = [GENERATE_TEMPLATE.format(prompt=prompt)]
        return self._enqueue("generate", prompt, contents, "No image data received from API")

    def edit_image(
        self, image: ImageInput, prompt: str, mime_type: str | None = None
    ) -> "Future[bytes]":
        self._require_api_key()
        contents = [
            EDIT_TEMPLATE.format(prompt=prompt),
            self._image_part(image, mime_type),
        ]
        return self._enqueue("edit", prompt, contents, "No edited image data received from API")

    def fuse_images(self, image1: ImageInput, image2: ImageInput, prompt: str) -> "Future[bytes]":
        self._require_api_key()
        contents = [
            FUSE_TEMPLATE.format(prompt=prompt),
            self._image_part(image1),
            self._image_part(image2),
        ]
        return self._enqueue("fuse", prompt, contents, "No fused image data received from API")

    def transcribe_audio(self, audio_b64: str, mime_type: str) -> str:
        """Return the transcript of a base64 audio clip, possibly empty."""

        self._require_api_key()
        try:
            audio = base64.b64decode(audio_b64)
        except (binascii.Error, ValueError) as exc:
            raise TransportError(f"Invalid base64 audio payload: {exc}") from exc

        contents = [
            TRANSCRIBE_INSTRUCTION,
            genai_types.Part.from_bytes(data=audio, mime_type=mime_type),
        ]
        try:
            response = self._get_client().models.generate_content(
                model=self.cfg.transcribe_model_name,
                contents=contents,
            )
        except PanelFlashError:
            raise
        except Exception as exc:
            raise TransportError(normalize_error_message(exc)) from exc

        text = getattr(response, "text", None)
        if not isinstance(text, str):
            return ""
        return text.strip()

    # Internal helpers ---------------------------------------------------
    def _require_api_key(self) -> None:
        if not self._api_key:
            raise ConfigurationError()

    def _image_part(self, image: ImageInput, mime_type: str | None = None) -> object:
        data = coerce_image_bytes(image)
        return genai_types.Part.from_bytes(
            data=data, mime_type=mime_type or sniff_image_mime(data)
        )

    def _get_client(self):
        with self._client_lock:
            if self._client is None:
                self._client = genai.Client(
                    api_key=self._api_key,
                    http_options=genai_types.HttpOptions(timeout=int(self.cfg.timeout_s * 1000)),
                )
            return self._client

    def _enqueue(
        self, kind: str, prompt: str, contents: list, missing_message: str
    ) -> "Future[bytes]":
        operation = self._make_operation(contents, missing_message)
        LOGGER.info("Queueing %s request (%d parts)", kind, len(contents))
        return self.dispatcher.enqueue(operation, kind=kind, label=prompt)

    def _make_operation(self, contents: list, missing_message: str) -> Callable[[], bytes]:
        def _operation() -> bytes:
            try:
                response = self._get_client().models.generate_content(
                    model=self.cfg.model_name,
                    contents=contents,
                )
            except PanelFlashError:
                raise
            except Exception as exc:
                raise TransportError(normalize_error_message(exc)) from exc
            return extract_inline_data(response, missing_message)

        return _operation


__all__ = [
    "GeminiImageClient",
    "coerce_image_bytes",
    "extract_inline_data",
    "sniff_image_mime",
]
