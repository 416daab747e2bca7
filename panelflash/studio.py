"""Image studio: generate, edit and fuse images and keep the current artifact."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from .constants import FUSE_NEEDS_TWO_IMAGES, NO_IMAGE_TO_EDIT, PRODUCT_NAME
from .errors import PanelFlashError, TransportError
from .gemini_client import GeminiImageClient, coerce_image_bytes, sniff_image_mime
from .types import GeneratedArtifact, UploadSlot

LOGGER = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path]


def load_image(source: ImageSource) -> bytes:
    """Read an image from a path, raw bytes or a base64 string."""

    if isinstance(source, Path):
        return source.read_bytes()
    return coerce_image_bytes(source)


def artifact_filename(artifact: GeneratedArtifact) -> str:
    return f"{PRODUCT_NAME}-{artifact.id}.png"


class Studio:
    """Holds the current artifact and the two fusion upload slots."""

    def __init__(
        self,
        client: GeminiImageClient,
        *,
        timeout_s: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.timeout_s = timeout_s
        self.current: GeneratedArtifact | None = None
        self.uploads: dict[str, Optional[bytes]] = {"img1": None, "img2": None}
        self._clock = clock

    def generate(self, prompt: str) -> GeneratedArtifact:
        data = self._wait(self.client.generate_image(prompt))
        return self._publish(data, prompt)

    def edit(self, prompt: str) -> GeneratedArtifact:
        current = self.current
        if current is None:
            raise PanelFlashError(NO_IMAGE_TO_EDIT)
        data = self._wait(self.client.edit_image(current.encoded_image, prompt, current.mime_type))
        return self._publish(data, f"{current.prompt} → {prompt}")

    def fuse(self, prompt: str) -> GeneratedArtifact:
        img1, img2 = self.uploads["img1"], self.uploads["img2"]
        if img1 is None or img2 is None:
            raise PanelFlashError(FUSE_NEEDS_TWO_IMAGES)
        data = self._wait(self.client.fuse_images(img1, img2, prompt))
        return self._publish(data, f"Fused: {prompt}")

    def upload(self, slot: UploadSlot, source: ImageSource) -> None:
        if slot not in self.uploads:
            raise ValueError(f"Unknown upload slot: {slot}")
        self.uploads[slot] = load_image(source)

    def open(self, source: ImageSource, prompt: str = "") -> GeneratedArtifact:
        """Make an existing image the current artifact so it can be edited."""

        return self._publish(load_image(source), prompt)

    def download(self, artifact: GeneratedArtifact | None = None, directory: str | Path = ".") -> Path:
        target = artifact or self.current
        if target is None:
            raise PanelFlashError(NO_IMAGE_TO_EDIT)
        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / artifact_filename(target)
        path.write_bytes(target.encoded_image)
        LOGGER.info("Saved %s", path)
        return path

    def _wait(self, future: "Future[bytes]") -> bytes:
        try:
            return future.result(timeout=self.timeout_s)
        except FutureTimeoutError as exc:
            raise TransportError("Timed out waiting for the image request") from exc

    def _publish(self, data: bytes, prompt: str) -> GeneratedArtifact:
        artifact = GeneratedArtifact(
            id=str(int(self._clock() * 1000)),
            encoded_image=data,
            prompt=prompt,
            created_at=datetime.now(),
            mime_type=sniff_image_mime(data),
        )
        self.current = artifact
        return artifact


__all__ = ["Studio", "artifact_filename", "load_image"]
