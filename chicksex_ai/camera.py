"""
Frame sources and image loading.

FrameSource is the scoped handle on a capture device used by live scanning:
open it, read JPEG snapshots, close it. Two implementations are provided:

- OpenCVCamera: a local webcam through cv2.VideoCapture
- StillFrameSource: replays fixed JPEG bytes (uploaded snapshots, tests)

The helpers at the bottom turn files and in-memory images into the
ImagePart the provider expects.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from chicksex_ai.config import JPEG_QUALITY
from chicksex_ai.errors import DeviceAccessError, InputValidationError
from chicksex_ai.provider.base import ImagePart

logger = logging.getLogger(__name__)

CAMERA_ERROR_MESSAGE = "Could not access camera. Please check permissions and try again."

_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}


class FrameSource(ABC):
    """A device that yields JPEG-encoded frames while open."""

    @abstractmethod
    def open(self) -> None:
        """Acquire the device. Raises DeviceAccessError on failure."""
        pass

    @abstractmethod
    def read_jpeg(self) -> bytes:
        """Snapshot the current frame as JPEG bytes."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the device. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    def __enter__(self) -> "FrameSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class OpenCVCamera(FrameSource):
    """Webcam capture via OpenCV."""

    def __init__(self, index: int = 0, quality: int = JPEG_QUALITY):
        self.index = index
        self.quality = quality
        self._capture = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        if self._capture is not None:
            return
        import cv2

        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise DeviceAccessError(CAMERA_ERROR_MESSAGE)
        self._capture = capture
        logger.info("Opened camera %d", self.index)

    def read_jpeg(self) -> bytes:
        import cv2

        if self._capture is None:
            raise DeviceAccessError("Camera is not open")
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise DeviceAccessError("Could not read a frame from the camera")
        ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), self.quality])
        if not ok:
            raise DeviceAccessError("Could not encode camera frame")
        return buffer.tobytes()

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Released camera %d", self.index)


class StillFrameSource(FrameSource):
    """Replays the same JPEG bytes for every read."""

    def __init__(self, frame: bytes):
        self.frame = frame
        self._open = False
        self.open_count = 0

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        if not self.frame:
            raise DeviceAccessError(CAMERA_ERROR_MESSAGE)
        self._open = True
        self.open_count += 1

    def read_jpeg(self) -> bytes:
        if not self._open:
            raise DeviceAccessError("Frame source is not open")
        return self.frame

    def close(self) -> None:
        self._open = False


def read_image_file(path: Union[str, Path]) -> ImagePart:
    """Load an image file, validating it with Pillow.

    Raises:
        InputValidationError: If the file is missing or not an image
    """
    from PIL import Image, UnidentifiedImageError

    path = Path(path)
    if not path.is_file():
        raise InputValidationError(f"Image not found: {path}")
    data = path.read_bytes()
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except UnidentifiedImageError:
        raise InputValidationError(f"Not a supported image file: {path.name}")
    return ImagePart(data=data, mime_type=_MIME_TYPES.get(fmt or "", "image/jpeg"))


def encode_jpeg(image, quality: int = JPEG_QUALITY) -> bytes:
    """Encode a PIL image or an RGB numpy array as JPEG bytes."""
    from PIL import Image

    if not isinstance(image, Image.Image):
        image = Image.fromarray(image)
    if image.mode != "RGB":
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def image_part_from(image, quality: int = JPEG_QUALITY) -> Optional[ImagePart]:
    """ImagePart for an in-memory image, or None when no image was given."""
    if image is None:
        return None
    return ImagePart(data=encode_jpeg(image, quality))
