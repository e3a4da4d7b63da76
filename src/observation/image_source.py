"""
Still-image loading.

Covers the file-selection path (decode one image into a FrameData) and a
StillImageSource that replays an image file as if it were a camera, which is
handy on machines without a webcam.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Union

import cv2
import numpy as np

from models.errors import ImageDecodeError
from models.frame import FrameData
from .base import ObservationSource, SourceConfig

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp", ".webp", ".tif", ".tiff")


def is_image_path(path: Union[int, str]) -> bool:
    return isinstance(path, str) and path.lower().endswith(IMAGE_EXTENSIONS)


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (any format OpenCV reads) into a BGR array."""
    if not data:
        raise ImageDecodeError("Empty image payload")
    buf = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageDecodeError("Could not decode image payload")
    return image


def load_image(source: Union[str, bytes], source_id: Optional[str] = None) -> FrameData:
    """
    Load a selected image from a path or raw bytes.

    Raises:
        ImageDecodeError: If the file is missing or not an image.
    """
    if isinstance(source, (bytes, bytearray)):
        image = decode_image(bytes(source))
        name = source_id or "upload"
    else:
        if not os.path.exists(source):
            raise ImageDecodeError(f"Image not found: {source}")
        image = cv2.imread(source, cv2.IMREAD_COLOR)
        if image is None:
            raise ImageDecodeError(f"Could not decode image: {source}")
        name = source_id or os.path.basename(source)
    return FrameData.from_numpy(image, source=name)


@dataclass
class StillImageSourceConfig(SourceConfig):
    path: str = ""


class StillImageSource(ObservationSource):
    """Returns a copy of the same image on every read."""

    def __init__(self, config: StillImageSourceConfig):
        super().__init__(config)
        self._path = config.path
        self._image: Optional[np.ndarray] = None

    def open(self) -> None:
        if self._is_open:
            return
        image = cv2.imread(self._path, cv2.IMREAD_COLOR)
        if image is None:
            raise RuntimeError(f"Failed to open still image {self._path}")
        self._image = image
        self._is_open = True
        self._frame_index = 0
        logging.info(f"StillImageSource opened: source_id={self.source_id}, path={self._path}")

    def read(self) -> Optional[FrameData]:
        if not self._is_open or self._image is None:
            return None
        return self._next_frame(self._image.copy())

    def close(self) -> None:
        self._image = None
        self._is_open = False
