"""
OpenCV VideoCapture source: USB webcams (int index), RTSP/HTTP streams and
video files.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlparse, urlunparse

import cv2
import numpy as np

from models.config import CameraConfig
from models.frame import FrameData
from .base import ObservationSource, SourceConfig

_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def sanitize_device(device_id: Union[int, str]) -> str:
    """Mask credentials in a stream URL so it can be logged."""
    if not isinstance(device_id, str) or "://" not in device_id:
        return str(device_id)
    parsed = urlparse(device_id)
    if not (parsed.username or parsed.password):
        return device_id
    host = parsed.hostname or ""
    if parsed.port:
        host = f"{host}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=f"***@{host}"))


@dataclass
class OpenCVSourceConfig(SourceConfig):
    """
    Attributes:
        device_id: Camera index, stream URL or video file path.
        rtsp_transport: "tcp" or "udp" for RTSP streams.
        buffer_size: Capture buffer length; 1 keeps reads current.
        swap_rb / rotate / flip_horizontal / flip_vertical: Applied to every frame.
    """
    device_id: Union[int, str] = 0
    rtsp_transport: str = "tcp"
    buffer_size: int = 1
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_camera_config(cls, camera: CameraConfig, source_id: str = "camera") -> "OpenCVSourceConfig":
        return cls(
            source_id=source_id,
            resolution=tuple(camera.resolution) if camera.resolution else None,
            fps=camera.fps,
            device_id=camera.device_id,
            swap_rb=camera.swap_rb,
            rotate=camera.rotate,
            flip_horizontal=camera.flip_horizontal,
            flip_vertical=camera.flip_vertical,
        )


class OpenCVSource(ObservationSource):
    """
    A cv2.VideoCapture behind the source contract.

    open() returns early while the capture is healthy and rebuilds it once it
    has dropped, which is what restart-before-read relies on.
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._cap: Optional[cv2.VideoCapture] = None

    @property
    def device_id(self) -> Union[int, str]:
        return self.config.device_id

    @property
    def is_rtsp(self) -> bool:
        return isinstance(self.device_id, str) and self.device_id.startswith(("rtsp://", "rtsps://"))

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and not self.is_rtsp and os.path.exists(self.device_id)

    def open(self) -> None:
        if self._is_open and self._cap is not None and self._cap.isOpened():
            return
        self._release_capture()

        if self.is_rtsp:
            os.environ["OPENCV_FFMPEG_CAPTURE_OPTIONS"] = f"rtsp_transport;{self.config.rtsp_transport}"

        cap = cv2.VideoCapture(self.device_id)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Failed to open device {sanitize_device(self.device_id)}")
        if isinstance(self.device_id, int):
            self._configure_device(cap)

        self._cap = cap
        self._is_open = True
        self._frame_index = 0
        logging.info(f"OpenCVSource opened: source_id={self.source_id}, device={sanitize_device(self.device_id)}")

    def _configure_device(self, cap: cv2.VideoCapture) -> None:
        cfg = self.config
        if cfg.resolution:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, cfg.resolution[0])
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, cfg.resolution[1])
        if cfg.fps:
            cap.set(cv2.CAP_PROP_FPS, cfg.fps)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, cfg.buffer_size)
        logging.info(
            f"Camera settings: {int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))}x"
            f"{int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))} @ {cap.get(cv2.CAP_PROP_FPS):.0f} fps"
        )

    def read(self) -> Optional[FrameData]:
        if not self._is_open or self._cap is None:
            return None
        ok, image = self._cap.read()
        if not ok or image is None:
            if self.is_file:
                logging.info("End of video file reached")
            else:
                logging.warning(f"Failed to read frame from {sanitize_device(self.device_id)}")
            return None
        return self._next_frame(self._apply_transforms(image))

    def _apply_transforms(self, image: np.ndarray) -> np.ndarray:
        """Rotate, then flip, then swap R/B."""
        cfg = self.config
        if cfg.rotate in _ROTATIONS:
            image = cv2.rotate(image, _ROTATIONS[cfg.rotate])
        if cfg.flip_horizontal and cfg.flip_vertical:
            image = cv2.flip(image, -1)
        elif cfg.flip_horizontal:
            image = cv2.flip(image, 1)
        elif cfg.flip_vertical:
            image = cv2.flip(image, 0)
        if cfg.swap_rb:
            image = np.ascontiguousarray(image[..., ::-1])
        return image

    def _release_capture(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def close(self) -> None:
        self._release_capture()
        if self._is_open:
            logging.info(f"OpenCVSource closed: source_id={self.source_id}")
        self._is_open = False
