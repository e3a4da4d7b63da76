"""
Observation layer for live frame sources.

This layer abstracts where frames come from (camera, stream, video file,
still image) from the capture scheduler. Each source implements the
ObservationSource interface and returns FrameData objects.
"""

from models.config import CameraConfig

from .base import ObservationSource, SourceConfig
from .opencv_source import OpenCVSource, OpenCVSourceConfig
from .image_source import (
    StillImageSource,
    StillImageSourceConfig,
    decode_image,
    is_image_path,
    load_image,
)


def create_source_from_config(camera: CameraConfig, source_id: str = "camera") -> ObservationSource:
    """Pick a source implementation for the configured camera device."""
    if is_image_path(camera.device_id):
        return StillImageSource(StillImageSourceConfig(source_id=source_id, path=camera.device_id))
    return OpenCVSource(OpenCVSourceConfig.from_camera_config(camera, source_id=source_id))


__all__ = [
    "ObservationSource",
    "SourceConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
    "StillImageSource",
    "StillImageSourceConfig",
    "create_source_from_config",
    "decode_image",
    "is_image_path",
    "load_image",
]
