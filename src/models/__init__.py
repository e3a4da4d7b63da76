"""
Typed models for the drum-head detector.
"""

from .frame import FrameData
from .detection import Detection, BoundingBox
from .errors import (
    DrumheadError,
    SetupError,
    ModelLoadError,
    ShapeMismatchError,
    PipelineBusyError,
    ImageDecodeError,
)
from .config import (
    Config,
    CameraConfig,
    ModelsConfig,
    DetectionParams,
    CaptureConfig,
    WebConfig,
    DEFAULT_INPUT_SHAPE,
)

__all__ = [
    # Frame
    "FrameData",
    # Detection
    "Detection",
    "BoundingBox",
    # Errors
    "DrumheadError",
    "SetupError",
    "ModelLoadError",
    "ShapeMismatchError",
    "PipelineBusyError",
    "ImageDecodeError",
    # Config
    "Config",
    "CameraConfig",
    "ModelsConfig",
    "DetectionParams",
    "CaptureConfig",
    "WebConfig",
    "DEFAULT_INPUT_SHAPE",
]
