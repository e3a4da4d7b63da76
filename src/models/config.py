"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

DEFAULT_INPUT_SHAPE: Tuple[int, int, int, int] = (1, 3, 1024, 1024)


@dataclass
class CameraConfig:
    """Camera configuration."""
    device_id: Union[int, str] = 0
    resolution: Optional[List[int]] = None
    fps: Optional[int] = None
    restart_before_read: bool = False
    start_retry_delay: float = 1.0
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution"),
            fps=d.get("fps"),
            restart_before_read=d.get("restart_before_read", False),
            start_retry_delay=float(d.get("start_retry_delay", 1.0)),
            swap_rb=d.get("swap_rb", False),
            rotate=d.get("rotate", 0) or 0,
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "restart_before_read": self.restart_before_read,
            "start_retry_delay": self.start_retry_delay,
            "swap_rb": self.swap_rb,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


@dataclass
class ModelsConfig:
    """Model asset locations and session options."""
    base_url: str = "models"
    detector: str = "drumhead_nano.onnx"
    reducer: str = "nms-yolov8.onnx"
    providers: List[str] = field(default_factory=lambda: ["CPUExecutionProvider"])
    input_shape: Tuple[int, int, int, int] = DEFAULT_INPUT_SHAPE
    class_names: List[str] = field(default_factory=lambda: ["drum_head"])
    download_timeout: float = 60.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModelsConfig":
        return cls(
            base_url=d.get("base_url", "models"),
            detector=d.get("detector", "drumhead_nano.onnx"),
            reducer=d.get("reducer", "nms-yolov8.onnx"),
            providers=list(d.get("providers") or ["CPUExecutionProvider"]),
            input_shape=tuple(d.get("input_shape") or DEFAULT_INPUT_SHAPE),
            class_names=list(d.get("class_names") or ["drum_head"]),
            download_timeout=float(d.get("download_timeout", 60.0)),
        )

    def uri(self, name: str) -> str:
        """Resolve a model file name against base_url (URL or directory)."""
        if "://" in name or not self.base_url:
            return name
        return f"{self.base_url.rstrip('/')}/{name}"

    @property
    def detector_uri(self) -> str:
        return self.uri(self.detector)

    @property
    def reducer_uri(self) -> str:
        return self.uri(self.reducer)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "detector": self.detector,
            "reducer": self.reducer,
            "providers": list(self.providers),
            "input_shape": list(self.input_shape),
            "class_names": list(self.class_names),
            "download_timeout": self.download_timeout,
        }


@dataclass(frozen=True)
class DetectionParams:
    """Parameters handed to the reducer model on every frame."""
    topk: int = 1
    iou_threshold: float = 0.9
    score_threshold: float = 0.1

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionParams":
        return cls(
            topk=int(d.get("topk", 1)),
            iou_threshold=float(d.get("iou_threshold", 0.9)),
            score_threshold=float(d.get("score_threshold", 0.1)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topk": self.topk,
            "iou_threshold": self.iou_threshold,
            "score_threshold": self.score_threshold,
        }


@dataclass
class CaptureConfig:
    """Continuous capture scheduling."""
    rearm_poll_interval: float = 0.1

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CaptureConfig":
        return cls(rearm_poll_interval=float(d.get("rearm_poll_interval", 0.1)))

    def to_dict(self) -> Dict[str, Any]:
        return {"rearm_poll_interval": self.rearm_poll_interval}


@dataclass
class WebConfig:
    """Web API server settings."""
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WebConfig":
        return cls(host=d.get("host", "0.0.0.0"), port=int(d.get("port", 5000)))

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    camera: CameraConfig = field(default_factory=CameraConfig)
    models: ModelsConfig = field(default_factory=ModelsConfig)
    detection: DetectionParams = field(default_factory=DetectionParams)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    web: WebConfig = field(default_factory=WebConfig)
    log_path: str = "logs/drumhead.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            models=ModelsConfig.from_dict(d.get("models", {}) or {}),
            detection=DetectionParams.from_dict(d.get("detection", {}) or {}),
            capture=CaptureConfig.from_dict(d.get("capture", {}) or {}),
            web=WebConfig.from_dict(d.get("web", {}) or {}),
            log_path=d.get("log_path", "logs/drumhead.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary."""
        return {
            "camera": self.camera.to_dict(),
            "models": self.models.to_dict(),
            "detection": self.detection.to_dict(),
            "capture": self.capture.to_dict(),
            "web": self.web.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
