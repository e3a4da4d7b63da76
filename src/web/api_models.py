from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class LoadingInfo(BaseModel):
    text: str
    progress: Optional[float] = None


class DetectionModel(BaseModel):
    bbox: List[float] = Field(..., description="[x1, y1, x2, y2] in original image pixels")
    confidence: float
    class_id: Optional[int] = None
    class_name: Optional[str] = None


class DetectionsResponse(BaseModel):
    has_image: bool
    source: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    detections: List[DetectionModel] = Field(default_factory=list)


class StatusResponse(BaseModel):
    """
    Compact status optimized for frontend polling.
    """
    ready: bool = Field(..., description="True once both models are loaded and warmed up")
    loading: Optional[LoadingInfo] = Field(None, description="Startup progress while not ready")
    setup_error: Optional[str] = None
    processing: bool = Field(False, description="True while a frame is in the detection pipeline")
    camera: Optional[str] = Field(None, description="idle|starting|active")
    continuous: bool = False
    has_image: bool = False
    frames_published: int = 0
    frames_processed: int = 0
    last_latency_ms: Optional[float] = None
    last_error: Optional[str] = None
    uptime_seconds: int = 0


class CaptureResponse(BaseModel):
    captured: bool
    camera: str
    frame_index: Optional[int] = None


class ContinuousResponse(BaseModel):
    continuous: bool
    camera: str
