from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from capture.lock import ProcessingLock
from detection.annotate import encode_jpeg
from detection.pipeline import DetectionPipeline
from models.config import Config
from models.detection import Detection
from models.frame import FrameData


class ImageSlot:
    """
    The current image: single writer, replaced wholesale, never edited in place.

    Every replace/clear bumps a generation counter. A detection result is only
    stored if its generation is still current, so closing an image while its
    frame is in flight discards the late result instead of resurrecting it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._frame: Optional[FrameData] = None
        self._encoded: Optional[bytes] = None
        self._annotated: Optional[bytes] = None
        self._detections: List[Detection] = []
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def frame(self) -> Optional[FrameData]:
        with self._lock:
            return self._frame

    @property
    def has_image(self) -> bool:
        with self._lock:
            return self._frame is not None

    def replace(self, frame_data: FrameData) -> int:
        """Publish a new current image, releasing the previous one."""
        encoded = encode_jpeg(frame_data.frame)
        with self._lock:
            self._release_locked()
            self._generation += 1
            self._frame = frame_data
            self._encoded = encoded
            return self._generation

    def set_result(self, generation: int, detections: List[Detection], annotated: Optional[bytes]) -> bool:
        with self._lock:
            if generation != self._generation or self._frame is None:
                return False
            self._detections = list(detections)
            self._annotated = annotated
            return True

    def clear(self) -> None:
        with self._lock:
            self._release_locked()
            self._generation += 1

    def _release_locked(self) -> None:
        self._frame = None
        self._encoded = None
        self._annotated = None
        self._detections = []

    def encoded(self) -> Optional[bytes]:
        with self._lock:
            return self._encoded

    def annotated(self) -> Optional[bytes]:
        with self._lock:
            return self._annotated or self._encoded

    def detections(self) -> List[Detection]:
        with self._lock:
            return list(self._detections)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            frame = self._frame
            return {
                "has_image": frame is not None,
                "source": frame.source if frame else None,
                "width": frame.width if frame else None,
                "height": frame.height if frame else None,
                "generation": self._generation,
                "detections": [d.to_dict() for d in self._detections],
            }


@dataclass
class RuntimeContext:
    """Holds runtime state and service references; avoids global singletons."""

    config: Config
    pipeline: DetectionPipeline
    web_state: Any = None
    lock: ProcessingLock = field(default_factory=ProcessingLock)
    image: ImageSlot = field(default_factory=ImageSlot)
    service: Any = None
    scheduler: Any = None

    def close(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown()
        if self.service is not None:
            self.service.close_image()
