"""
Detection results: axis-aligned boxes in frame pixels plus class and score.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """Corner-format box (x1, y1) top-left, (x2, y2) bottom-right."""
    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def from_cxcywh(cls, cx: float, cy: float, w: float, h: float) -> "BoundingBox":
        """From the center/size layout YOLOv8 emits."""
        return cls(x1=cx - w / 2, y1=cy - h / 2, x2=cx + w / 2, y2=cy + h / 2)

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def iou(self, other: "BoundingBox") -> float:
        inter_w = min(self.x2, other.x2) - max(self.x1, other.x1)
        inter_h = min(self.y2, other.y2) - max(self.y1, other.y1)
        if inter_w <= 0 or inter_h <= 0:
            return 0.0
        inter = inter_w * inter_h
        return inter / (self.area + other.area - inter)

    def clipped(self, width: float, height: float) -> "BoundingBox":
        """This box limited to a width x height image."""
        return BoundingBox(
            x1=min(max(self.x1, 0.0), width),
            y1=min(max(self.y1, 0.0), height),
            x2=min(max(self.x2, 0.0), width),
            y2=min(max(self.y2, 0.0), height),
        )

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        """Truncated pixel coordinates for drawing."""
        return (int(self.x1), int(self.y1), int(self.x2), int(self.y2))


@dataclass(frozen=True)
class Detection:
    """
    One detected drum head.

    Attributes:
        bbox: Box in the pixel coordinates of the frame that was submitted.
        confidence: Best class score reported by the reducer (0-1).
        class_id: Index of that class.
        class_name: Label for class_id, when the model's class list names it.
    """
    bbox: BoundingBox
    confidence: float
    class_id: int = 0
    class_name: Optional[str] = None

    @classmethod
    def from_xyxy(cls, x1, y1, x2, y2, confidence: float, class_id: int = 0,
                  class_name: Optional[str] = None) -> "Detection":
        return cls(BoundingBox(x1, y1, x2, y2), confidence, class_id, class_name)

    @property
    def label(self) -> str:
        """Overlay text, e.g. "drum_head - 87.6%"."""
        name = self.class_name if self.class_name is not None else str(self.class_id)
        return f"{name} - {self.confidence * 100:.1f}%"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bbox": list(self.bbox.as_tuple()),
            "confidence": self.confidence,
            "class_id": self.class_id,
            "class_name": self.class_name,
        }
