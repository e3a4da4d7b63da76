"""
Box and label rendering for detection results.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import cv2
import numpy as np

from models.detection import Detection

# BGR, cycled by class id
PALETTE: Sequence[Tuple[int, int, int]] = (
    (56, 56, 255),
    (151, 157, 255),
    (31, 112, 255),
    (29, 178, 255),
    (49, 210, 207),
    (10, 249, 72),
)


def draw_detections(frame: np.ndarray, detections: List[Detection]) -> np.ndarray:
    """Draw boxes and "name - score%" labels on a copy of the frame."""
    canvas = frame.copy()
    if canvas.ndim == 2:
        canvas = cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)
    elif canvas.shape[2] == 4:
        canvas = cv2.cvtColor(canvas, cv2.COLOR_BGRA2BGR)

    thickness = max(2, int(round(max(canvas.shape[:2]) / 400)))
    font = cv2.FONT_HERSHEY_SIMPLEX
    font_scale = max(0.5, thickness / 3)

    for det in detections:
        color = PALETTE[(det.class_id or 0) % len(PALETTE)]
        x1, y1, x2, y2 = det.bbox.as_int_tuple()
        cv2.rectangle(canvas, (x1, y1), (x2, y2), color, thickness)

        label = det.label
        (tw, th), _ = cv2.getTextSize(label, font, font_scale, 1)
        top = y1 - th - 6 if y1 - th - 6 > 0 else y1
        cv2.rectangle(canvas, (x1, top), (x1 + tw + 4, top + th + 6), color, -1)
        cv2.putText(canvas, label, (x1 + 2, top + th + 2), font, font_scale, (255, 255, 255), 1)

    return canvas


def encode_jpeg(frame: np.ndarray, quality: int = 90) -> bytes:
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise RuntimeError("Failed to encode JPEG")
    return buf.tobytes()
