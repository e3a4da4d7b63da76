"""
Letterbox preprocessing.

Frames are resized to fit the model input while keeping their aspect ratio and
padded symmetrically. The transform is recorded so boxes predicted in model
space can be mapped back to frame pixels.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import cv2
import numpy as np

from models.detection import BoundingBox

PAD_VALUE = 114


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Mapping between original frame pixels and model input pixels.

    model = frame * scale + pad

    pad_x/pad_y are the exact (fractional) margins, so the model-space centre
    always maps to the frame centre. The image itself is pasted at the integer
    offset_x/offset_y with size resized_width x resized_height, never smaller
    than one pixel per side.
    """
    scale: float
    pad_x: float
    pad_y: float
    src_width: int
    src_height: int
    dst_width: int
    dst_height: int
    resized_width: int
    resized_height: int
    offset_x: int
    offset_y: int

    def to_model(self, box: BoundingBox) -> BoundingBox:
        return BoundingBox(
            x1=box.x1 * self.scale + self.pad_x,
            y1=box.y1 * self.scale + self.pad_y,
            x2=box.x2 * self.scale + self.pad_x,
            y2=box.y2 * self.scale + self.pad_y,
        )

    def to_frame(self, box: BoundingBox, clip: bool = True) -> BoundingBox:
        """Inverse of to_model, optionally clipped to the frame bounds."""
        frame_box = BoundingBox(
            x1=(box.x1 - self.pad_x) / self.scale,
            y1=(box.y1 - self.pad_y) / self.scale,
            x2=(box.x2 - self.pad_x) / self.scale,
            y2=(box.y2 - self.pad_y) / self.scale,
        )
        if clip:
            return frame_box.clipped(self.src_width, self.src_height)
        return frame_box


def compute_letterbox(src_width: int, src_height: int, dst_width: int, dst_height: int) -> LetterboxTransform:
    if src_width <= 0 or src_height <= 0:
        raise ValueError(f"Invalid frame size {src_width}x{src_height}")
    scale = min(dst_width / src_width, dst_height / src_height)
    new_w = max(1, min(dst_width, int(round(src_width * scale))))
    new_h = max(1, min(dst_height, int(round(src_height * scale))))
    return LetterboxTransform(
        scale=scale,
        pad_x=(dst_width - src_width * scale) / 2,
        pad_y=(dst_height - src_height * scale) / 2,
        src_width=src_width,
        src_height=src_height,
        dst_width=dst_width,
        dst_height=dst_height,
        resized_width=new_w,
        resized_height=new_h,
        offset_x=(dst_width - new_w) // 2,
        offset_y=(dst_height - new_h) // 2,
    )


def to_bgr(frame: np.ndarray) -> np.ndarray:
    """Normalize grayscale and 4-channel frames to 3-channel BGR."""
    if frame.ndim == 2:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    if frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    if frame.shape[2] == 1:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    return frame


def letterbox(frame: np.ndarray, size: Tuple[int, int]) -> Tuple[np.ndarray, LetterboxTransform]:
    """
    Resize and pad a frame to size=(width, height).

    Returns the padded BGR image and the transform that produced it.
    """
    frame = to_bgr(frame)
    src_h, src_w = frame.shape[:2]
    dst_w, dst_h = size
    t = compute_letterbox(src_w, src_h, dst_w, dst_h)

    interpolation = cv2.INTER_AREA if t.scale < 1 else cv2.INTER_LINEAR
    resized = cv2.resize(frame, (t.resized_width, t.resized_height), interpolation=interpolation)

    padded = np.full((dst_h, dst_w, 3), PAD_VALUE, dtype=np.uint8)
    padded[t.offset_y:t.offset_y + t.resized_height, t.offset_x:t.offset_x + t.resized_width] = resized
    return padded, t


def to_tensor(image: np.ndarray) -> np.ndarray:
    """BGR uint8 HWC image -> RGB float32 NCHW tensor scaled to [0, 1]."""
    blob = image[:, :, ::-1].astype(np.float32) / 255.0
    blob = blob.transpose(2, 0, 1)[np.newaxis, ...]
    return np.ascontiguousarray(blob)


def preprocess(frame: np.ndarray, input_shape: Sequence[int]) -> Tuple[np.ndarray, LetterboxTransform]:
    """Letterbox a frame into an NCHW tensor for input_shape=(1, 3, H, W)."""
    _, _, height, width = input_shape
    padded, transform = letterbox(frame, (width, height))
    return to_tensor(padded), transform
