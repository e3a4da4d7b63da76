"""
FrameData: one image on its way through detection.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True, eq=False)
class FrameData:
    """
    A camera frame or a selected image file.

    Width and height are read off the pixel array, so they can never disagree
    with it.

    Attributes:
        frame: Pixels as BGR, BGRA or grayscale.
        timestamp: Unix time the frame was read or the file was loaded.
        frame_index: 1-based count within the current camera session (0 for files).
        source: Camera source id or file name.
    """
    frame: np.ndarray
    timestamp: float = field(default_factory=time.time)
    frame_index: int = 0
    source: Optional[str] = None

    @property
    def height(self) -> int:
        return int(self.frame.shape[0])

    @property
    def width(self) -> int:
        return int(self.frame.shape[1])

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    @property
    def channels(self) -> int:
        return 1 if self.frame.ndim == 2 else int(self.frame.shape[2])

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: Optional[float] = None,
        frame_index: int = 0,
        source: Optional[str] = None,
    ) -> "FrameData":
        return cls(
            frame=frame,
            timestamp=time.time() if timestamp is None else timestamp,
            frame_index=frame_index,
            source=source,
        )
