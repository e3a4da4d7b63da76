"""
Frame source contract used by the capture scheduler.

open() starts the device and may be issued again at any time: some cameras
drop their stream after sitting idle, so the scheduler can be configured to
re-issue it before every read. read() pulls exactly one frame or returns None;
nothing is buffered on this side. close() releases the device.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from models.frame import FrameData


@dataclass
class SourceConfig:
    """
    Settings every source understands.

    Attributes:
        source_id: Name stamped on every frame ("camera", "still", ...).
        resolution: Requested (width, height); None keeps the device default.
        fps: Requested frame rate; None keeps the device default.
    """
    source_id: str = "camera"
    resolution: Optional[Tuple[int, int]] = None
    fps: Optional[int] = None


class ObservationSource(ABC):
    """
    Base class for cameras, streams, video files and replayed stills.

    Usable as a context manager:
        with OpenCVSource(config) as source:
            frame_data = source.read()
    """

    def __init__(self, config: SourceConfig):
        self.config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self.config.source_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Frames read since the last successful open()."""
        return self._frame_index

    @abstractmethod
    def open(self) -> None:
        """
        Start the device. A no-op if it is already running.

        Raises:
            RuntimeError: If the device cannot be started.
        """

    @abstractmethod
    def read(self) -> Optional[FrameData]:
        """One frame, or None when the source is closed, failed or exhausted."""

    @abstractmethod
    def close(self) -> None:
        """Release the device. Safe to call more than once."""

    def _next_frame(self, image: np.ndarray) -> FrameData:
        self._frame_index += 1
        return FrameData.from_numpy(image, frame_index=self._frame_index, source=self.source_id)

    def take(self, count: int) -> List[FrameData]:
        """Read up to count frames, stopping early when the source runs dry."""
        if not self._is_open:
            raise RuntimeError("Source must be open before reading")
        frames: List[FrameData] = []
        for _ in range(count):
            frame_data = self.read()
            if frame_data is None:
                break
            frames.append(frame_data)
        return frames

    def __enter__(self) -> "ObservationSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
