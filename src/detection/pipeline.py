"""
Two-stage drum-head detection pipeline.

frame -> letterbox -> detector (YOLOv8) -> reducer (NMS graph) -> rescale

The suppression arithmetic lives entirely in the reducer model; this module
only marshals its parameters and decodes what it returns.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np

from inference.backend import ModelSession
from models.config import DEFAULT_INPUT_SHAPE, DetectionParams
from models.detection import BoundingBox, Detection
from models.errors import ShapeMismatchError
from .letterbox import LetterboxTransform, preprocess

DETECTOR_INPUT = "images"
DETECTOR_OUTPUT = "output0"
REDUCER_INPUT = "detection"
REDUCER_CONFIG = "config"
REDUCER_OUTPUT = "selected"


def validate_input_shape(shape: Sequence[int]) -> Tuple[int, int, int, int]:
    shape = tuple(int(v) for v in shape)
    if len(shape) != 4:
        raise ValueError(f"Model input shape must have 4 dims, got {shape}")
    if shape[0] != 1 or shape[1] != 3:
        raise ValueError(f"Model input shape must be (1, 3, H, W), got {shape}")
    if shape[2] <= 0 or shape[3] <= 0:
        raise ValueError(f"Model input height/width must be positive, got {shape}")
    return shape


class DetectionPipeline:
    """
    Runs one frame at a time through the detector and reducer sessions.

    Both sessions are treated as immutable and are shared by every call.
    Callers are expected to serialize calls (the ProcessingLock does this);
    an internal lock additionally keeps warmup from running twice.
    """

    def __init__(
        self,
        detector: ModelSession,
        reducer: ModelSession,
        params: Optional[DetectionParams] = None,
        input_shape: Sequence[int] = DEFAULT_INPUT_SHAPE,
        class_names: Optional[Sequence[str]] = None,
    ):
        self.detector = detector
        self.reducer = reducer
        self.params = params or DetectionParams()
        self.input_shape = validate_input_shape(input_shape)
        self.class_names = list(class_names or [])
        self._warm = False
        self._warm_lock = threading.Lock()
        self.last_latency_ms: Optional[float] = None

    @property
    def is_warm(self) -> bool:
        return self._warm

    def warmup(self) -> None:
        """Run the detector once on zeros so lazy init happens off the first real frame."""
        with self._warm_lock:
            if self._warm:
                return
            start = time.perf_counter()
            tensor = np.zeros(self.input_shape, dtype=np.float32)
            self.detector.run({DETECTOR_INPUT: tensor})
            self._warm = True
            logging.info(f"Detector warmed up in {(time.perf_counter() - start) * 1000:.0f} ms")

    def detect(self, frame: np.ndarray) -> List[Detection]:
        """
        Detect drum heads in one frame.

        Returns detections in the frame's pixel coordinates, at most topk of
        them.

        Raises:
            ShapeMismatchError: If preprocessing does not produce input_shape.
        """
        if not self._warm:
            self.warmup()

        start = time.perf_counter()
        tensor, transform = preprocess(frame, self.input_shape)
        self._check_shape(tensor)

        raw = self._first_output(self.detector.run({DETECTOR_INPUT: tensor}), DETECTOR_OUTPUT)
        selected = self._first_output(
            self.reducer.run({REDUCER_INPUT: raw, REDUCER_CONFIG: self._config_tensor()}),
            REDUCER_OUTPUT,
        )
        detections = self._decode(selected, transform)

        self.last_latency_ms = (time.perf_counter() - start) * 1000
        logging.debug(
            f"Detected {len(detections)} object(s) in {self.last_latency_ms:.1f} ms "
            f"(frame {transform.src_width}x{transform.src_height})"
        )
        return detections

    def _check_shape(self, tensor: np.ndarray) -> None:
        if tuple(tensor.shape) != self.input_shape:
            raise ShapeMismatchError(self.input_shape, tensor.shape)

    def _config_tensor(self) -> np.ndarray:
        p = self.params
        return np.array([p.topk, p.iou_threshold, p.score_threshold], dtype=np.float32)

    @staticmethod
    def _first_output(outputs: Mapping[str, np.ndarray], name: str) -> np.ndarray:
        if name in outputs:
            return np.asarray(outputs[name])
        if not outputs:
            raise RuntimeError(f"Model returned no outputs (expected {name})")
        return np.asarray(next(iter(outputs.values())))

    def _decode(self, selected: np.ndarray, transform: LetterboxTransform) -> List[Detection]:
        """Turn reducer rows [cx, cy, w, h, score_0..score_n] into frame-space detections."""
        rows = selected.reshape(-1, selected.shape[-1]) if selected.size else np.zeros((0, 5))
        if rows.shape[1] < 5:
            raise RuntimeError(f"Unexpected reducer output shape {selected.shape}")

        detections: List[Detection] = []
        for row in rows[: self.params.topk]:
            scores = row[4:]
            class_id = int(np.argmax(scores))
            score = float(scores[class_id])
            if score < self.params.score_threshold:
                continue
            model_box = BoundingBox.from_cxcywh(*(float(v) for v in row[:4]))
            detections.append(
                Detection(
                    bbox=transform.to_frame(model_box),
                    confidence=score,
                    class_id=class_id,
                    class_name=self._class_name(class_id),
                )
            )
        return detections

    def _class_name(self, class_id: int) -> Optional[str]:
        if 0 <= class_id < len(self.class_names):
            return self.class_names[class_id]
        return None
