from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional, Union

from detection.annotate import draw_detections, encode_jpeg
from models.detection import Detection
from models.errors import PipelineBusyError
from models.frame import FrameData
from observation.image_source import load_image
from runtime.context import RuntimeContext

DetectionCallback = Callable[[FrameData, List[Detection]], None]


class DetectionService:
    """
    Consumes published frames: runs detection, stores the result and the
    annotated image, then releases the ProcessingLock.

    Frames from the capture scheduler arrive with the lock already held.
    File selection takes the lock itself and is refused while another frame
    is in flight.
    """

    def __init__(self, ctx: RuntimeContext, run_async: bool = True, annotate: bool = True):
        self.ctx = ctx
        self.run_async = run_async
        self.annotate = annotate
        self.frames_processed = 0
        self._callbacks: List[DetectionCallback] = []

    def add_callback(self, callback: DetectionCallback) -> None:
        """
        Add a callback to be called after each frame is processed.

        Args:
            callback: Function taking (frame_data, detections) as arguments.
        """
        self._callbacks.append(callback)

    def submit(self, frame_data: FrameData) -> None:
        """Sink for the capture scheduler. The caller holds the ProcessingLock."""
        generation = self.ctx.image.replace(frame_data)
        self._set_processing(True)
        if self.run_async:
            threading.Thread(
                target=self._process_in_background,
                args=(frame_data, generation),
                daemon=True,
            ).start()
        else:
            self._process(frame_data, generation)

    def open_image(self, source: Union[str, bytes], name: Optional[str] = None) -> List[Detection]:
        """
        File selection: replace the current image and detect on it synchronously.

        Raises:
            PipelineBusyError: If a frame is already in flight.
            ImageDecodeError: If the file cannot be read as an image.
            ShapeMismatchError: On a model input precondition violation.
        """
        if not self.ctx.lock.acquire():
            raise PipelineBusyError("A frame is already being processed")
        try:
            frame_data = load_image(source, source_id=name)
            generation = self.ctx.image.replace(frame_data)
            self._set_processing(True)
        except Exception:
            self.ctx.lock.release()
            raise
        logging.info(f"Image selected: {frame_data.source} ({frame_data.width}x{frame_data.height})")
        return self._process(frame_data, generation)

    def close_image(self) -> None:
        """Discard the current image. An in-flight frame finishes but its result is dropped."""
        self.ctx.image.clear()
        if self.ctx.web_state is not None:
            self.ctx.web_state.clear_image()
        logging.info("Image closed")

    def _process_in_background(self, frame_data: FrameData, generation: int) -> None:
        try:
            self._process(frame_data, generation)
        except Exception as e:
            logging.error(f"Detection failed for frame {frame_data.frame_index}: {e}")

    def _process(self, frame_data: FrameData, generation: int) -> List[Detection]:
        start = time.perf_counter()
        try:
            detections = self.ctx.pipeline.detect(frame_data.frame)
            annotated = encode_jpeg(draw_detections(frame_data.frame, detections)) if self.annotate else None
            stored = self.ctx.image.set_result(generation, detections, annotated)
            self.frames_processed += 1
            elapsed_ms = (time.perf_counter() - start) * 1000
            logging.info(
                f"Frame {frame_data.source}#{frame_data.frame_index}: "
                f"{len(detections)} detection(s) in {elapsed_ms:.0f} ms"
            )
            if stored and self.ctx.web_state is not None:
                self.ctx.web_state.set_result(annotated, detections, elapsed_ms)
            for callback in self._callbacks:
                try:
                    callback(frame_data, detections)
                except Exception as e:
                    logging.warning(f"Callback error: {e}")
            return detections
        except Exception as e:
            if self.ctx.web_state is not None:
                self.ctx.web_state.set_error(str(e))
            raise
        finally:
            self._set_processing(False)
            self.ctx.lock.release()

    def _set_processing(self, processing: bool) -> None:
        if self.ctx.web_state is not None:
            self.ctx.web_state.set_processing(processing)
