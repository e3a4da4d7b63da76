import threading
import time
from typing import Any, Dict, List, Optional


class SharedState:
    """
    State shared between the detection side and the web server.

    One instance per application; it doubles as the progress sink during
    startup (model download, warmup).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.loading: Optional[Dict[str, Any]] = {"text": "Starting", "progress": None}
        self.ready = False
        self.setup_error: Optional[str] = None
        self.processing = False
        self.last_error: Optional[str] = None
        self.annotated_jpeg: Optional[bytes] = None
        self.detections: List[Dict[str, Any]] = []
        self.system_stats = {
            "start_time": time.time(),
            "frames_processed": 0,
            "last_latency_ms": None,
            "last_frame_ts": None,
        }

    def set_loading(self, text: str, progress: Optional[float] = None) -> None:
        """Progress sink: coarse lifecycle text plus optional percentage."""
        with self._lock:
            self.loading = {"text": text, "progress": progress}

    def set_ready(self) -> None:
        with self._lock:
            self.loading = None
            self.ready = True
            self.setup_error = None

    def set_setup_error(self, message: str) -> None:
        with self._lock:
            self.loading = {"text": f"Setup failed: {message}", "progress": None}
            self.ready = False
            self.setup_error = message

    def set_processing(self, processing: bool) -> None:
        with self._lock:
            self.processing = processing

    def set_result(self, annotated_jpeg: Optional[bytes], detections, latency_ms: float) -> None:
        with self._lock:
            self.annotated_jpeg = annotated_jpeg
            self.detections = [d.to_dict() for d in detections]
            self.last_error = None
            self.system_stats["frames_processed"] += 1
            self.system_stats["last_latency_ms"] = latency_ms
            self.system_stats["last_frame_ts"] = time.time()

    def set_error(self, message: str) -> None:
        with self._lock:
            self.last_error = message

    def clear_image(self) -> None:
        with self._lock:
            self.annotated_jpeg = None
            self.detections = []
            self.last_error = None

    def get_annotated_jpeg(self) -> Optional[bytes]:
        with self._lock:
            return self.annotated_jpeg

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "ready": self.ready,
                "loading": dict(self.loading) if self.loading else None,
                "setup_error": self.setup_error,
                "processing": self.processing,
                "last_error": self.last_error,
                "detections": list(self.detections),
                "system_stats": dict(self.system_stats),
            }
