"""
Capture scheduler.

Pulls frames from a live source and hands them to the detection side one at a
time. Camera start is asynchronous with no ready callback, so a capture
requested before the camera is active starts it and retries after a fixed
delay. In continuous mode the next capture is issued only once the
ProcessingLock has been released for the previous frame.

Example:
    lock = ProcessingLock()
    scheduler = CaptureScheduler(source, service.submit, lock, cfg.camera, cfg.capture)
    scheduler.enter_continuous_mode()
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from models.config import CameraConfig, CaptureConfig
from models.frame import FrameData
from observation.base import ObservationSource
from .lock import ProcessingLock

FrameSink = Callable[[FrameData], None]
TimerFactory = Callable[[float, Callable[[], None]], Any]
Spawner = Callable[[Callable[[], None]], None]


class CameraState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"


@dataclass
class CaptureState:
    """All mutable scheduler flags in one place."""
    camera: CameraState = CameraState.IDLE
    continuous: bool = False
    shutdown: bool = False
    frames_published: int = 0
    read_failures: int = 0


def _start_timer(delay: float, fn: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer


def _spawn_thread(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, daemon=True).start()


class CaptureScheduler:
    """
    Camera lifecycle plus single-shot and continuous capture.

    timer_factory(delay, fn) must schedule fn and return an object with
    cancel(); spawner(fn) must run fn off the caller's stack. Both default to
    daemon threads and are injectable for tests.
    """

    def __init__(
        self,
        source: ObservationSource,
        sink: FrameSink,
        lock: ProcessingLock,
        camera_cfg: Optional[CameraConfig] = None,
        capture_cfg: Optional[CaptureConfig] = None,
        timer_factory: TimerFactory = _start_timer,
        spawner: Spawner = _spawn_thread,
    ):
        self._source = source
        self._sink = sink
        self._lock = lock
        self._camera_cfg = camera_cfg or CameraConfig()
        self._capture_cfg = capture_cfg or CaptureConfig()
        self._timer_factory = timer_factory
        self._spawn = spawner
        self._state = CaptureState()
        self._state_lock = threading.RLock()
        self._retry_timer: Optional[Any] = None
        self._rearm_pending = False
        self._active = threading.Event()

    @property
    def camera_state(self) -> CameraState:
        with self._state_lock:
            return self._state.camera

    @property
    def continuous(self) -> bool:
        with self._state_lock:
            return self._state.continuous

    @property
    def retry_pending(self) -> bool:
        with self._state_lock:
            return self._retry_timer is not None

    def snapshot(self) -> Dict[str, Any]:
        with self._state_lock:
            d = asdict(self._state)
        d["camera"] = d["camera"].value
        d["processing"] = self._lock.locked
        return d

    # Camera lifecycle

    def start_camera(self) -> None:
        """Issue a start command; the source opens on a worker."""
        with self._state_lock:
            if self._state.shutdown or self._state.camera is not CameraState.IDLE:
                return
            self._state.camera = CameraState.STARTING
        logging.info(f"Starting camera {self._source.source_id}...")
        self._spawn(self._open_source)

    def wait_until_active(self, timeout: Optional[float] = None) -> bool:
        return self._active.wait(timeout)

    def _open_source(self) -> None:
        try:
            self._source.open()
        except Exception as e:
            logging.warning(f"Camera start failed: {e}")
            with self._state_lock:
                self._state.camera = CameraState.IDLE
            return
        with self._state_lock:
            stopped = self._state.shutdown
            if not stopped:
                self._state.camera = CameraState.ACTIVE
        if stopped:
            self._source.close()
            return
        self._active.set()
        logging.info(f"Camera {self._source.source_id} active")

    def _restart_camera(self) -> bool:
        """Re-issue the start command on an active camera; open() is idempotent."""
        try:
            self._source.open()
            return True
        except Exception as e:
            logging.warning(f"Camera restart failed: {e}")
            with self._state_lock:
                self._state.camera = CameraState.IDLE
            self._active.clear()
            return False

    # Capture

    def request_capture(self) -> Optional[FrameData]:
        """
        Capture and publish exactly one frame, or arrange for it to happen.

        Never blocks on the camera. Returns the published frame, or None when
        the camera is not active yet, a frame is still being processed, or the
        read failed.
        """
        with self._state_lock:
            if self._state.shutdown:
                return None
            camera = self._state.camera
            if camera is not CameraState.ACTIVE:
                self._schedule_retry()

        if camera is CameraState.IDLE:
            self.start_camera()
        if camera is not CameraState.ACTIVE:
            return None

        if not self._lock.acquire():
            logging.debug("Capture skipped: previous frame still processing")
            if self.continuous:
                self._arm()
            return None

        if self._camera_cfg.restart_before_read and not self._restart_camera():
            self._lock.release()
            self._retry_if_continuous()
            return None

        frame_data = self._source.read()
        if frame_data is None:
            self._lock.release()
            with self._state_lock:
                self._state.read_failures += 1
            logging.warning("Camera returned no frame")
            self._retry_if_continuous()
            return None

        self._publish(frame_data)
        return frame_data

    def _publish(self, frame_data: FrameData) -> None:
        with self._state_lock:
            self._state.frames_published += 1
            self._state.read_failures = 0
        try:
            self._sink(frame_data)
        except Exception as e:
            logging.error(f"Frame sink failed: {e}")
            self._lock.release()
        if self.continuous:
            self._arm()

    def _arm(self) -> None:
        with self._state_lock:
            if self._rearm_pending:
                return
            self._rearm_pending = True
        self._spawn(self._rearm)

    def _rearm(self) -> None:
        """Wait for the in-flight frame to finish, then capture the next one."""
        interval = self._capture_cfg.rearm_poll_interval
        try:
            while True:
                with self._state_lock:
                    if not self._state.continuous or self._state.shutdown:
                        return
                if self._lock.wait_released(timeout=interval):
                    break
        finally:
            with self._state_lock:
                self._rearm_pending = False
        if self.continuous:
            self.request_capture()

    def _schedule_retry(self) -> None:
        with self._state_lock:
            if self._retry_timer is not None or self._state.shutdown:
                return
            self._retry_timer = self._timer_factory(self._camera_cfg.start_retry_delay, self._on_retry)

    def _on_retry(self) -> None:
        with self._state_lock:
            self._retry_timer = None
        self.request_capture()

    def _retry_if_continuous(self) -> None:
        with self._state_lock:
            if self._state.continuous:
                self._schedule_retry()

    # Continuous mode

    def enter_continuous_mode(self) -> None:
        with self._state_lock:
            if self._state.shutdown:
                return
            self._state.continuous = True
        logging.info("Continuous capture started")
        self.request_capture()

    def exit_continuous_mode(self) -> None:
        """Stop scheduling new frames; an in-flight frame still completes."""
        with self._state_lock:
            self._state.continuous = False
        logging.info("Continuous capture stopped")

    def toggle_continuous(self) -> bool:
        if self.continuous:
            self.exit_continuous_mode()
            return False
        self.enter_continuous_mode()
        return True

    def shutdown(self) -> None:
        with self._state_lock:
            self._state.shutdown = True
            self._state.continuous = False
            timer, self._retry_timer = self._retry_timer, None
            self._state.camera = CameraState.IDLE
        if timer is not None:
            timer.cancel()
        self._active.clear()
        try:
            self._source.close()
        except Exception as e:
            logging.warning(f"Error closing source: {e}")
