"""
Frame capture: the single-flight processing lock and the capture scheduler.
"""

from .lock import ProcessingLock
from .scheduler import CameraState, CaptureScheduler, CaptureState

__all__ = ["ProcessingLock", "CameraState", "CaptureScheduler", "CaptureState"]
