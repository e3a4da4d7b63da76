"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import cv2
import numpy as np
import pytest

# Add src and tests to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
camera:
  device_id: 0
  resolution: [640, 480]
  fps: 30
  start_retry_delay: 1.0

models:
  base_url: "models"
  detector: "drumhead_nano.onnx"
  reducer: "nms-yolov8.onnx"
  input_shape: [1, 3, 1024, 1024]

detection:
  topk: 1
  iou_threshold: 0.9
  score_threshold: 0.1

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "camera": {
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
            "restart_before_read": False,
            "start_retry_delay": 1.0,
        },
        "models": {
            "base_url": "models",
            "detector": "drumhead_nano.onnx",
            "reducer": "nms-yolov8.onnx",
            "providers": ["CPUExecutionProvider"],
            "input_shape": [1, 3, 1024, 1024],
            "class_names": ["drum_head"],
        },
        "detection": {
            "topk": 1,
            "iou_threshold": 0.9,
            "score_threshold": 0.1,
        },
        "capture": {"rearm_poll_interval": 0.1},
        "web": {"host": "127.0.0.1", "port": 5000},
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def sample_frame():
    """A 128x64 BGR frame with a bright rectangle in the middle."""
    frame = np.zeros((64, 128, 3), dtype=np.uint8)
    frame[24:40, 48:80] = (200, 180, 160)
    return frame


@pytest.fixture
def sample_jpeg(sample_frame):
    ok, buf = cv2.imencode(".jpg", sample_frame)
    assert ok
    return buf.tobytes()
