"""
Cable drum head (side) detection with YOLOv8 + NMS on ONNX Runtime.

Loads the detector and the NMS reducer, warms the detector up, then either
detects on a selected image, captures from the camera (once or continuously),
or serves the web API.

Usage:
    python src/main.py --image samples/drum.jpg --display
    python src/main.py --capture
    python src/main.py --continuous --display
    python src/main.py --serve

Arguments:
    --config: Path to configuration file
    --image: Detect on one image file
    --capture: Single camera capture
    --continuous: Continuous camera capture until interrupted
    --display: Show annotated results in an OpenCV window
    --serve: Run the web API
"""

import os
import sys
import argparse
import logging
import queue
import threading
from typing import Any, Dict, Optional, Tuple

import cv2
import uvicorn
import yaml

from detection.annotate import draw_detections
from models.config import Config
from models.errors import DrumheadError, SetupError
from ops.logging import setup_logging
from runtime.context import RuntimeContext
from runtime.startup import build_runtime
from web.app import create_app
from web.state import SharedState

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        # Finally apply explicit config_path if it's not one of the files above
        explicit = os.path.abspath(config_path)
        if os.path.exists(config_path) and explicit not in (
            os.path.abspath(local_overrides_path),
            os.path.abspath(base_path),
        ):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['camera', 'models', 'detection', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Camera
    camera = config.get('camera') or {}
    device_id = camera.get('device_id', 0)
    if not isinstance(device_id, (int, str)) or isinstance(device_id, bool):
        return False, "camera.device_id must be an integer (index) or string (URL/path)"
    if isinstance(device_id, int) and device_id < 0:
        return False, "camera.device_id integer must be non-negative"
    if 'resolution' in camera and camera['resolution'] is not None:
        res = camera['resolution']
        if not isinstance(res, list) or len(res) != 2 or not all(isinstance(x, int) and x > 0 for x in res):
            return False, "camera.resolution must be a list of two positive integers [width, height]"
    if camera.get('fps') is not None and (not isinstance(camera['fps'], int) or camera['fps'] <= 0):
        return False, "camera.fps must be a positive integer"
    if 'start_retry_delay' in camera:
        if not _is_number(camera['start_retry_delay']) or camera['start_retry_delay'] <= 0:
            return False, "camera.start_retry_delay must be a positive number (seconds)"
    if camera.get('rotate', 0) not in (0, 90, 180, 270, None):
        return False, "camera.rotate must be one of: 0, 90, 180, 270"

    # Models
    models = config.get('models') or {}
    for key in ('detector', 'reducer'):
        if not isinstance(models.get(key), str) or not models.get(key):
            return False, f"models.{key} is required"
    shape = models.get('input_shape', [1, 3, 1024, 1024])
    if (
        not isinstance(shape, list)
        or len(shape) != 4
        or not all(isinstance(x, int) and x > 0 for x in shape)
    ):
        return False, "models.input_shape must be a list of four positive integers"
    if shape[0] != 1 or shape[1] != 3:
        return False, "models.input_shape must be [1, 3, height, width]"
    if 'class_names' in models and not isinstance(models['class_names'], list):
        return False, "models.class_names must be a list"

    # Detection parameters
    detection = config.get('detection') or {}
    topk = detection.get('topk', 1)
    if not isinstance(topk, int) or isinstance(topk, bool) or topk <= 0:
        return False, "detection.topk must be a positive integer"
    iou = detection.get('iou_threshold', 0.9)
    if not _is_number(iou) or not (0 < iou <= 1):
        return False, "detection.iou_threshold must be between 0 and 1"
    score = detection.get('score_threshold', 0.1)
    if not _is_number(score) or not (0 <= score <= 1):
        return False, "detection.score_threshold must be between 0 and 1"

    # Capture
    capture = config.get('capture') or {}
    if 'rearm_poll_interval' in capture:
        if not _is_number(capture['rearm_poll_interval']) or capture['rearm_poll_interval'] <= 0:
            return False, "capture.rearm_poll_interval must be a positive number (seconds)"

    # Web
    web = config.get('web') or {}
    if 'port' in web and (not isinstance(web['port'], int) or not (0 < web['port'] < 65536)):
        return False, "web.port must be a valid TCP port"

    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def _print_detections(ctx: RuntimeContext) -> None:
    snap = ctx.image.snapshot()
    print(f"{snap['source']} ({snap['width']}x{snap['height']}): {len(snap['detections'])} detection(s)")
    for det in ctx.image.detections():
        x1, y1, x2, y2 = det.bbox.as_int_tuple()
        print(f"  {det.label}  box=({x1}, {y1}, {x2}, {y2})")


def _show(ctx: RuntimeContext, wait_ms: int) -> int:
    frame = ctx.image.frame
    if frame is None:
        return -1
    cv2.imshow("Drum-head Detect", draw_detections(frame.frame, ctx.image.detections()))
    return cv2.waitKey(wait_ms) & 0xFF


def run_image(ctx: RuntimeContext, path: str, display: bool) -> int:
    ctx.service.open_image(path)
    _print_detections(ctx)
    if display:
        _show(ctx, 0)
    return 0


def run_capture(ctx: RuntimeContext, display: bool, timeout: float = 10.0) -> int:
    scheduler = ctx.scheduler
    scheduler.start_camera()
    if not scheduler.wait_until_active(timeout):
        logging.error(f"Camera did not become active within {timeout:.0f}s")
        return 1
    if scheduler.request_capture() is None:
        logging.error("Camera capture failed")
        return 1
    ctx.lock.wait_released()
    _print_detections(ctx)
    if display:
        _show(ctx, 0)
    return 0


def run_continuous(ctx: RuntimeContext, display: bool) -> int:
    results: "queue.Queue[bool]" = queue.Queue(maxsize=1)

    def on_frame(frame_data, detections):
        logging.info(
            f"Frame {frame_data.frame_index}: "
            + (", ".join(d.label for d in detections) or "no detections")
        )
        try:
            results.put_nowait(True)
        except queue.Full:
            pass

    ctx.service.add_callback(on_frame)
    ctx.scheduler.enter_continuous_mode()
    try:
        while True:
            try:
                results.get(timeout=0.5)
            except queue.Empty:
                continue
            if display and _show(ctx, 1) == ord('q'):
                break
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    finally:
        ctx.scheduler.exit_continuous_mode()
    return 0


def run_server(config: Config, host: str, port: int) -> int:
    web_state = SharedState()
    app = create_app(web_state)

    def run_web_app():
        uvicorn.run(app, host=host, port=port, log_level="info")

    web_thread = threading.Thread(target=run_web_app, daemon=True)
    web_thread.start()
    logging.info(f"Web interface started on {host}:{port}")

    ctx = None
    try:
        try:
            ctx = build_runtime(config, web_state=web_state)
            app.state.runtime = ctx
        except SetupError as e:
            # Stay up and report not-ready; no automatic retry.
            logging.error(f"Startup failed, detector will not become ready: {e}")
        while web_thread.is_alive():
            web_thread.join(timeout=1.0)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    finally:
        if ctx is not None:
            ctx.close()
    return 0


def main(argv=None) -> int:
    """Main application function."""
    parser = argparse.ArgumentParser(description='Cable drum head YOLOv8 detect')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--image', type=str, help='Detect on a single image file')
    mode.add_argument('--capture', action='store_true', help='Capture and detect one camera frame')
    mode.add_argument('--continuous', action='store_true', help='Continuous camera capture')
    mode.add_argument('--serve', action='store_true', help='Run the web API')
    parser.add_argument('--display', action='store_true', help='Show annotated results')
    parser.add_argument('--host', type=str, help='Web API host (overrides config)')
    parser.add_argument('--port', type=int, help='Web API port (overrides config)')
    args = parser.parse_args(argv)

    raw_config = load_config(args.config)

    is_valid, error_msg = validate_config(raw_config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        return 1

    setup_logging(raw_config['log_path'], raw_config['log_level'])
    config = Config.from_dict(raw_config)

    if args.serve:
        return run_server(config, args.host or config.web.host, args.port or config.web.port)

    try:
        ctx = build_runtime(config, run_async=False)
    except SetupError as e:
        logging.error(f"Startup failed: {e}")
        return 1

    try:
        if args.image:
            return run_image(ctx, args.image, args.display)
        if args.capture:
            return run_capture(ctx, args.display)
        if args.continuous:
            return run_continuous(ctx, args.display)
        parser.print_help()
        return 0
    except DrumheadError as e:
        logging.error(f"Detection failed: {e}")
        return 1
    finally:
        ctx.close()
        if args.display:
            cv2.destroyAllWindows()
        logging.info("Drum-head detector stopped")


if __name__ == "__main__":
    sys.exit(main())
