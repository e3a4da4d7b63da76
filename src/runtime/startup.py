"""
Application startup: load both models, warm up the detector, wire the
detection service and the capture scheduler together.

Any failure here is fatal. Nothing is retried; the caller decides whether to
exit or to stay up in a not-ready state.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from capture.lock import ProcessingLock
from capture.scheduler import CaptureScheduler
from detection.pipeline import DetectionPipeline
from inference.assets import ProgressCallback
from inference.onnx_backend import SessionFactory, create_onnx_session, load_session_pair
from models.config import Config
from models.errors import SetupError
from observation import ObservationSource, create_source_from_config
from runtime.context import RuntimeContext
from runtime.services import DetectionService


def _log_progress(text: str, progress: Optional[float] = None) -> None:
    if progress is None:
        logging.info(text)
    else:
        logging.info(f"{text} - {progress:.0f}%")


def build_pipeline(
    config: Config,
    progress: Optional[ProgressCallback] = None,
    session_factory: SessionFactory = create_onnx_session,
) -> DetectionPipeline:
    report = progress or _log_progress
    detector, reducer = load_session_pair(config.models, progress=report, session_factory=session_factory)
    pipeline = DetectionPipeline(
        detector,
        reducer,
        params=config.detection,
        input_shape=config.models.input_shape,
        class_names=config.models.class_names,
    )
    report("Warming up model...", None)
    try:
        pipeline.warmup()
    except Exception as e:
        raise SetupError(f"Detector warmup failed: {e}") from e
    return pipeline


def build_runtime(
    config: Config,
    web_state: Any = None,
    source: Optional[ObservationSource] = None,
    session_factory: SessionFactory = create_onnx_session,
    run_async: bool = True,
) -> RuntimeContext:
    """
    Create a ready RuntimeContext.

    Raises:
        SetupError: If a model cannot be loaded or warmed up.
    """
    progress: Callable[[str, Optional[float]], None]
    if web_state is not None:
        def progress(text: str, pct: Optional[float] = None) -> None:
            _log_progress(text, pct)
            web_state.set_loading(text, pct)
    else:
        progress = _log_progress

    try:
        pipeline = build_pipeline(config, progress=progress, session_factory=session_factory)
    except SetupError as e:
        if web_state is not None:
            web_state.set_setup_error(str(e))
        raise

    ctx = RuntimeContext(config=config, pipeline=pipeline, web_state=web_state, lock=ProcessingLock())
    ctx.service = DetectionService(ctx, run_async=run_async)
    ctx.scheduler = CaptureScheduler(
        source or create_source_from_config(config.camera),
        ctx.service.submit,
        ctx.lock,
        camera_cfg=config.camera,
        capture_cfg=config.capture,
    )
    if web_state is not None:
        web_state.set_ready()
    logging.info("Detector ready")
    return ctx
