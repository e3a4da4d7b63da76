from __future__ import annotations

import logging
import time

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from models.errors import ImageDecodeError, PipelineBusyError, ShapeMismatchError
from runtime.context import RuntimeContext
from ..api_models import (
    CaptureResponse,
    ContinuousResponse,
    DetectionModel,
    DetectionsResponse,
    StatusResponse,
)
from ..state import SharedState

router = APIRouter()


def _state(request: Request) -> SharedState:
    return request.app.state.web_state


def _runtime(request: Request) -> RuntimeContext:
    """The ready runtime, or 503 while models are loading (or failed to load)."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        state = _state(request)
        detail = state.setup_error or "Models are still loading"
        raise HTTPException(status_code=503, detail=detail)
    return runtime


def _detections_response(runtime: RuntimeContext) -> DetectionsResponse:
    snap = runtime.image.snapshot()
    return DetectionsResponse(
        has_image=snap["has_image"],
        source=snap["source"],
        width=snap["width"],
        height=snap["height"],
        detections=[DetectionModel(**d) for d in snap["detections"]],
    )


@router.get("/healthz")
def healthz():
    return {"status": "ok", "timestamp": time.time()}


@router.get("/status", response_model=StatusResponse)
def status(request: Request):
    state = _state(request).snapshot()
    runtime = getattr(request.app.state, "runtime", None)
    stats = state["system_stats"]

    capture = runtime.scheduler.snapshot() if runtime is not None and runtime.scheduler else {}
    return StatusResponse(
        ready=runtime is not None,
        loading=state["loading"],
        setup_error=state["setup_error"],
        processing=runtime.lock.locked if runtime is not None else False,
        camera=capture.get("camera"),
        continuous=capture.get("continuous", False),
        has_image=runtime.image.has_image if runtime is not None else False,
        frames_published=capture.get("frames_published", 0),
        frames_processed=stats.get("frames_processed", 0),
        last_latency_ms=stats.get("last_latency_ms"),
        last_error=state["last_error"],
        uptime_seconds=int(time.time() - stats.get("start_time", time.time())),
    )


@router.get("/detections", response_model=DetectionsResponse)
def detections(request: Request):
    return _detections_response(_runtime(request))


@router.post("/image", response_model=DetectionsResponse)
async def open_image(request: Request):
    """Select an image: the raw request body is the encoded image file."""
    runtime = _runtime(request)
    body = await request.body()
    name = request.headers.get("x-filename") or "upload"
    try:
        await run_in_threadpool(runtime.service.open_image, body, name)
    except PipelineBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ShapeMismatchError as e:
        logging.error(f"Detection precondition failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return _detections_response(runtime)


@router.delete("/image")
def close_image(request: Request):
    _runtime(request).service.close_image()
    return {"closed": True}


@router.get("/image/annotated.jpg")
def annotated_image(request: Request):
    jpeg = _runtime(request).image.annotated()
    if jpeg is None:
        raise HTTPException(status_code=404, detail="No image")
    return Response(content=jpeg, media_type="image/jpeg")


@router.post("/capture", response_model=CaptureResponse)
def capture(request: Request):
    scheduler = _runtime(request).scheduler
    frame_data = scheduler.request_capture()
    return CaptureResponse(
        captured=frame_data is not None,
        camera=scheduler.camera_state.value,
        frame_index=frame_data.frame_index if frame_data is not None else None,
    )


@router.post("/continuous", response_model=ContinuousResponse)
def toggle_continuous(request: Request):
    scheduler = _runtime(request).scheduler
    continuous = scheduler.toggle_continuous()
    return ContinuousResponse(continuous=continuous, camera=scheduler.camera_state.value)
