"""
FastAPI application factory for the drum-head detector.

Routes:
- /api/* -> REST API (status, image selection, capture, continuous mode)
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from runtime.context import RuntimeContext
from .routes import api
from .state import SharedState


def create_app(web_state: Optional[SharedState] = None, runtime: Optional[RuntimeContext] = None) -> FastAPI:
    """
    Create the FastAPI app.

    The runtime may be attached later (app.state.runtime = ctx) once startup
    has finished; until then the API answers 503 and reports loading progress.
    """
    app = FastAPI(
        title="Drum-head Detect",
        version="0.1.0",
        description="Cable drum head (side) detection with YOLOv8 + NMS on ONNX Runtime",
    )

    # CORS for development frontends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.web_state = web_state or SharedState()
    app.state.runtime = runtime

    app.include_router(api.router, prefix="/api")

    return app
