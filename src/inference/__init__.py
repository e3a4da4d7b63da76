"""
Inference backends for the two-stage detection pipeline.
"""

from .backend import ModelSession
from .assets import fetch_model, is_remote
from .onnx_backend import OnnxModelSession, load_session_pair

__all__ = [
    "ModelSession",
    "OnnxModelSession",
    "fetch_model",
    "is_remote",
    "load_session_pair",
]
