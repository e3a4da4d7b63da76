"""
Drum-head Detection Module

Letterbox preprocessing, the two-stage detector/reducer pipeline, and result
rendering.
"""

from .letterbox import LetterboxTransform, compute_letterbox, letterbox, preprocess
from .pipeline import DetectionPipeline
from .annotate import draw_detections, encode_jpeg

__all__ = [
    'DetectionPipeline',
    'LetterboxTransform',
    'compute_letterbox',
    'letterbox',
    'preprocess',
    'draw_detections',
    'encode_jpeg',
]
