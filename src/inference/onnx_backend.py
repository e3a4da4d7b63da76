"""
ONNX Runtime inference backend.

Both models of the pipeline (YOLOv8 detector and the NMS reducer exported as
its own graph) are plain ONNX files run through onnxruntime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import onnxruntime as ort

from models.config import ModelsConfig
from models.errors import ModelLoadError
from .assets import ProgressCallback, fetch_model
from .backend import ModelSession


class OnnxModelSession(ModelSession):
    """Thin wrapper that returns outputs keyed by name instead of by position."""

    def __init__(self, model: Union[bytes, str], providers: Optional[Sequence[str]] = None, name: str = "model"):
        self.name = name
        available = ort.get_available_providers()
        wanted = [p for p in (providers or ["CPUExecutionProvider"]) if p in available]
        if not wanted:
            logging.warning(f"No requested execution provider available for {name}, using {available}")
            wanted = list(available)
        self._session = ort.InferenceSession(model, providers=wanted)
        self._input_names = [i.name for i in self._session.get_inputs()]
        self._output_names = [o.name for o in self._session.get_outputs()]
        logging.info(
            f"Session {name} ready: provider={self._session.get_providers()[0]}, "
            f"inputs={self._input_names}, outputs={self._output_names}"
        )

    @property
    def input_names(self) -> List[str]:
        return list(self._input_names)

    @property
    def output_names(self) -> List[str]:
        return list(self._output_names)

    @property
    def input_shapes(self) -> Dict[str, list]:
        return {i.name: list(i.shape) for i in self._session.get_inputs()}

    def check_input_shape(self, expected: Sequence[int]) -> None:
        """
        Compare the first input's declared shape with the configured one.

        Symbolic dimensions (names or None) match anything.

        Raises:
            ModelLoadError: If a fixed dimension differs.
        """
        declared = self.input_shapes[self._input_names[0]]
        logging.info(f"Session {self.name} input {self._input_names[0]} declared shape {declared}")
        if len(declared) != len(expected) or any(
            isinstance(d, int) and d != e for d, e in zip(declared, expected)
        ):
            raise ModelLoadError(
                f"{self.name} expects input shape {declared}, configured input_shape is {list(expected)}"
            )

    def run(self, feeds: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        outputs = self._session.run(None, dict(feeds))
        return dict(zip(self._output_names, outputs))


SessionFactory = Callable[[bytes, Sequence[str], str], ModelSession]


def create_onnx_session(model: bytes, providers: Sequence[str], name: str) -> ModelSession:
    return OnnxModelSession(model, providers=providers, name=name)


def load_session_pair(
    models_cfg: ModelsConfig,
    progress: Optional[ProgressCallback] = None,
    session_factory: SessionFactory = create_onnx_session,
) -> Tuple[ModelSession, ModelSession]:
    """
    Fetch and create the detector and reducer sessions, in that order.

    Raises:
        ModelLoadError: If either asset cannot be fetched or loaded. No retry.
    """
    sessions = []
    for label, uri in (
        ("Loading YOLOv8 model", models_cfg.detector_uri),
        ("Loading NMS model", models_cfg.reducer_uri),
    ):
        data = fetch_model(uri, label=label, progress=progress, timeout=models_cfg.download_timeout)
        try:
            sessions.append(session_factory(data, models_cfg.providers, uri))
        except Exception as e:
            raise ModelLoadError(f"Failed to create session for {uri}: {e}") from e
    if isinstance(sessions[0], OnnxModelSession):
        sessions[0].check_input_shape(models_cfg.input_shape)
    return sessions[0], sessions[1]
