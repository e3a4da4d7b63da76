"""
Inference backend interface.

A ModelSession is one loaded model. The pipeline composes two of them (the
detector and the NMS reducer) and never mutates either after startup, so any
backend that can run named numpy feeds can be swapped in for either stage.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Protocol

import numpy as np


class ModelSession(Protocol):
    @property
    def input_names(self) -> List[str]:
        ...

    @property
    def output_names(self) -> List[str]:
        ...

    def run(self, feeds: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        ...
