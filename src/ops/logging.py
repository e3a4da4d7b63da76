"""
Logging setup.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("urllib3", "multipart", "uvicorn.access")


def setup_logging(log_path: Optional[str], log_level: str) -> None:
    """Configure the root logger once: stream handler plus an optional log file."""
    level = getattr(logging, str(log_level).upper(), logging.INFO)

    handlers: list = [logging.StreamHandler()]
    if log_path:
        log_dir = os.path.dirname(log_path)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
